# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Care-recipient profiles and prompt previews.
"""

from typing import Any

from carecall.core.errors import InputRejected
from carecall.core.logging import get_logger
from carecall.models.domain import CareRecipientProfile, PromptPackage, ValidationFailure
from carecall.repositories.history_repository import HistoryRepository
from carecall.repositories.profile_repository import ProfileRepository
from carecall.services.prompt_builder import build_prompt_package

logger = get_logger(__name__)


class ProfileService:
    def __init__(
        self,
        profile_repo: ProfileRepository,
        history_repo: HistoryRepository,
    ) -> None:
        self._profiles = profile_repo
        self._history = history_repo

    def upsert_profile(self, recipient_id: str, fields: dict[str, Any]) -> CareRecipientProfile:
        """Create or replace a profile; the engine itself never mutates it."""
        created = not self._profiles.exists(recipient_id)
        profile = CareRecipientProfile(**{**fields, "id": recipient_id})
        self._profiles.save(recipient_id, profile)
        self._history.record_event(
            "profile_created" if created else "profile_updated",
            recipient_id,
            {"fields": sorted(k for k, v in fields.items() if v is not None)},
        )
        logger.info(
            "Profile %s", "created" if created else "updated",
            extra={"recipient_id": recipient_id},
        )
        return profile

    def get_profile(self, recipient_id: str) -> CareRecipientProfile:
        profile = self._profiles.get(recipient_id)
        if profile is None:
            raise KeyError(f"No care recipient found with id '{recipient_id}'")
        return profile

    def preview_prompt(self, recipient_id: str) -> PromptPackage:
        """Render the prompt package the next call would use."""
        result = build_prompt_package(self.get_profile(recipient_id))
        if isinstance(result, ValidationFailure):
            raise InputRejected(result)
        return result
