# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: Care-recipient profile data access.
"""

from typing import Optional

from carecall.models.domain import CareRecipientProfile


class ProfileRepository:
    """In-memory profile storage keyed by recipient id."""

    def __init__(self) -> None:
        self._store: dict[str, CareRecipientProfile] = {}

    def get(self, recipient_id: str) -> Optional[CareRecipientProfile]:
        return self._store.get(recipient_id)

    def exists(self, recipient_id: str) -> bool:
        return recipient_id in self._store

    def count(self) -> int:
        return len(self._store)

    def save(self, recipient_id: str, profile: CareRecipientProfile) -> None:
        self._store[recipient_id] = profile

    def clear(self) -> None:
        self._store.clear()
