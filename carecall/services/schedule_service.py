# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Schedule management, the business logic for call preferences.
Coordinates resolver validation with repository writes, metrics and history.
"""

from typing import Any, Optional

from carecall.core.errors import InputRejected
from carecall.core.logging import get_logger
from carecall.metrics.prometheus import ACTIVE_SCHEDULES, SCHEDULES_SAVED
from carecall.models.domain import CallSchedule, ScheduleSummary, ValidationFailure
from carecall.repositories.history_repository import HistoryRepository
from carecall.repositories.profile_repository import ProfileRepository
from carecall.repositories.schedule_repository import ScheduleRepository
from carecall.services import schedule_resolver

logger = get_logger(__name__)


class ScheduleService:
    """Business logic for care-recipient call schedules."""

    def __init__(
        self,
        schedule_repo: ScheduleRepository,
        profile_repo: ProfileRepository,
        history_repo: HistoryRepository,
    ) -> None:
        self._schedules = schedule_repo
        self._profiles = profile_repo
        self._history = history_repo

    # ── Commands ──

    def save_preferences(
        self,
        recipient_id: str,
        days: list[str],
        default_time: str,
        custom_times: Optional[dict[str, str]] = None,
    ) -> CallSchedule:
        """
        Normalize and store a schedule, superseding any previous one.
        Raises KeyError for an unknown recipient, InputRejected on bad input.
        """
        if not self._profiles.exists(recipient_id):
            raise KeyError(f"No care recipient found with id '{recipient_id}'")

        result = schedule_resolver.normalize_schedule(days, default_time, custom_times)
        if isinstance(result, ValidationFailure):
            logger.info(
                "Schedule rejected: kind=%s, detail=%s", result.kind.value, result.detail,
                extra={"recipient_id": recipient_id},
            )
            raise InputRejected(result)

        replaced = self._schedules.exists(recipient_id)
        self._schedules.save(recipient_id, result)

        SCHEDULES_SAVED.inc()
        ACTIVE_SCHEDULES.set(self._schedules.count())
        dropped = sorted(
            {str(k).strip().lower() for k in (custom_times or {})}
            - {d.value for d in result.day_overrides}
        )
        self._history.record_event(
            "schedule_updated" if replaced else "schedule_created",
            recipient_id,
            {
                "days": [d.value for d in result.selected_days],
                "default_time": result.default_time,
                "overrides": len(result.day_overrides),
                "ignored_custom_times": dropped,
            },
        )
        logger.info(
            "Schedule saved: days=%d, default_time=%s, overrides=%d",
            len(result.selected_days), result.default_time, len(result.day_overrides),
            extra={"recipient_id": recipient_id},
        )
        return result

    def delete_schedule(self, recipient_id: str) -> dict[str, str]:
        """Stop calls for a recipient. Raises KeyError."""
        if self._schedules.delete(recipient_id) is None:
            raise KeyError(f"No schedule found for recipient '{recipient_id}'")
        ACTIVE_SCHEDULES.set(self._schedules.count())
        self._history.record_event("schedule_deleted", recipient_id, {})
        logger.info("Schedule deleted", extra={"recipient_id": recipient_id})
        return {"status": "deleted", "recipient_id": recipient_id}

    # ── Queries ──

    def get_schedule(self, recipient_id: str) -> CallSchedule:
        schedule = self._schedules.get(recipient_id)
        if schedule is None:
            raise KeyError(f"No schedule found for recipient '{recipient_id}'")
        return schedule

    def get_summary(self, recipient_id: str) -> ScheduleSummary:
        return schedule_resolver.summarize(self.get_schedule(recipient_id))

    def resolve_day(self, recipient_id: str, day: str) -> dict[str, Any]:
        """Call time for one weekday. Raises KeyError / InputRejected."""
        result = schedule_resolver.resolve_time_for_day(self.get_schedule(recipient_id), day)
        if isinstance(result, ValidationFailure):
            raise InputRejected(result)
        return {
            "recipient_id": recipient_id,
            "day": day.strip().lower(),
            "time": result,
            "label": schedule_resolver.format_time(result),
        }

    def list_history(
        self,
        recipient_id: Optional[str] = None,
        event_type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        return self._history.get_all(recipient_id=recipient_id, event_type=event_type, limit=limit)
