# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Call placement and due-call dispatch.

Each call runs as its own task; calls for different recipients share no
mutable state beyond the call log. A call is logged as ``in_progress`` before
it dials and updated in place with its outcome. Retrying a call that did not
connect is left to whoever triggers the next dispatch.
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from carecall.core.config import settings
from carecall.core.logging import get_logger
from carecall.models.domain import CareRecipientProfile
from carecall.repositories.call_log_repository import CallLogRepository
from carecall.repositories.profile_repository import ProfileRepository
from carecall.repositories.schedule_repository import ScheduleRepository
from carecall.services.orchestrator import CallOrchestrator, TelephonyChannel
from carecall.services.schedule_resolver import is_due

logger = get_logger(__name__)

IN_PROGRESS = "in_progress"
CALL_ERROR = "error"


class CallService:
    """Business logic for running calls and keeping the call log."""

    def __init__(
        self,
        profile_repo: ProfileRepository,
        schedule_repo: ScheduleRepository,
        call_log_repo: CallLogRepository,
        orchestrator: CallOrchestrator,
    ) -> None:
        self._profiles = profile_repo
        self._schedules = schedule_repo
        self._calls = call_log_repo
        self._orchestrator = orchestrator

    # ── Commands ──

    async def place_call(
        self,
        recipient_id: str,
        trigger: str = "manual",
        channel: Optional[TelephonyChannel] = None,
    ) -> dict[str, Any]:
        """Run one call now. Raises KeyError for an unknown recipient."""
        profile = self._profiles.get(recipient_id)
        if profile is None:
            raise KeyError(f"No care recipient found with id '{recipient_id}'")
        record = self._open_record(recipient_id, trigger)
        return await self._run_call(record, profile, channel)

    async def dispatch_due_calls(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """
        Start every call due at ``now`` (local wall-clock minute), skipping
        recipients already called within the recent-call window, including
        calls still in progress.
        """
        now = now or datetime.now()
        window_start = datetime.now(timezone.utc) - timedelta(
            minutes=settings.RECENT_CALL_WINDOW_MINUTES
        )

        pending: list[tuple[dict[str, Any], CareRecipientProfile]] = []
        skipped: list[str] = []
        for recipient_id, schedule in self._schedules.get_all().items():
            if not is_due(schedule, now):
                continue
            profile = self._profiles.get(recipient_id)
            if profile is None:
                logger.warning("Due schedule has no profile", extra={"recipient_id": recipient_id})
                skipped.append(recipient_id)
                continue
            if self._calls.has_call_since(recipient_id, window_start):
                logger.info("Skipping recently called recipient", extra={"recipient_id": recipient_id})
                skipped.append(recipient_id)
                continue
            # Logged before any await so an overlapping dispatch sees it.
            pending.append((self._open_record(recipient_id, "scheduled"), profile))

        logger.info(
            "Dispatch at %s: due=%d, skipped=%d", now.strftime("%a %H:%M"), len(pending), len(skipped)
        )
        results = await asyncio.gather(
            *(self._run_call(record, profile) for record, profile in pending),
            return_exceptions=True,
        )

        calls: list[dict[str, Any]] = []
        failed: list[str] = []
        for (record, _), result in zip(pending, results):
            if isinstance(result, BaseException):
                failed.append(record["recipient_id"])
            else:
                calls.append(result)
        return {"checked_at": now.isoformat(), "calls": calls, "skipped": skipped, "failed": failed}

    # ── Queries ──

    def list_calls(
        self,
        recipient_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        return self._calls.get_all(recipient_id=recipient_id, limit=limit)

    # ── Internal ──

    def _open_record(self, recipient_id: str, trigger: str) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "recipient_id": recipient_id,
            "trigger": trigger,
            "status": IN_PROGRESS,
            "session_id": None,
            "duration_seconds": None,
            "reason": None,
            "started_at": datetime.now(timezone.utc).isoformat(),
            "ended_at": None,
        }
        self._calls.append(record)
        logger.info("Placing %s call", trigger, extra={"recipient_id": recipient_id})
        return record

    async def _run_call(
        self,
        record: dict[str, Any],
        profile: CareRecipientProfile,
        channel: Optional[TelephonyChannel] = None,
    ) -> dict[str, Any]:
        recipient_id = record["recipient_id"]
        try:
            outcome = await self._orchestrator.run_scheduled_call(profile, channel=channel)
        except Exception as exc:
            logger.exception("Call task failed", extra={"recipient_id": recipient_id})
            self._close_record(
                record,
                status=CALL_ERROR,
                reason=str(exc) or type(exc).__name__,
                ended_at=datetime.now(timezone.utc).isoformat(),
            )
            raise

        self._close_record(
            record,
            status=outcome.status,
            session_id=getattr(outcome, "session_id", None),
            duration_seconds=getattr(outcome, "duration_seconds", None),
            reason=getattr(outcome, "reason", None),
            ended_at=datetime.now(timezone.utc).isoformat(),
        )
        logger.info(
            "Call finished: status=%s", outcome.status, extra={"recipient_id": recipient_id}
        )
        return record

    def _close_record(self, record: dict[str, Any], **changes: Any) -> None:
        if self._calls.update(record["id"], **changes) is None:
            # Trimmed from the bounded log while the call ran.
            record.update(changes)
