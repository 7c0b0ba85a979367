# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Call orchestration facade.

Runs one scheduled call occurrence end to end: prompt package -> provider
session -> telephony channel -> guaranteed teardown. The result is always a
``Completed`` or ``NotConnected`` outcome; provider and channel errors are
collapsed into short human-readable reasons here.
"""

import asyncio
from typing import Optional, Protocol

from carecall.core.config import settings
from carecall.core.errors import ProviderError, ProviderErrorKind
from carecall.core.logging import get_logger
from carecall.metrics.prometheus import CALL_DURATION, CALL_OUTCOMES
from carecall.models.domain import (
    CallOutcome,
    CareRecipientProfile,
    Completed,
    ConversationSession,
    NotConnected,
    SessionState,
    ValidationFailure,
)
from carecall.services.prompt_builder import build_prompt_package
from carecall.services.session_manager import ConversationSessionManager

logger = get_logger(__name__)

NOT_CONNECTED_REASONS: dict[ProviderErrorKind, str] = {
    ProviderErrorKind.UNAUTHENTICATED: "assistant service not configured",
    ProviderErrorKind.UNAVAILABLE: "could not reach assistant service",
    ProviderErrorKind.REJECTED: "assistant service rejected the call setup",
}
INVALID_PROFILE_REASON = "invalid care recipient profile"
INTERRUPTED_REASON = "call interrupted"


class TelephonyChannel(Protocol):
    """The live call: returns when the phone call is over."""

    async def run(
        self, session: ConversationSession, manager: ConversationSessionManager
    ) -> None: ...


class ProviderStatusChannel:
    """
    Default channel for calls whose audio is bridged straight to the provider:
    waits, polling the provider, until it reports the conversation over.
    A few consecutive failed polls are tolerated before giving up.
    """

    def __init__(
        self,
        poll_interval: Optional[float] = None,
        failure_limit: int = 3,
    ) -> None:
        self._poll_interval = poll_interval
        self._failure_limit = failure_limit

    async def run(
        self, session: ConversationSession, manager: ConversationSessionManager
    ) -> None:
        interval = (
            self._poll_interval
            if self._poll_interval is not None
            else settings.SESSION_POLL_INTERVAL
        )
        failures = 0
        while session.state is SessionState.ACTIVE:
            await asyncio.sleep(interval)
            try:
                await manager.refresh_session(session)
                failures = 0
            except ProviderError as exc:
                failures += 1
                logger.warning(
                    "Session status poll failed (%d/%d): %s",
                    failures, self._failure_limit, exc.detail,
                    extra={"session_id": session.session_id},
                )
                if failures >= self._failure_limit:
                    raise


class CallOrchestrator:
    """Facade used by the scheduler trigger and the on-demand call endpoint."""

    def __init__(self, manager: ConversationSessionManager) -> None:
        self._manager = manager

    async def run_scheduled_call(
        self,
        profile: CareRecipientProfile,
        channel: Optional[TelephonyChannel] = None,
    ) -> CallOutcome:
        log_ctx = {"recipient_id": profile.id}
        package = build_prompt_package(profile)
        if isinstance(package, ValidationFailure):
            logger.warning("Call skipped: %s", package.detail, extra=log_ctx)
            return self._record(NotConnected(reason=INVALID_PROFILE_REASON))

        channel = channel or ProviderStatusChannel()
        time_limit = settings.MAX_CALL_DURATION_SECONDS + settings.CALL_GRACE_SECONDS
        interrupted = False

        try:
            async with self._manager.open_session(package) as session:
                end_reason = "completed"
                try:
                    await asyncio.wait_for(channel.run(session, self._manager), timeout=time_limit)
                except asyncio.TimeoutError:
                    end_reason = "max_duration"
                    logger.info(
                        "Call reached maximum duration (%ss)", time_limit,
                        extra={**log_ctx, "session_id": session.session_id},
                    )
                except Exception:
                    interrupted = True
                    end_reason = "interrupted"
                    logger.exception(
                        "Call interrupted", extra={**log_ctx, "session_id": session.session_id}
                    )
                await self._manager.end_session(session, reason=end_reason)
        except ProviderError as exc:
            # open_session only raises before a session exists
            return self._record(NotConnected(reason=NOT_CONNECTED_REASONS[exc.kind]))

        if interrupted or session.state is not SessionState.ENDED:
            return self._record(NotConnected(reason=INTERRUPTED_REASON))

        logger.info(
            "Call completed: duration=%.1fs, turns=%d",
            session.duration_seconds, session.turn_count,
            extra={**log_ctx, "session_id": session.session_id},
        )
        CALL_DURATION.observe(session.duration_seconds)
        return self._record(
            Completed(session_id=session.session_id, duration_seconds=session.duration_seconds)
        )

    @staticmethod
    def _record(outcome: CallOutcome) -> CallOutcome:
        CALL_OUTCOMES.labels(status=outcome.status).inc()
        return outcome
