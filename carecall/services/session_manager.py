# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Conversation session manager.

Drives one call's AI conversation against the voice-AI provider and
enforces the session state machine:

    created ─► active ─► ended
    created ─► failed
    active  ─► failed

No operation here retries. Nothing exists provider-side until the create
request succeeds, so a failed start may be retried as a new call attempt.
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

from carecall.core.config import settings
from carecall.core.errors import (
    InvalidSessionTransition,
    ProviderError,
    ProviderErrorKind,
    SessionNotActive,
)
from carecall.core.logging import get_logger
from carecall.metrics.prometheus import (
    PROVIDER_REACHABLE,
    SESSIONS_ACTIVE,
    SESSIONS_ENDED,
    SESSIONS_STARTED,
    USER_TURNS,
)
from carecall.models.domain import (
    AgentReply,
    ConversationSession,
    PromptPackage,
    ProviderHealth,
    SessionState,
)
from carecall.services.voice_client import VoiceProviderClient

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.CREATED: {SessionState.ACTIVE, SessionState.FAILED},
    SessionState.ACTIVE: {SessionState.ENDED, SessionState.FAILED},
    SessionState.ENDED: set(),
    SessionState.FAILED: set(),
}

# Provider conversation statuses meaning "over" (normal end, max duration,
# inactivity timeout) versus "broken".
ENDED_STATUSES = {"done", "ended", "completed", "timeout", "timed_out"}
FAILED_STATUSES = {"failed", "error"}


class ConversationSessionManager:
    """Opens, drives and tears down provider conversation sessions."""

    def __init__(
        self,
        client: VoiceProviderClient,
        agent_id: Optional[str] = None,
    ) -> None:
        self._client = client
        self._agent_id = agent_id

    @property
    def agent_id(self) -> str:
        return self._agent_id or settings.VOICE_AGENT_ID

    # ── State machine ──

    def _transition(
        self,
        session: ConversationSession,
        new_state: SessionState,
        reason: Optional[str] = None,
    ) -> None:
        if new_state not in ALLOWED_TRANSITIONS[session.state]:
            raise InvalidSessionTransition(
                f"Cannot move session {session.session_id} from "
                f"'{session.state.value}' to '{new_state.value}'"
            )
        previous = session.state
        session.state = new_state
        now = datetime.now(timezone.utc)

        if new_state is SessionState.ACTIVE:
            session.started_at = now
            SESSIONS_ACTIVE.inc()
        else:
            session.ended_at = now
            session.end_reason = reason
            if previous is SessionState.ACTIVE:
                SESSIONS_ACTIVE.dec()
            SESSIONS_ENDED.labels(state=new_state.value, reason=reason or "unknown").inc()

    # ── Commands ──

    def build_session_request(self, package: PromptPackage) -> dict[str, Any]:
        """Session-creation body: prompt package plus fixed turn-taking parameters."""
        return {
            "agent_id": self.agent_id,
            "voice_id": package.voice_id,
            "first_message": package.opening_line,
            "system_prompt": package.system_prompt,
            "language": settings.CONVERSATION_LANGUAGE,
            "response_modality": "audio",
            "turn_detection": {
                "type": "server_vad",
                "threshold": settings.VAD_THRESHOLD,
                "prefix_padding_ms": settings.VAD_PREFIX_PADDING_MS,
                "silence_duration_ms": settings.SILENCE_DURATION_MS,
            },
            "conversation_config": {
                "max_duration_seconds": settings.MAX_CALL_DURATION_SECONDS,
                "inactivity_timeout_seconds": settings.INACTIVITY_TIMEOUT_SECONDS,
            },
        }

    async def start_session(self, package: PromptPackage) -> ConversationSession:
        """
        Open a provider session for one call.
        Raises ProviderError; on failure no session object reaches the caller.
        """
        session = ConversationSession(agent_id=self.agent_id, voice_id=package.voice_id)
        try:
            data = await self._client.create_conversation(self.build_session_request(package))
            session_id = data.get("conversation_id") or data.get("session_id")
            if not session_id:
                raise ProviderError(
                    ProviderErrorKind.UNAVAILABLE,
                    "create_session response carried no conversation id",
                )
        except ProviderError as exc:
            self._transition(session, SessionState.FAILED, reason=exc.kind.value)
            SESSIONS_STARTED.labels(outcome=exc.kind.value).inc()
            logger.warning(
                "Session start failed: recipient=%s, kind=%s, detail=%s",
                package.recipient_name, exc.kind.value, exc.detail,
            )
            raise

        session.session_id = str(session_id)
        self._transition(session, SessionState.ACTIVE)
        SESSIONS_STARTED.labels(outcome="active").inc()
        logger.info(
            "Session started: recipient=%s, agent=%s, voice=%s",
            package.recipient_name, session.agent_id, session.voice_id,
            extra={"session_id": session.session_id},
        )
        return session

    async def send_user_turn(self, session: ConversationSession, text: str) -> AgentReply:
        """
        Forward one utterance and return the agent's reply.
        Turns on the same session are applied one at a time, in submission order.
        """
        self._ensure_active(session)
        async with session._turn_lock:
            # The session may have ended while this turn was queued.
            self._ensure_active(session)
            try:
                data = await self._client.add_user_message(session.session_id, text)
            except ProviderError as exc:
                # end_session may have run while the request was in flight.
                if session.state is SessionState.ACTIVE:
                    self._transition(session, SessionState.FAILED, reason=exc.kind.value)
                    logger.warning(
                        "User turn failed, session marked failed: kind=%s",
                        exc.kind.value, extra={"session_id": session.session_id},
                    )
                raise

            session.turn_count += 1
            USER_TURNS.inc()
            reply = AgentReply(
                text=data.get("agent_text") or data.get("response") or data.get("text"),
                audio_ref=data.get("audio_url") or data.get("audio"),
                session_ended=bool(data.get("conversation_ended"))
                or str(data.get("status", "")).lower() in ENDED_STATUSES,
            )
            if reply.session_ended and session.state is SessionState.ACTIVE:
                session._released = True
                self._transition(session, SessionState.ENDED, reason="provider_ended")
                logger.info(
                    "Provider ended session during turn %d", session.turn_count,
                    extra={"session_id": session.session_id},
                )
            return reply

    async def end_session(
        self,
        session: ConversationSession,
        reason: str = "completed",
    ) -> None:
        """
        End the session and release provider resources. Idempotent: an ENDED
        session is left untouched. A FAILED session keeps its state but still
        gets a single best-effort release.
        """
        if session.state is SessionState.ENDED:
            return
        if session.state is SessionState.ACTIVE:
            self._transition(session, SessionState.ENDED, reason=reason)
            logger.info(
                "Session ended: reason=%s, duration=%.1fs, turns=%d",
                reason, session.duration_seconds, session.turn_count,
                extra={"session_id": session.session_id},
            )
        await self._release(session)

    async def refresh_session(self, session: ConversationSession) -> SessionState:
        """
        Ask the provider whether an active conversation is still running.
        A provider-side end (including max-duration or inactivity timeout) is
        recorded as ENDED, never FAILED. Raises ProviderError if the probe fails.
        """
        if session.state is not SessionState.ACTIVE:
            return session.state
        data = await self._client.get_conversation(session.session_id)
        status = str(data.get("status", "")).lower()
        if status in ENDED_STATUSES:
            session._released = True
            self._transition(session, SessionState.ENDED, reason="provider_ended")
            logger.info("Provider reports session over: status=%s", status,
                        extra={"session_id": session.session_id})
        elif status in FAILED_STATUSES:
            session._released = True
            self._transition(session, SessionState.FAILED, reason="provider_failed")
            logger.warning("Provider reports session failed", extra={"session_id": session.session_id})
        return session.state

    @asynccontextmanager
    async def open_session(self, package: PromptPackage) -> AsyncIterator[ConversationSession]:
        """Start a session and guarantee ``end_session`` on every exit path."""
        session = await self.start_session(package)
        try:
            yield session
        finally:
            await self.end_session(session)

    # ── Diagnostics ──

    async def check_provider_health(self) -> ProviderHealth:
        """Read-only reachability probe. Never raises."""
        if not self._client.is_configured:
            PROVIDER_REACHABLE.set(0)
            return ProviderHealth(
                reachable=False, round_trip_latency_ms=0.0, error="API key not configured"
            )
        start = time.perf_counter()
        try:
            await self._client.get_account_info()
        except ProviderError as exc:
            latency = (time.perf_counter() - start) * 1000
            PROVIDER_REACHABLE.set(0)
            return ProviderHealth(
                reachable=False, round_trip_latency_ms=round(latency, 2), error=exc.detail
            )
        except Exception as exc:
            latency = (time.perf_counter() - start) * 1000
            logger.warning("Provider health probe error: %s", exc)
            PROVIDER_REACHABLE.set(0)
            return ProviderHealth(
                reachable=False, round_trip_latency_ms=round(latency, 2), error=str(exc)
            )
        latency = (time.perf_counter() - start) * 1000
        PROVIDER_REACHABLE.set(1)
        return ProviderHealth(reachable=True, round_trip_latency_ms=round(latency, 2))

    # ── Internal ──

    def _ensure_active(self, session: ConversationSession) -> None:
        if session.state is not SessionState.ACTIVE:
            raise SessionNotActive(
                f"Session {session.session_id} is '{session.state.value}', not active"
            )

    async def _release(self, session: ConversationSession) -> None:
        if session._released or not session.session_id:
            return
        session._released = True
        try:
            await self._client.end_conversation(session.session_id)
        except ProviderError as exc:
            logger.warning(
                "Provider release failed: kind=%s, detail=%s",
                exc.kind.value, exc.detail, extra={"session_id": session.session_id},
            )
