# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false

"""
Tests for the call engine: schedule resolver, prompt builder, call service,
conversation session manager and orchestration facade.
The voice-AI provider is replaced by an httpx.MockTransport double.
"""

import asyncio
import itertools
import json
from datetime import datetime
from typing import Optional
from unittest.mock import patch

import httpx
import pytest

from carecall.core.config import settings
from carecall.core.errors import (
    InvalidSessionTransition,
    ProviderError,
    ProviderErrorKind,
    SessionNotActive,
)
from carecall.models.domain import (
    CallSchedule,
    CareRecipientProfile,
    Completed,
    FailureKind,
    NotConnected,
    SessionState,
    TimeOfDay,
    ValidationFailure,
    Weekday,
)
from carecall.repositories.call_log_repository import CallLogRepository
from carecall.repositories.profile_repository import ProfileRepository
from carecall.repositories.schedule_repository import ScheduleRepository
from carecall.services import schedule_resolver
from carecall.services.call_service import CallService
from carecall.services.orchestrator import CallOrchestrator, ProviderStatusChannel
from carecall.services.prompt_builder import (
    FIELD_DEFAULTS,
    VOICE_PRESETS,
    build_prompt_package,
    resolve_voice_id,
)
from carecall.services.session_manager import ConversationSessionManager
from carecall.services.voice_client import VoiceProviderClient

ALL_DAYS = [d.value for d in Weekday]
BASE_URL = "https://provider.test/v1"


# ============================================
# Provider double
# ============================================
class FakeProvider:
    """Scriptable stand-in for the voice-AI provider's REST API."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.create_status = 200
        self.create_body = {"conversation_id": "conv_123"}
        self.turn_status = 200
        self.turn_body = {"response": "That sounds lovely.", "audio_url": "https://cdn.test/a.mp3"}
        self.turn_delay = 0.0
        self.turn_log: list[str] = []
        self.conversation_status = "in-progress"
        self.end_status = 200
        self.account_status = 200
        self.turn_gate: Optional[asyncio.Event] = None

    def calls_to(self, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path.endswith("/convai/conversations"):
            return httpx.Response(self.create_status, json=self.create_body)
        if path.endswith("/add_user_message"):
            message = json.loads(request.content)["message"]
            self.turn_log.append(f"start:{message}")
            if self.turn_gate is not None:
                await self.turn_gate.wait()
            await asyncio.sleep(self.turn_delay)
            self.turn_log.append(f"end:{message}")
            return httpx.Response(self.turn_status, json={**self.turn_body, "echo": message})
        if path.endswith("/end"):
            return httpx.Response(self.end_status, json={"ok": True})
        if request.method == "GET" and "/convai/conversations/" in path:
            return httpx.Response(200, json={"status": self.conversation_status})
        if path.endswith("/user"):
            return httpx.Response(self.account_status, json={"subscription": {"tier": "creator"}})
        return httpx.Response(404, json={"detail": "not found"})


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def manager(provider):
    client = VoiceProviderClient(
        api_key="test-key",
        base_url=BASE_URL,
        transport=httpx.MockTransport(provider.handler),
    )
    return ConversationSessionManager(client=client, agent_id="agent_test")


def _package(name="Mary"):
    return build_prompt_package(CareRecipientProfile(id="r-1", name=name))


# ============================================
# Schedule Resolver
# ============================================
class TestNormalizeSchedule:
    def test_basic_schedule(self):
        result = schedule_resolver.normalize_schedule(["monday", "wednesday"], "14:00", {})
        assert isinstance(result, CallSchedule)
        assert result.selected_days == [Weekday.MONDAY, Weekday.WEDNESDAY]
        assert result.default_time == "14:00"
        assert result.day_overrides == {}
        assert result.time_of_day == TimeOfDay.AFTERNOON

    def test_days_sorted_and_deduplicated(self):
        result = schedule_resolver.normalize_schedule(
            ["Friday", "monday ", "friday", "MONDAY"], "09:00"
        )
        assert result.selected_days == [Weekday.MONDAY, Weekday.FRIDAY]

    def test_empty_days_is_empty_schedule(self):
        result = schedule_resolver.normalize_schedule([], "14:00", {})
        assert isinstance(result, ValidationFailure)
        assert result.kind == FailureKind.EMPTY_SCHEDULE
        assert result.field == "days"

    def test_unknown_day_rejected(self):
        result = schedule_resolver.normalize_schedule(["funday"], "14:00")
        assert isinstance(result, ValidationFailure)
        assert result.kind == FailureKind.INVALID_DAY

    @pytest.mark.parametrize("bad_time", ["07:30", "20:30", "14:15", "25:00", "08:60", "noon", "", "1400"])
    def test_unsupported_default_time(self, bad_time):
        result = schedule_resolver.normalize_schedule(["monday"], bad_time)
        assert isinstance(result, ValidationFailure)
        assert result.kind == FailureKind.INVALID_TIME_SLOT
        assert result.field == "defaultTime"

    @pytest.mark.parametrize("edge_time", ["08:00", "20:00", "12:30"])
    def test_boundary_slots_accepted(self, edge_time):
        result = schedule_resolver.normalize_schedule(["monday"], edge_time)
        assert isinstance(result, CallSchedule)

    def test_single_digit_hour_is_padded(self):
        result = schedule_resolver.normalize_schedule(["monday"], "9:30")
        assert result.default_time == "09:30"

    def test_override_for_unselected_day_dropped(self):
        result = schedule_resolver.normalize_schedule(
            ["monday", "wednesday"], "14:00", {"monday": "10:00", "sunday": "18:00"}
        )
        assert result.day_overrides == {Weekday.MONDAY: "10:00"}

    def test_dropped_override_is_not_validated(self):
        result = schedule_resolver.normalize_schedule(["monday"], "14:00", {"sunday": "bogus"})
        assert isinstance(result, CallSchedule)
        assert result.day_overrides == {}

    def test_invalid_override_for_selected_day(self):
        result = schedule_resolver.normalize_schedule(["monday"], "14:00", {"monday": "06:00"})
        assert isinstance(result, ValidationFailure)
        assert result.kind == FailureKind.INVALID_TIME_SLOT
        assert result.field == "customTimes.monday"

    def test_empty_override_value_means_default(self):
        result = schedule_resolver.normalize_schedule(["monday"], "14:00", {"monday": ""})
        assert result.day_overrides == {}

    def test_never_drops_selected_day_or_keeps_foreign_override(self):
        overrides = {day: "10:30" for day in ALL_DAYS}
        for size in range(1, 8):
            for combo in itertools.combinations(ALL_DAYS, size):
                result = schedule_resolver.normalize_schedule(list(combo), "11:00", overrides)
                assert {d.value for d in result.selected_days} == set(combo)
                assert set(result.day_overrides) <= set(result.selected_days)

    def test_normalization_is_idempotent(self):
        first = schedule_resolver.normalize_schedule(
            ["sunday", "Tuesday"], "8:30", {"tuesday": "19:00", "friday": "10:00"}
        )
        second = schedule_resolver.normalize_schedule(*first.as_intake())
        assert second == first


class TestResolveTimeForDay:
    def _schedule(self):
        return schedule_resolver.normalize_schedule(
            ["monday", "wednesday", "friday"], "14:00", {"friday": "10:00"}
        )

    def test_override_wins(self):
        assert schedule_resolver.resolve_time_for_day(self._schedule(), "friday") == "10:00"

    def test_default_when_no_override(self):
        schedule = self._schedule()
        for day in schedule.selected_days:
            if day not in schedule.day_overrides:
                assert schedule_resolver.resolve_time_for_day(schedule, day) == "14:00"

    def test_unscheduled_day_is_caller_error(self):
        result = schedule_resolver.resolve_time_for_day(self._schedule(), "sunday")
        assert isinstance(result, ValidationFailure)
        assert result.kind == FailureKind.DAY_NOT_SCHEDULED


class TestSummarize:
    def test_example_three_days_afternoon(self):
        schedule = schedule_resolver.normalize_schedule(["monday", "wednesday", "friday"], "14:00")
        summary = schedule_resolver.summarize(schedule)
        assert summary.frequency_label == "3 calls per week"
        assert summary.time_of_day == TimeOfDay.AFTERNOON

    @pytest.mark.parametrize("count,label", [
        (1, "1 call per week"),
        (2, "2 calls per week"),
        (6, "6 calls per week"),
        (7, "Daily calls"),
    ])
    def test_frequency_labels(self, count, label):
        schedule = schedule_resolver.normalize_schedule(ALL_DAYS[:count], "09:00")
        assert schedule_resolver.summarize(schedule).frequency_label == label

    def test_time_of_day_uses_default_time_only(self):
        schedule = schedule_resolver.normalize_schedule(
            ["monday", "tuesday", "wednesday"], "09:00",
            {"monday": "18:00", "tuesday": "18:00", "wednesday": "18:00"},
        )
        assert schedule_resolver.summarize(schedule).time_of_day == TimeOfDay.MORNING

    @pytest.mark.parametrize("value,expected", [
        ("08:00", TimeOfDay.MORNING),
        ("11:30", TimeOfDay.MORNING),
        ("12:00", TimeOfDay.AFTERNOON),
        ("16:30", TimeOfDay.AFTERNOON),
        ("17:00", TimeOfDay.EVENING),
        ("20:00", TimeOfDay.EVENING),
    ])
    def test_time_of_day_boundaries(self, value, expected):
        assert schedule_resolver.classify_time_of_day(value) == expected

    def test_per_day_listing(self):
        schedule = schedule_resolver.normalize_schedule(
            ["monday", "friday"], "14:00", {"friday": "10:30"}
        )
        summary = schedule_resolver.summarize(schedule)
        assert summary.uses_custom_times is True
        assert [(d.day, d.time, d.label, d.overridden) for d in summary.per_day] == [
            (Weekday.MONDAY, "14:00", "2:00 PM", False),
            (Weekday.FRIDAY, "10:30", "10:30 AM", True),
        ]


class TestTimeSlots:
    def test_slot_range(self):
        slots = schedule_resolver.available_time_slots()
        assert slots[0].value == "08:00"
        assert slots[-1].value == "20:00"
        assert len(slots) == 25

    @pytest.mark.parametrize("value,label", [
        ("08:00", "8:00 AM"),
        ("12:00", "12:00 PM"),
        ("12:30", "12:30 PM"),
        ("20:00", "8:00 PM"),
        ("garbage", "garbage"),
    ])
    def test_format_time(self, value, label):
        assert schedule_resolver.format_time(value) == label


class TestIsDue:
    def test_due_on_override_time(self):
        schedule = schedule_resolver.normalize_schedule(["monday"], "14:00", {"monday": "09:00"})
        assert schedule_resolver.is_due(schedule, datetime(2026, 10, 19, 9, 0))
        assert not schedule_resolver.is_due(schedule, datetime(2026, 10, 19, 14, 0))

    def test_not_due_on_unselected_day(self):
        schedule = schedule_resolver.normalize_schedule(["tuesday"], "09:00")
        assert not schedule_resolver.is_due(schedule, datetime(2026, 10, 19, 9, 0))


# ============================================
# Profile Prompt Builder
# ============================================
class TestPromptBuilder:
    def test_name_only_profile_uses_all_defaults(self):
        package = build_prompt_package(CareRecipientProfile(name="Mary"))
        assert "Mary" in package.opening_line
        for default in FIELD_DEFAULTS.values():
            assert default in package.system_prompt
        assert "None" not in package.system_prompt

    def test_preferred_name_used_when_present(self):
        package = build_prompt_package(
            CareRecipientProfile(name="Margaret Smith", preferred_name="Peggy")
        )
        assert package.opening_line.startswith("Hello Peggy,")
        assert "Name: Margaret Smith (prefers: Peggy)" in package.system_prompt
        assert package.recipient_name == "Peggy"

    def test_blank_preferred_name_falls_back(self):
        package = build_prompt_package(CareRecipientProfile(name="Mary", preferred_name="  "))
        assert package.opening_line.startswith("Hello Mary,")

    def test_narrative_fields_rendered(self):
        package = build_prompt_package(CareRecipientProfile(
            name="Joe",
            life_story="Retired machinist from Ohio",
            hobbies_interests="Woodworking {and} baseball",
            special_notes="",
        ))
        assert "Life Story: Retired machinist from Ohio" in package.system_prompt
        assert "Woodworking {and} baseball" in package.system_prompt
        assert "Special Notes: No special considerations" in package.system_prompt

    def test_guidelines_present(self):
        prompt = build_prompt_package(CareRecipientProfile(name="Mary")).system_prompt
        assert "preferred name" in prompt
        assert "warm, caring, and patient" in prompt
        assert "family" in prompt
        assert "distressed" in prompt
        assert "never abruptly" in prompt
        assert "routine check-in" in prompt

    def test_opening_line_frames_check_in(self):
        package = build_prompt_package(CareRecipientProfile(name="Mary"))
        assert "check-in call" in package.opening_line

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_missing_identity(self, name):
        result = build_prompt_package(CareRecipientProfile(name=name))
        assert isinstance(result, ValidationFailure)
        assert result.kind == FailureKind.MISSING_IDENTITY

    def test_default_voice(self):
        package = build_prompt_package(CareRecipientProfile(name="Mary"))
        assert package.voice_id == settings.DEFAULT_VOICE_ID

    def test_explicit_voice_kept(self):
        package = build_prompt_package(CareRecipientProfile(name="Mary", voice_id="abc123"))
        assert package.voice_id == "abc123"

    def test_voice_preset_alias_resolved(self):
        assert resolve_voice_id("sarah-warm") == VOICE_PRESETS["sarah-warm"]

    def test_deterministic(self):
        profile = CareRecipientProfile(name="Mary", family_info="Two daughters")
        assert build_prompt_package(profile) == build_prompt_package(profile)


# ============================================
# Conversation Session Manager
# ============================================
class TestStartSession:
    @pytest.mark.asyncio
    async def test_start_success(self, manager, provider):
        session = await manager.start_session(_package())
        assert session.state == SessionState.ACTIVE
        assert session.session_id == "conv_123"
        assert session.agent_id == "agent_test"
        assert session.started_at is not None

    @pytest.mark.asyncio
    async def test_request_carries_prompt_and_turn_params(self, manager, provider):
        package = _package()
        await manager.start_session(package)
        request = provider.calls_to("/convai/conversations")[0]
        body = json.loads(request.content)
        assert request.headers["xi-api-key"] == "test-key"
        assert body["agent_id"] == "agent_test"
        assert body["voice_id"] == package.voice_id
        assert body["first_message"] == package.opening_line
        assert body["system_prompt"] == package.system_prompt
        assert body["turn_detection"]["threshold"] == settings.VAD_THRESHOLD
        assert body["turn_detection"]["silence_duration_ms"] == settings.SILENCE_DURATION_MS
        assert body["conversation_config"]["max_duration_seconds"] == settings.MAX_CALL_DURATION_SECONDS
        assert body["conversation_config"]["inactivity_timeout_seconds"] == settings.INACTIVITY_TIMEOUT_SECONDS

    @pytest.mark.asyncio
    async def test_no_credential_never_touches_network(self):
        def forbidden(request):
            pytest.fail("network call attempted without a credential")

        client = VoiceProviderClient(
            api_key="", base_url=BASE_URL, transport=httpx.MockTransport(forbidden)
        )
        with pytest.raises(ProviderError) as exc_info:
            await ConversationSessionManager(client).start_session(_package())
        assert exc_info.value.kind == ProviderErrorKind.UNAUTHENTICATED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,kind", [
        (500, ProviderErrorKind.UNAVAILABLE),
        (503, ProviderErrorKind.UNAVAILABLE),
        (400, ProviderErrorKind.REJECTED),
        (422, ProviderErrorKind.REJECTED),
    ])
    async def test_status_mapping(self, manager, provider, status, kind):
        provider.create_status = status
        with pytest.raises(ProviderError) as exc_info:
            await manager.start_session(_package())
        assert exc_info.value.kind == kind
        assert exc_info.value.status_code == status
        assert len(provider.calls_to("/convai/conversations")) == 1

    @pytest.mark.asyncio
    async def test_transport_error_is_unavailable(self):
        def broken(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = VoiceProviderClient(
            api_key="k", base_url=BASE_URL, transport=httpx.MockTransport(broken)
        )
        with pytest.raises(ProviderError) as exc_info:
            await ConversationSessionManager(client).start_session(_package())
        assert exc_info.value.kind == ProviderErrorKind.UNAVAILABLE
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_missing_conversation_id(self, manager, provider):
        provider.create_body = {}
        with pytest.raises(ProviderError) as exc_info:
            await manager.start_session(_package())
        assert exc_info.value.kind == ProviderErrorKind.UNAVAILABLE


class TestUserTurns:
    @pytest.mark.asyncio
    async def test_turn_returns_reply(self, manager, provider):
        session = await manager.start_session(_package())
        reply = await manager.send_user_turn(session, "I went for a walk")
        assert reply.text == "That sounds lovely."
        assert reply.audio_ref == "https://cdn.test/a.mp3"
        assert reply.session_ended is False
        assert session.turn_count == 1

    @pytest.mark.asyncio
    async def test_turns_are_serialized(self, manager, provider):
        provider.turn_delay = 0.02
        session = await manager.start_session(_package())
        await asyncio.gather(
            manager.send_user_turn(session, "first"),
            manager.send_user_turn(session, "second"),
            manager.send_user_turn(session, "third"),
        )
        assert provider.turn_log == [
            "start:first", "end:first",
            "start:second", "end:second",
            "start:third", "end:third",
        ]

    @pytest.mark.asyncio
    async def test_turn_on_ended_session(self, manager, provider):
        session = await manager.start_session(_package())
        await manager.end_session(session)
        with pytest.raises(SessionNotActive):
            await manager.send_user_turn(session, "hello?")

    @pytest.mark.asyncio
    async def test_provider_ended_during_turn(self, manager, provider):
        provider.turn_body = {"response": "Goodbye!", "conversation_ended": True}
        session = await manager.start_session(_package())
        reply = await manager.send_user_turn(session, "bye")
        assert reply.session_ended is True
        assert session.state == SessionState.ENDED
        assert session.end_reason == "provider_ended"

    @pytest.mark.asyncio
    async def test_turn_failure_marks_session_failed(self, manager, provider):
        provider.turn_status = 502
        session = await manager.start_session(_package())
        with pytest.raises(ProviderError):
            await manager.send_user_turn(session, "hello")
        assert session.state == SessionState.FAILED
        with pytest.raises(SessionNotActive):
            await manager.send_user_turn(session, "again")

    @pytest.mark.asyncio
    async def test_reply_after_local_end_leaves_session_ended(self, manager, provider):
        provider.turn_gate = asyncio.Event()
        provider.turn_body = {"response": "Goodbye!", "conversation_ended": True}
        session = await manager.start_session(_package())
        turn = asyncio.create_task(manager.send_user_turn(session, "bye"))
        await asyncio.sleep(0.01)
        await manager.end_session(session)
        provider.turn_gate.set()
        reply = await turn
        assert reply.session_ended is True
        assert session.state == SessionState.ENDED
        assert session.end_reason == "completed"

    @pytest.mark.asyncio
    async def test_failure_after_local_end_raises_provider_error(self, manager, provider):
        provider.turn_gate = asyncio.Event()
        provider.turn_status = 503
        session = await manager.start_session(_package())
        turn = asyncio.create_task(manager.send_user_turn(session, "hello"))
        await asyncio.sleep(0.01)
        await manager.end_session(session)
        provider.turn_gate.set()
        with pytest.raises(ProviderError) as exc_info:
            await turn
        assert exc_info.value.kind == ProviderErrorKind.UNAVAILABLE
        assert session.state == SessionState.ENDED


class TestEndSession:
    @pytest.mark.asyncio
    async def test_end_is_idempotent(self, manager, provider):
        session = await manager.start_session(_package())
        await manager.end_session(session)
        ended_at = session.ended_at
        await manager.end_session(session)
        assert session.state == SessionState.ENDED
        assert session.ended_at == ended_at
        assert len(provider.calls_to("/end")) == 1

    @pytest.mark.asyncio
    async def test_release_404_is_not_an_error(self, manager, provider):
        provider.end_status = 404
        session = await manager.start_session(_package())
        await manager.end_session(session)
        assert session.state == SessionState.ENDED

    @pytest.mark.asyncio
    async def test_release_failure_is_swallowed(self, manager, provider):
        provider.end_status = 500
        session = await manager.start_session(_package())
        await manager.end_session(session)
        assert session.state == SessionState.ENDED

    @pytest.mark.asyncio
    async def test_failed_session_released_once(self, manager, provider):
        provider.turn_status = 500
        session = await manager.start_session(_package())
        with pytest.raises(ProviderError):
            await manager.send_user_turn(session, "hi")
        await manager.end_session(session)
        await manager.end_session(session)
        assert session.state == SessionState.FAILED
        assert len(provider.calls_to("/end")) == 1

    @pytest.mark.asyncio
    async def test_open_session_always_ends(self, manager, provider):
        with pytest.raises(RuntimeError):
            async with manager.open_session(_package()) as session:
                raise RuntimeError("audio stream dropped")
        assert session.state == SessionState.ENDED
        assert len(provider.calls_to("/end")) == 1

    def test_illegal_transition(self, manager):
        from carecall.models.domain import ConversationSession

        session = ConversationSession(agent_id="a", voice_id="v", state=SessionState.ENDED)
        with pytest.raises(InvalidSessionTransition):
            manager._transition(session, SessionState.ACTIVE)


class TestRefreshSession:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["done", "timeout"])
    async def test_provider_timeout_is_ended_not_failed(self, manager, provider, status):
        provider.conversation_status = status
        session = await manager.start_session(_package())
        assert await manager.refresh_session(session) == SessionState.ENDED

    @pytest.mark.asyncio
    async def test_provider_failure_status(self, manager, provider):
        provider.conversation_status = "failed"
        session = await manager.start_session(_package())
        assert await manager.refresh_session(session) == SessionState.FAILED

    @pytest.mark.asyncio
    async def test_still_running(self, manager, provider):
        session = await manager.start_session(_package())
        assert await manager.refresh_session(session) == SessionState.ACTIVE


class TestProviderHealth:
    @pytest.mark.asyncio
    async def test_reachable(self, manager, provider):
        health = await manager.check_provider_health()
        assert health.reachable is True
        assert health.round_trip_latency_ms >= 0
        assert provider.calls_to("/user")[0].method == "GET"

    @pytest.mark.asyncio
    async def test_non_2xx_reported(self, manager, provider):
        provider.account_status = 401
        health = await manager.check_provider_health()
        assert health.reachable is False
        assert health.error

    @pytest.mark.asyncio
    async def test_transport_error_reported(self):
        def broken(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = VoiceProviderClient(
            api_key="k", base_url=BASE_URL, transport=httpx.MockTransport(broken)
        )
        health = await ConversationSessionManager(client).check_provider_health()
        assert health.reachable is False

    @pytest.mark.asyncio
    async def test_unconfigured(self):
        client = VoiceProviderClient(api_key="", base_url=BASE_URL)
        health = await ConversationSessionManager(client).check_provider_health()
        assert health.reachable is False
        assert health.round_trip_latency_ms == 0
        assert health.error == "API key not configured"


# ============================================
# Orchestration Facade
# ============================================
class ScriptedChannel:
    """Telephony double: speaks a few utterances, then hangs up."""

    def __init__(self, utterances=(), fail_with=None, hang_seconds=0.0):
        self.utterances = list(utterances)
        self.fail_with = fail_with
        self.hang_seconds = hang_seconds
        self.replies = []

    async def run(self, session, manager):
        for text in self.utterances:
            self.replies.append(await manager.send_user_turn(session, text))
        if self.hang_seconds:
            await asyncio.sleep(self.hang_seconds)
        if self.fail_with:
            raise self.fail_with


class TestRunScheduledCall:
    @pytest.mark.asyncio
    async def test_completed_call(self, manager, provider):
        channel = ScriptedChannel(["Hello", "I'm fine"])
        outcome = await CallOrchestrator(manager).run_scheduled_call(
            CareRecipientProfile(id="r-1", name="Mary"), channel=channel
        )
        assert isinstance(outcome, Completed)
        assert outcome.session_id == "conv_123"
        assert outcome.duration_seconds >= 0
        assert len(channel.replies) == 2
        assert len(provider.calls_to("/end")) == 1

    @pytest.mark.asyncio
    async def test_start_failure_not_connected_without_retry(self, manager, provider):
        provider.create_status = 503
        outcome = await CallOrchestrator(manager).run_scheduled_call(
            CareRecipientProfile(name="Mary"), channel=ScriptedChannel()
        )
        assert isinstance(outcome, NotConnected)
        assert outcome.reason == "could not reach assistant service"
        assert len(provider.calls_to("/convai/conversations")) == 1

    @pytest.mark.asyncio
    async def test_unconfigured_provider(self):
        client = VoiceProviderClient(api_key="", base_url=BASE_URL)
        outcome = await CallOrchestrator(ConversationSessionManager(client)).run_scheduled_call(
            CareRecipientProfile(name="Mary")
        )
        assert outcome == NotConnected(reason="assistant service not configured")

    @pytest.mark.asyncio
    async def test_invalid_profile(self, manager, provider):
        outcome = await CallOrchestrator(manager).run_scheduled_call(CareRecipientProfile())
        assert isinstance(outcome, NotConnected)
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_provider_timeout_completes(self, manager, provider):
        provider.conversation_status = "timeout"
        outcome = await CallOrchestrator(manager).run_scheduled_call(
            CareRecipientProfile(name="Mary"),
            channel=ProviderStatusChannel(poll_interval=0),
        )
        assert isinstance(outcome, Completed)

    @pytest.mark.asyncio
    async def test_max_duration_completes_and_ends_session(self, manager, provider):
        with patch.object(settings, "MAX_CALL_DURATION_SECONDS", 0), \
                patch.object(settings, "CALL_GRACE_SECONDS", 0.05):
            outcome = await CallOrchestrator(manager).run_scheduled_call(
                CareRecipientProfile(name="Mary"),
                channel=ScriptedChannel(hang_seconds=5),
            )
        assert isinstance(outcome, Completed)
        assert len(provider.calls_to("/end")) == 1

    @pytest.mark.asyncio
    async def test_channel_failure_still_ends_session(self, manager, provider):
        outcome = await CallOrchestrator(manager).run_scheduled_call(
            CareRecipientProfile(name="Mary"),
            channel=ScriptedChannel(fail_with=ConnectionResetError("stream closed")),
        )
        assert outcome == NotConnected(reason="call interrupted")
        assert len(provider.calls_to("/end")) == 1

    @pytest.mark.asyncio
    async def test_turn_failure_after_active(self, manager, provider):
        provider.turn_status = 500
        outcome = await CallOrchestrator(manager).run_scheduled_call(
            CareRecipientProfile(name="Mary"), channel=ScriptedChannel(["hi"])
        )
        assert isinstance(outcome, NotConnected)
        assert len(provider.calls_to("/end")) == 1

    @pytest.mark.asyncio
    async def test_status_polls_tolerate_blips(self, manager, provider):
        channel = ProviderStatusChannel(poll_interval=0, failure_limit=2)
        statuses = iter([ProviderError(ProviderErrorKind.UNAVAILABLE, "blip"), "done"])
        original = manager.refresh_session

        async def flaky(session):
            item = next(statuses)
            if isinstance(item, Exception):
                raise item
            provider.conversation_status = item
            return await original(session)

        with patch.object(manager, "refresh_session", side_effect=flaky):
            outcome = await CallOrchestrator(manager).run_scheduled_call(
                CareRecipientProfile(name="Mary"), channel=channel
            )
        assert isinstance(outcome, Completed)

    @pytest.mark.asyncio
    async def test_concurrent_calls_are_independent(self, manager, provider):
        orchestrator = CallOrchestrator(manager)
        outcomes = await asyncio.gather(
            orchestrator.run_scheduled_call(CareRecipientProfile(name="Ann"), channel=ScriptedChannel(["a"])),
            orchestrator.run_scheduled_call(CareRecipientProfile(name="Bob"), channel=ScriptedChannel(["b"])),
        )
        assert all(isinstance(o, Completed) for o in outcomes)
        assert len(provider.calls_to("/end")) == 2


# ============================================
# Call Service
# ============================================
MONDAY_2PM = datetime(2026, 10, 19, 14, 0)


def _call_service(orchestrator, recipients):
    profiles, schedules = ProfileRepository(), ScheduleRepository()
    for recipient_id, name in recipients.items():
        profiles.save(recipient_id, CareRecipientProfile(id=recipient_id, name=name))
        schedules.save(recipient_id, schedule_resolver.normalize_schedule(["monday"], "14:00"))
    return CallService(
        profile_repo=profiles,
        schedule_repo=schedules,
        call_log_repo=CallLogRepository(),
        orchestrator=orchestrator,
    )


class CrashingOrchestrator:
    """Completes every call except those for recipients named in ``crash_for``."""

    def __init__(self, crash_for):
        self.crash_for = set(crash_for)

    async def run_scheduled_call(self, profile, channel=None):
        if profile.name in self.crash_for:
            raise RuntimeError("telephony bridge crashed")
        return Completed(session_id=f"conv_{profile.id}", duration_seconds=1.0)


class TestDispatchDueCalls:
    @pytest.mark.asyncio
    async def test_overlapping_dispatch_dials_once(self, manager, provider):
        service = _call_service(CallOrchestrator(manager), {"r-1": "Ann"})
        with patch.object(settings, "SESSION_POLL_INTERVAL", 0.01):
            first = asyncio.create_task(service.dispatch_due_calls(MONDAY_2PM))
            await asyncio.sleep(0.05)
            assert [c["status"] for c in service.list_calls()] == ["in_progress"]
            second = await service.dispatch_due_calls(MONDAY_2PM)
            provider.conversation_status = "done"
            first_result = await first

        assert second["calls"] == []
        assert second["skipped"] == ["r-1"]
        assert len(first_result["calls"]) == 1
        assert len(provider.calls_to("/convai/conversations")) == 1

    @pytest.mark.asyncio
    async def test_running_manual_call_blocks_dispatch(self, manager, provider):
        service = _call_service(CallOrchestrator(manager), {"r-1": "Ann"})
        with patch.object(settings, "SESSION_POLL_INTERVAL", 0.01):
            manual = asyncio.create_task(service.place_call("r-1"))
            await asyncio.sleep(0.05)
            dispatched = await service.dispatch_due_calls(MONDAY_2PM)
            provider.conversation_status = "done"
            await manual
        assert dispatched["calls"] == []
        assert len(provider.calls_to("/convai/conversations")) == 1

    @pytest.mark.asyncio
    async def test_record_updated_in_place(self):
        service = _call_service(CrashingOrchestrator([]), {"r-1": "Ann"})
        record = await service.place_call("r-1")
        log = service.list_calls()
        assert len(log) == 1
        assert log[0]["id"] == record["id"]
        assert log[0]["status"] == "completed"
        assert log[0]["session_id"] == "conv_r-1"
        assert log[0]["ended_at"] is not None

    @pytest.mark.asyncio
    async def test_one_failing_call_does_not_sink_the_others(self):
        service = _call_service(CrashingOrchestrator(["Bob"]), {"r-1": "Ann", "r-2": "Bob"})
        result = await service.dispatch_due_calls(MONDAY_2PM)
        assert [c["recipient_id"] for c in result["calls"]] == ["r-1"]
        assert result["failed"] == ["r-2"]
        failed = service.list_calls(recipient_id="r-2")[0]
        assert failed["status"] == "error"
        assert failed["reason"] == "telephony bridge crashed"

    @pytest.mark.asyncio
    async def test_failed_call_still_counts_as_recent(self):
        service = _call_service(CrashingOrchestrator(["Bob"]), {"r-2": "Bob"})
        await service.dispatch_due_calls(MONDAY_2PM)
        again = await service.dispatch_due_calls(MONDAY_2PM)
        assert again["skipped"] == ["r-2"]
