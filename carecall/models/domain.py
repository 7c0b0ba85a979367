# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Domain models: pure data structures, NO FastAPI dependency.
"""

import asyncio
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, PrivateAttr


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def ordered(cls) -> list["Weekday"]:
        """Calendar order, Monday first (matches ``datetime.weekday()``)."""
        return list(cls)


class TimeOfDay(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class FailureKind(str, Enum):
    EMPTY_SCHEDULE = "empty_schedule"
    INVALID_DAY = "invalid_day"
    INVALID_TIME_SLOT = "invalid_time_slot"
    DAY_NOT_SCHEDULED = "day_not_scheduled"
    MISSING_IDENTITY = "missing_identity"


class ValidationFailure(BaseModel):
    """Caller-input problem returned (not raised) by the pure components."""
    kind: FailureKind
    detail: str
    field: Optional[str] = None


# ── Scheduling ──

class CallSchedule(BaseModel):
    """Normalized weekly call schedule for one care recipient."""
    selected_days: list[Weekday] = Field(..., min_length=1, max_length=7)
    default_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    day_overrides: dict[Weekday, str] = Field(default_factory=dict)
    time_of_day: TimeOfDay

    def as_intake(self) -> tuple[list[str], str, dict[str, str]]:
        """Re-express the schedule in raw intake form."""
        return (
            [d.value for d in self.selected_days],
            self.default_time,
            {d.value: t for d, t in self.day_overrides.items()},
        )


class TimeSlot(BaseModel):
    value: str
    label: str


class DaySchedule(BaseModel):
    day: Weekday
    time: str
    label: str
    overridden: bool = False


class ScheduleSummary(BaseModel):
    frequency_label: str
    time_of_day: TimeOfDay
    uses_custom_times: bool = False
    per_day: list[DaySchedule] = Field(default_factory=list)


# ── Profile & prompt ──

class CareRecipientProfile(BaseModel):
    """Care-recipient context used to personalize calls. Read-only to the engine."""
    id: Optional[str] = None
    name: Optional[str] = None
    preferred_name: Optional[str] = None
    phone: Optional[str] = None
    life_story: Optional[str] = None
    family_info: Optional[str] = None
    hobbies_interests: Optional[str] = None
    favorite_topics: Optional[str] = None
    personality_traits: Optional[str] = None
    health_status: Optional[str] = None
    conversation_style: Optional[str] = None
    special_notes: Optional[str] = None
    voice_id: Optional[str] = None


class PromptPackage(BaseModel):
    opening_line: str
    system_prompt: str
    voice_id: str
    recipient_name: str


class Voice(BaseModel):
    id: str
    name: str
    description: str
    gender: str


# ── Conversation session ──

class SessionState(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    ENDED = "ended"
    FAILED = "failed"


class ConversationSession(BaseModel):
    """One live conversation with the voice-AI provider, bound to one call."""
    agent_id: str
    voice_id: str
    session_id: Optional[str] = None
    state: SessionState = SessionState.CREATED
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    end_reason: Optional[str] = None
    turn_count: int = 0

    _turn_lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)
    _released: bool = PrivateAttr(default=False)

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.ended_at or datetime.now(self.started_at.tzinfo)
        return round((end - self.started_at).total_seconds(), 3)


class AgentReply(BaseModel):
    text: Optional[str] = None
    audio_ref: Optional[str] = None
    session_ended: bool = False


class ProviderHealth(BaseModel):
    reachable: bool
    round_trip_latency_ms: float
    error: Optional[str] = None


# ── Call outcome ──

class Completed(BaseModel):
    status: Literal["completed"] = "completed"
    session_id: str
    duration_seconds: float


class NotConnected(BaseModel):
    status: Literal["not_connected"] = "not_connected"
    reason: str


CallOutcome = Annotated[Union[Completed, NotConnected], Field(discriminator="status")]
