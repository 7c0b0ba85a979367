# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Request / Response schemas: API contract definitions.
These are Pydantic models used ONLY at the controller (HTTP) boundary.
Intake accepts the signup wizard's camelCase keys as well as snake_case.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from carecall.models.domain import CallSchedule, ScheduleSummary


class _Intake(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Profile Schemas ──

class ProfileUpsertRequest(_Intake):
    name: str = Field(..., min_length=1, max_length=255, description="Full name")
    preferred_name: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=32)
    life_story: Optional[str] = Field(default=None, max_length=5000)
    family_info: Optional[str] = Field(default=None, max_length=5000)
    hobbies_interests: Optional[str] = Field(default=None, max_length=5000)
    favorite_topics: Optional[str] = Field(default=None, max_length=5000)
    personality_traits: Optional[str] = Field(default=None, max_length=5000)
    health_status: Optional[str] = Field(default=None, max_length=5000)
    conversation_style: Optional[str] = Field(default=None, max_length=1000)
    special_notes: Optional[str] = Field(default=None, max_length=5000)
    voice_id: Optional[str] = Field(default=None, max_length=64)


# ── Schedule Schemas ──

class CallPreferencesRequest(_Intake):
    """Schedule intake: ``{days, defaultTime, customTimes}``."""
    days: list[str] = Field(default_factory=list, description="Selected weekdays")
    default_time: str = Field(default="14:00", description="HH:MM half-hour slot")
    custom_times: dict[str, str] = Field(
        default_factory=dict, description="Per-day HH:MM overrides"
    )


class ScheduleResponse(BaseModel):
    recipient_id: str
    schedule: CallSchedule
    summary: ScheduleSummary


class DayTimeResponse(BaseModel):
    recipient_id: str
    day: str
    time: str
    label: str


# ── Call Schemas ──

class CallRecordResponse(BaseModel):
    id: str
    recipient_id: str
    trigger: str
    status: str
    session_id: Optional[str] = None
    duration_seconds: Optional[float] = None
    reason: Optional[str] = None
    started_at: str
    ended_at: Optional[str] = None


class DispatchRequest(BaseModel):
    now: Optional[datetime] = Field(
        default=None, description="Wall-clock minute to evaluate (defaults to now)"
    )


class DispatchResponse(BaseModel):
    checked_at: str
    calls: list[CallRecordResponse]
    skipped: list[str]
    failed: list[str] = []
