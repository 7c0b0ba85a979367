# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Schedule resolution. Pure computation, no side effects.

Turns raw call preferences (days, default time, per-day custom times) into a
normalized ``CallSchedule`` and answers "when is the call on day X?".
Errors are returned as ``ValidationFailure`` values, never raised.
No I/O, no metrics, no logging.
"""

import re
from datetime import datetime
from typing import Iterable, Mapping, Optional, Union

from carecall.models.domain import (
    CallSchedule,
    DaySchedule,
    FailureKind,
    ScheduleSummary,
    TimeOfDay,
    TimeSlot,
    ValidationFailure,
    Weekday,
)

FIRST_SLOT_MINUTES = 8 * 60
LAST_SLOT_MINUTES = 20 * 60
SLOT_STEP_MINUTES = 30

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")
_WEEKDAYS: dict[str, Weekday] = {d.value: d for d in Weekday}


def available_time_slots() -> list[TimeSlot]:
    """Every supported call time, 08:00 through 20:00 in half-hour steps."""
    slots: list[TimeSlot] = []
    for minutes in range(FIRST_SLOT_MINUTES, LAST_SLOT_MINUTES + 1, SLOT_STEP_MINUTES):
        value = f"{minutes // 60:02d}:{minutes % 60:02d}"
        slots.append(TimeSlot(value=value, label=format_time(value)))
    return slots


def format_time(value: str) -> str:
    """Render ``"14:30"`` as ``"2:30 PM"``. Unparseable values pass through."""
    match = _TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        return value
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return value
    hour12 = hour - 12 if hour > 12 else (12 if hour == 0 else hour)
    suffix = "PM" if hour >= 12 else "AM"
    return f"{hour12}:{minute:02d} {suffix}"


def parse_time_slot(value: object) -> Optional[str]:
    """Return the zero-padded ``HH:MM`` form of a supported slot, else None."""
    if not isinstance(value, str):
        return None
    match = _TIME_PATTERN.match(value.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if minute % SLOT_STEP_MINUTES != 0 or minute > 59:
        return None
    total = hour * 60 + minute
    if not FIRST_SLOT_MINUTES <= total <= LAST_SLOT_MINUTES:
        return None
    return f"{hour:02d}:{minute:02d}"


def classify_time_of_day(value: str) -> TimeOfDay:
    hour = int(value.split(":")[0])
    if hour < 12:
        return TimeOfDay.MORNING
    if hour < 17:
        return TimeOfDay.AFTERNOON
    return TimeOfDay.EVENING


def _parse_day(raw: object) -> Optional[Weekday]:
    if isinstance(raw, Weekday):
        return raw
    if not isinstance(raw, str):
        return None
    return _WEEKDAYS.get(raw.strip().lower())


def normalize_schedule(
    selected_days: Iterable[Union[str, Weekday]],
    default_time: str,
    raw_overrides: Optional[Mapping[str, str]] = None,
) -> Union[CallSchedule, ValidationFailure]:
    """
    Validate raw preferences and build a ``CallSchedule``.

    Days are de-duplicated and stored in calendar order. Overrides for days
    that are not selected are dropped silently; overrides with an empty value
    mean "use the default time" and are dropped too.
    """
    chosen: set[Weekday] = set()
    for raw in selected_days or ():
        day = _parse_day(raw)
        if day is None:
            return ValidationFailure(
                kind=FailureKind.INVALID_DAY,
                detail=f"Unknown weekday '{raw}'",
                field="days",
            )
        chosen.add(day)

    if not chosen:
        return ValidationFailure(
            kind=FailureKind.EMPTY_SCHEDULE,
            detail="Please select at least one day for calls",
            field="days",
        )

    normalized_default = parse_time_slot(default_time)
    if normalized_default is None:
        return ValidationFailure(
            kind=FailureKind.INVALID_TIME_SLOT,
            detail=(
                f"Unsupported call time '{default_time}': use a half-hour slot "
                "between 08:00 and 20:00"
            ),
            field="defaultTime",
        )

    ordered_days = [d for d in Weekday.ordered() if d in chosen]

    overrides: dict[Weekday, str] = {}
    for raw_day, raw_time in (raw_overrides or {}).items():
        day = _parse_day(raw_day)
        if day is None or day not in chosen or not raw_time:
            continue
        slot = parse_time_slot(raw_time)
        if slot is None:
            return ValidationFailure(
                kind=FailureKind.INVALID_TIME_SLOT,
                detail=(
                    f"Unsupported call time '{raw_time}' for {day.label}: use a "
                    "half-hour slot between 08:00 and 20:00"
                ),
                field=f"customTimes.{day.value}",
            )
        overrides[day] = slot

    return CallSchedule(
        selected_days=ordered_days,
        default_time=normalized_default,
        day_overrides={d: overrides[d] for d in ordered_days if d in overrides},
        time_of_day=classify_time_of_day(normalized_default),
    )


def resolve_time_for_day(
    schedule: CallSchedule,
    day: Union[str, Weekday],
) -> Union[str, ValidationFailure]:
    """The override for ``day`` if one exists, else the default time."""
    weekday = _parse_day(day)
    if weekday is None or weekday not in schedule.selected_days:
        return ValidationFailure(
            kind=FailureKind.DAY_NOT_SCHEDULED,
            detail=f"No call is scheduled on '{day}'",
            field="day",
        )
    return schedule.day_overrides.get(weekday, schedule.default_time)


def frequency_label(day_count: int) -> str:
    if day_count == 1:
        return "1 call per week"
    if day_count == 7:
        return "Daily calls"
    return f"{day_count} calls per week"


def summarize(schedule: CallSchedule) -> ScheduleSummary:
    """
    Human-readable summary. ``time_of_day`` always comes from the default
    time, even when most days carry overrides.
    """
    per_day = []
    for day in schedule.selected_days:
        time = schedule.day_overrides.get(day, schedule.default_time)
        per_day.append(
            DaySchedule(
                day=day,
                time=time,
                label=format_time(time),
                overridden=day in schedule.day_overrides,
            )
        )
    return ScheduleSummary(
        frequency_label=frequency_label(len(schedule.selected_days)),
        time_of_day=classify_time_of_day(schedule.default_time),
        uses_custom_times=bool(schedule.day_overrides),
        per_day=per_day,
    )


def is_due(schedule: CallSchedule, now: datetime) -> bool:
    """True when ``now`` falls on a selected day at that day's call time."""
    weekday = Weekday.ordered()[now.weekday()]
    if weekday not in schedule.selected_days:
        return False
    return schedule.day_overrides.get(weekday, schedule.default_time) == now.strftime("%H:%M")
