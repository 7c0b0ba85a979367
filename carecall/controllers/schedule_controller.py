# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: Call schedule endpoints.
Thin HTTP layer, delegates ALL logic to ScheduleService.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from carecall.core.dependencies import get_schedule_service
from carecall.core.errors import InputRejected
from carecall.models.domain import ScheduleSummary, TimeSlot
from carecall.schemas.calls import CallPreferencesRequest, DayTimeResponse, ScheduleResponse
from carecall.services import schedule_resolver
from carecall.services.schedule_service import ScheduleService

router = APIRouter(prefix="/api/v1", tags=["Schedules"])


def rejected(exc: InputRejected) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={
            "error": exc.failure.kind.value,
            "detail": exc.failure.detail,
            "field": exc.failure.field,
        },
    )


@router.get("/schedules/time-slots", response_model=list[TimeSlot])
def list_time_slots():
    """Every call time a family can pick."""
    return schedule_resolver.available_time_slots()


@router.put("/recipients/{recipient_id}/schedule", response_model=ScheduleResponse)
def save_schedule(
    recipient_id: str,
    payload: CallPreferencesRequest,
    service: ScheduleService = Depends(get_schedule_service),
):
    """Create or supersede a recipient's call schedule."""
    try:
        schedule = service.save_preferences(
            recipient_id=recipient_id,
            days=payload.days,
            default_time=payload.default_time,
            custom_times=payload.custom_times,
        )
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InputRejected as e:
        raise rejected(e)
    return ScheduleResponse(
        recipient_id=recipient_id,
        schedule=schedule,
        summary=schedule_resolver.summarize(schedule),
    )


@router.get("/recipients/{recipient_id}/schedule", response_model=ScheduleResponse)
def get_schedule(
    recipient_id: str,
    service: ScheduleService = Depends(get_schedule_service),
):
    try:
        schedule = service.get_schedule(recipient_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ScheduleResponse(
        recipient_id=recipient_id,
        schedule=schedule,
        summary=schedule_resolver.summarize(schedule),
    )


@router.get("/recipients/{recipient_id}/schedule/summary", response_model=ScheduleSummary)
def get_schedule_summary(
    recipient_id: str,
    service: ScheduleService = Depends(get_schedule_service),
):
    """Frequency label, time-of-day label and per-day times."""
    try:
        return service.get_summary(recipient_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/recipients/{recipient_id}/schedule/days/{day}", response_model=DayTimeResponse)
def get_time_for_day(
    recipient_id: str,
    day: str,
    service: ScheduleService = Depends(get_schedule_service),
):
    """Call time on one weekday (override if set, else the default time)."""
    try:
        return service.resolve_day(recipient_id, day)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InputRejected as e:
        raise rejected(e)


@router.delete("/recipients/{recipient_id}/schedule")
def delete_schedule(
    recipient_id: str,
    service: ScheduleService = Depends(get_schedule_service),
):
    """Remove the schedule; the recipient receives no further scheduled calls."""
    try:
        return service.delete_schedule(recipient_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/history")
def get_history(
    recipient_id: Optional[str] = None,
    event_type: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1, description="Max results"),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Audit log of schedule and profile changes."""
    return service.list_history(recipient_id=recipient_id, event_type=event_type, limit=limit)
