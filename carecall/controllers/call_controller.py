# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: Call placement, due-call dispatch, call log and provider health.
Thin HTTP layer, delegates ALL logic to CallService / the session manager.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from carecall.core.dependencies import get_call_service, get_session_manager
from carecall.models.domain import ProviderHealth
from carecall.schemas.calls import CallRecordResponse, DispatchRequest, DispatchResponse
from carecall.services.call_service import CallService
from carecall.services.session_manager import ConversationSessionManager

router = APIRouter(prefix="/api/v1", tags=["Calls"])


@router.post("/recipients/{recipient_id}/calls", response_model=CallRecordResponse)
async def place_call(
    recipient_id: str,
    service: CallService = Depends(get_call_service),
):
    """Run a call now and wait for its outcome."""
    try:
        return await service.place_call(recipient_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/calls/dispatch", response_model=DispatchResponse)
async def dispatch_due_calls(
    payload: Optional[DispatchRequest] = None,
    service: CallService = Depends(get_call_service),
):
    """Entry point for the time-based trigger: run every call due this minute."""
    return await service.dispatch_due_calls(now=payload.now if payload else None)


@router.get("/calls", response_model=list[CallRecordResponse])
def list_calls(
    recipient_id: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1, description="Max results"),
    service: CallService = Depends(get_call_service),
):
    return service.list_calls(recipient_id=recipient_id, limit=limit)


@router.get("/provider/health", response_model=ProviderHealth)
async def provider_health(
    manager: ConversationSessionManager = Depends(get_session_manager),
):
    """Reachability and round-trip latency of the voice-AI provider."""
    return await manager.check_provider_health()
