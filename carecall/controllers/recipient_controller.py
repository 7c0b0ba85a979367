# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: Care-recipient profile, prompt preview and voice catalogue.
Thin HTTP layer, delegates ALL logic to ProfileService.
"""

from fastapi import APIRouter, Depends, HTTPException

from carecall.controllers.schedule_controller import rejected
from carecall.core.dependencies import get_profile_service
from carecall.core.errors import InputRejected
from carecall.models.domain import CareRecipientProfile, PromptPackage, Voice
from carecall.schemas.calls import ProfileUpsertRequest
from carecall.services.profile_service import ProfileService
from carecall.services.prompt_builder import VOICE_CATALOG

router = APIRouter(prefix="/api/v1", tags=["Recipients"])


@router.get("/voices", response_model=list[Voice])
def list_voices():
    """Voices a caregiver can choose for the companion."""
    return VOICE_CATALOG


@router.put("/recipients/{recipient_id}/profile", response_model=CareRecipientProfile)
def upsert_profile(
    recipient_id: str,
    payload: ProfileUpsertRequest,
    service: ProfileService = Depends(get_profile_service),
):
    """Create or replace a care-recipient profile."""
    return service.upsert_profile(recipient_id, payload.model_dump())


@router.get("/recipients/{recipient_id}/profile", response_model=CareRecipientProfile)
def get_profile(
    recipient_id: str,
    service: ProfileService = Depends(get_profile_service),
):
    try:
        return service.get_profile(recipient_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/recipients/{recipient_id}/prompt", response_model=PromptPackage)
def preview_prompt(
    recipient_id: str,
    service: ProfileService = Depends(get_profile_service),
):
    """Opening line, system prompt and voice the next call would use."""
    try:
        return service.preview_prompt(recipient_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InputRejected as e:
        raise rejected(e)
