# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: System endpoints (health, readiness, metrics).
Pure HTTP layer, no business logic.
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from carecall.core.config import settings
from carecall.core.dependencies import get_profile_repo, get_schedule_repo

router = APIRouter(tags=["System"])


@router.get("/health")
def health_check():
    """Liveness probe for Docker and orchestration."""
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "schedules_count": get_schedule_repo().count(),
        "recipients_count": get_profile_repo().count(),
    }


@router.get("/health/ready")
def readiness_check():
    """Readiness probe; calls can only be placed with a provider credential."""
    return {
        "status": "ready",
        "service": settings.SERVICE_NAME,
        "provider_configured": bool(settings.VOICE_API_KEY),
    }


@router.get("/metrics")
def prometheus_metrics():
    """Expose Prometheus metrics in OpenMetrics format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
