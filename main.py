# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
CareCall Orchestrator
=====================
Schedules recurring companion calls for care recipients and runs each call
as a personalized voice-AI conversation.

    preferences ─► normalized weekly schedule ─► due-call dispatch
    profile     ─► prompt package ─► provider session ─► call outcome

Port: 8010
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from carecall.controllers import call_controller, recipient_controller, schedule_controller, system_controller
from carecall.core.config import settings
from carecall.core.errors import ProviderError, ProviderErrorKind
from carecall.core.logging import get_logger
from carecall.middleware import MetricsMiddleware, RequestIDMiddleware

logger = get_logger("carecall")


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
    request_id: Optional[str] = None


# ── Lifespan ──────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Log startup configuration; calls need a provider credential to connect."""
    if settings.VOICE_API_KEY:
        logger.info(
            "Call orchestrator starting: provider=%s, agent=%s",
            settings.VOICE_API_BASE_URL, settings.VOICE_AGENT_ID,
        )
    else:
        logger.warning("Call orchestrator starting WITHOUT a voice API key, calls will not connect")
    yield
    logger.info("Call orchestrator shutting down")


# ── FastAPI App ───────────────────────────────────────────────────────────
app = FastAPI(
    title="CareCall Orchestrator",
    description="Call scheduling and personalized conversation orchestration.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    responses={
        422: {"model": ErrorResponse, "description": "Validation error"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)


# ── Exception handlers ────────────────────────────────────────────────────
@app.exception_handler(ProviderError)
async def provider_exception_handler(request: Request, exc: ProviderError):
    req_id = getattr(request.state, "request_id", None)
    logger.warning("Provider error: %s", exc, extra={"request_id": req_id})
    status = 503 if exc.kind is ProviderErrorKind.UNAUTHENTICATED else 502
    return JSONResponse(
        status_code=status,
        content={"error": f"provider_{exc.kind.value}", "detail": exc.detail, "request_id": req_id},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    req_id = getattr(request.state, "request_id", None)
    logger.exception("Unhandled exception", extra={"request_id": req_id})
    return JSONResponse(
        status_code=500,
        content={"error": "internal_server_error", "detail": str(exc), "request_id": req_id},
    )


# ── Routers ───────────────────────────────────────────────────────────────
app.include_router(system_controller.router)
app.include_router(recipient_controller.router)
app.include_router(schedule_controller.router)
app.include_router(call_controller.router)


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=settings.SERVICE_PORT)
