"""
DocBridge Backend — Health Check Route
========================================

What:  Liveness/readiness probe for Docker and load balancers.
How:   Reports object store state (expiry loop running, active files,
       pending expirations) and whether Google OAuth is configured.

Status levels:
    - healthy:   expiry loop running
    - degraded:  expiry loop stopped (files would outlive their window)
"""

import time

from fastapi import APIRouter, Depends

from app import __version__
from app.config import Settings
from app.dependencies import get_object_store, get_settings
from app.schemas.files import HealthResponse
from app.services.object_store import ObjectStore

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(
    store: ObjectStore = Depends(get_object_store),
    settings: Settings = Depends(get_settings),
) -> HealthResponse:
    running = store.running
    return HealthResponse(
        status="healthy" if running else "degraded",
        version=__version__,
        object_store="running" if running else "stopped",
        stored_files=len(store),
        pending_expirations=len(store.pending_expirations()),
        google_configured=bool(settings.google_client_id and settings.google_client_secret),
        uptime_seconds=round(time.time() - _start_time, 2),
    )
