"""Storage connectivity routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from media_import_engine.api.dependencies import get_import_job_service
from media_import_engine.application.services import ImportJobService
from media_import_engine.domain.monitoring_models import (
    StorageHealthResponse,
    StoreHealthResponse,
)
from media_import_engine.domain.storage_models import StoreHealth

router = APIRouter(prefix="/storage", tags=["storage"])


def _to_response(health: StoreHealth) -> StoreHealthResponse:
    return StoreHealthResponse(
        ok=health.ok,
        detail=health.detail,
        status_code=health.status_code,
        tested_path=health.tested_path,
    )


@router.get("/health", response_model=StorageHealthResponse, status_code=200)
async def storage_health(
    service: ImportJobService = Depends(get_import_job_service),
) -> StorageHealthResponse:
    """Probe source listing and destination credentials."""

    source, destination = await service.check_storage()
    return StorageHealthResponse(
        source=_to_response(source),
        destination=_to_response(destination),
    )


__all__ = ["router"]
