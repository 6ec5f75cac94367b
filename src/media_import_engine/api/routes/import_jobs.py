"""Operator routes for creating, scanning, running and inspecting import jobs."""

from __future__ import annotations

import logging
from typing import NoReturn

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query

from media_import_engine.api.dependencies import get_import_job_service
from media_import_engine.application.services import ImportJobService
from media_import_engine.domain.errors import (
    ImportJobConflictError,
    ImportJobNotFoundError,
    ImportJobValidationError,
    ImportScanError,
    StorageError,
)
from media_import_engine.domain.monitoring_models import (
    CreateImportJobRequest,
    ImportJobDetailResponse,
    ImportJobItemListResponse,
    ImportJobItemResponse,
    ImportJobListResponse,
    ImportJobResponse,
    ItemCountsResponse,
    ScanJobRequest,
    ScanResultResponse,
    StartJobRequest,
    StartJobResponse,
)

router = APIRouter(prefix="/import-jobs", tags=["import jobs"])

logger = logging.getLogger(__name__)


def _raise_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, ImportJobNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ImportJobValidationError):
        raise HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, ImportJobConflictError):
        raise HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ImportScanError | StorageError):
        raise HTTPException(status_code=502, detail=str(exc))
    logger.error("Unexpected import job error: %s", exc, exc_info=exc)
    raise HTTPException(status_code=500, detail="Unexpected import job error")


def _parse_item_ids(raw: str) -> list[int]:
    item_ids: list[int] = []
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        try:
            item_ids.append(int(token))
        except ValueError as exc:
            raise ImportJobValidationError(f"Invalid item id '{token}'.") from exc
    return item_ids


@router.post("", response_model=ImportJobResponse, status_code=201)
async def create_import_job(
    payload: CreateImportJobRequest,
    service: ImportJobService = Depends(get_import_job_service),
) -> ImportJobResponse:
    """Create a queued import job."""

    try:
        job = await service.create_job(payload.mode, payload.settings)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return ImportJobResponse.from_job(job)


@router.get("", response_model=ImportJobListResponse, status_code=200)
async def list_import_jobs(
    limit: int = Query(default=50),
    service: ImportJobService = Depends(get_import_job_service),
) -> ImportJobListResponse:
    """List jobs, newest first."""

    try:
        jobs = await service.list_jobs(limit)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return ImportJobListResponse(jobs=[ImportJobResponse.from_job(job) for job in jobs])


@router.get("/{job_id}", response_model=ImportJobDetailResponse, status_code=200)
async def get_import_job(
    job_id: str = Path(...),
    service: ImportJobService = Depends(get_import_job_service),
) -> ImportJobDetailResponse:
    """Return one job with live item counts."""

    try:
        job, counts = await service.get_job_detail(job_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return ImportJobDetailResponse(
        job=ImportJobResponse.from_job(job),
        counts=ItemCountsResponse.from_counts(counts),
    )


@router.post("/{job_id}/scan", response_model=ScanResultResponse, status_code=200)
async def scan_import_job(
    job_id: str = Path(...),
    payload: ScanJobRequest | None = Body(default=None),
    service: ImportJobService = Depends(get_import_job_service),
) -> ScanResultResponse:
    """List the source prefix and register new media objects."""

    request = payload or ScanJobRequest()
    try:
        result = await service.scan_job(job_id, prefix=request.prefix, limit=request.limit)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return ScanResultResponse(
        job_id=result.job_id,
        prefix=result.prefix,
        scanned=result.scanned,
        inserted=result.inserted,
        next_cursor=result.next_cursor,
        sample=result.sample,
    )


@router.post("/{job_id}/start", response_model=StartJobResponse, status_code=202)
async def start_import_job(
    job_id: str = Path(...),
    payload: StartJobRequest | None = Body(default=None),
    service: ImportJobService = Depends(get_import_job_service),
) -> StartJobResponse:
    """Start or resume a job in the background."""

    request = payload or StartJobRequest()
    try:
        result = await service.start_job(job_id, request.item_ids)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return StartJobResponse(
        job_id=result.job_id,
        status=result.status,
        selected_count=result.selected_count,
    )


@router.post("/{job_id}/pause", response_model=ImportJobResponse, status_code=200)
async def pause_import_job(
    job_id: str = Path(...),
    service: ImportJobService = Depends(get_import_job_service),
) -> ImportJobResponse:
    """Pause a job; the runner stops after its current item."""

    try:
        job = await service.pause_job(job_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return ImportJobResponse.from_job(job)


@router.post("/{job_id}/cancel", response_model=ImportJobResponse, status_code=200)
async def cancel_import_job(
    job_id: str = Path(...),
    service: ImportJobService = Depends(get_import_job_service),
) -> ImportJobResponse:
    """Cancel a job and skip its remaining items."""

    try:
        job = await service.cancel_job(job_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return ImportJobResponse.from_job(job)


@router.get("/{job_id}/items", response_model=ImportJobItemListResponse, status_code=200)
async def list_import_job_items(
    job_id: str = Path(...),
    status: str | None = Query(default=None),
    limit: int = Query(default=200),
    service: ImportJobService = Depends(get_import_job_service),
) -> ImportJobItemListResponse:
    """List items newest first, optionally filtered by status."""

    try:
        items = await service.list_items(job_id, status=status, limit=limit)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return ImportJobItemListResponse(items=[ImportJobItemResponse.from_item(item) for item in items])


@router.get("/{job_id}/items/by-ids", response_model=ImportJobItemListResponse, status_code=200)
async def get_import_job_items_by_ids(
    job_id: str = Path(...),
    ids: str = Query(default=""),
    service: ImportJobService = Depends(get_import_job_service),
) -> ImportJobItemListResponse:
    """Fetch selected items (comma-separated ids) in ascending id order."""

    try:
        items = await service.get_items_by_ids(job_id, _parse_item_ids(ids))
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return ImportJobItemListResponse(items=[ImportJobItemResponse.from_item(item) for item in items])


__all__ = ["router"]
