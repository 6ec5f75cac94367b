"""Request/response models for the operator import API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from media_import_engine.domain.entities import (
    ImportJob,
    ImportJobItem,
    ItemStatusCounts,
    JobTotals,
)
from media_import_engine.domain.import_types import ImportMode, ItemStatus, JobStatus
from media_import_engine.domain.job_settings import JobSettings


class ApiModel(BaseModel):
    """Base model for operator routes."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class CreateImportJobRequest(ApiModel):
    """Payload for creating a job."""

    mode: ImportMode = ImportMode.REMOTE
    settings: JobSettings = Field(default_factory=JobSettings)


class ScanJobRequest(ApiModel):
    """Optional overrides for one scan pass."""

    prefix: str | None = None
    limit: int | None = Field(default=None, ge=1, le=1000)


class StartJobRequest(ApiModel):
    """Start payload; a non-empty id list narrows the run to those items."""

    item_ids: list[int] = Field(default_factory=list, alias="itemIds")


class JobTotalsResponse(ApiModel):
    scanned: int = 0
    bytes_total: int = Field(default=0, alias="bytesTotal")
    bytes_copied: int = Field(default=0, alias="bytesCopied")
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    percent_complete: float | None = Field(default=None, alias="percentComplete")

    @classmethod
    def from_totals(cls, totals: JobTotals) -> JobTotalsResponse:
        percent = None
        if totals.bytes_total > 0:
            ratio = (totals.bytes_copied / totals.bytes_total) * 100
            percent = max(0.0, min(100.0, round(ratio, 2)))
        return cls(
            scanned=totals.scanned,
            bytes_total=totals.bytes_total,
            bytes_copied=totals.bytes_copied,
            completed=totals.completed,
            failed=totals.failed,
            skipped=totals.skipped,
            percent_complete=percent,
        )


class ImportJobResponse(ApiModel):
    """Single job payload."""

    job_id: str = Field(alias="jobId")
    mode: ImportMode
    status: JobStatus
    source_provider: str = Field(alias="sourceProvider")
    dest_provider: str | None = Field(default=None, alias="destProvider")
    settings: JobSettings
    totals: JobTotalsResponse
    last_error: str | None = Field(default=None, alias="lastError")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    started_at: datetime | None = Field(default=None, alias="startedAt")
    finished_at: datetime | None = Field(default=None, alias="finishedAt")

    @classmethod
    def from_job(cls, job: ImportJob) -> ImportJobResponse:
        return cls(
            job_id=job.job_id,
            mode=job.mode,
            status=job.status,
            source_provider=job.source_provider,
            dest_provider=job.dest_provider,
            settings=job.settings,
            totals=JobTotalsResponse.from_totals(job.totals),
            last_error=job.last_error,
            created_at=job.created_at,
            started_at=job.started_at,
            finished_at=job.finished_at,
        )


class ItemCountsResponse(ApiModel):
    completed: int = 0
    skipped: int = 0
    failed: int = 0
    pending: int = 0

    @classmethod
    def from_counts(cls, counts: ItemStatusCounts) -> ItemCountsResponse:
        return cls(
            completed=counts.completed,
            skipped=counts.skipped,
            failed=counts.failed,
            pending=counts.pending,
        )


class ImportJobDetailResponse(ApiModel):
    """Job plus live item aggregates."""

    job: ImportJobResponse
    counts: ItemCountsResponse


class ImportJobListResponse(ApiModel):
    jobs: list[ImportJobResponse]


class ImportJobItemResponse(ApiModel):
    item_id: int = Field(alias="itemId")
    job_id: str = Field(alias="jobId")
    status: ItemStatus
    source_key: str = Field(alias="sourceKey")
    source_etag: str | None = Field(default=None, alias="sourceEtag")
    source_size_bytes: int | None = Field(default=None, alias="sourceSizeBytes")
    source_last_modified: datetime | None = Field(default=None, alias="sourceLastModified")
    dest_key: str | None = Field(default=None, alias="destKey")
    dest_url: str | None = Field(default=None, alias="destUrl")
    video_id: int | None = Field(default=None, alias="videoId")
    error: str | None = None
    attempts: int = 0
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    @classmethod
    def from_item(cls, item: ImportJobItem) -> ImportJobItemResponse:
        return cls(
            item_id=item.item_id,
            job_id=item.job_id,
            status=item.status,
            source_key=item.source_key,
            source_etag=item.source_etag,
            source_size_bytes=item.source_size_bytes,
            source_last_modified=item.source_last_modified,
            dest_key=item.dest_key,
            dest_url=item.dest_url,
            video_id=item.video_id,
            error=item.error,
            attempts=item.attempts,
            updated_at=item.updated_at,
        )


class ImportJobItemListResponse(ApiModel):
    items: list[ImportJobItemResponse]


class ScanResultResponse(ApiModel):
    """Outcome of one scan pass."""

    job_id: str = Field(alias="jobId")
    prefix: str
    scanned: int
    inserted: int
    next_cursor: str | None = Field(default=None, alias="nextCursor")
    sample: list[str] = Field(default_factory=list)


class StartJobResponse(ApiModel):
    job_id: str = Field(alias="jobId")
    status: JobStatus
    selected_count: int = Field(default=0, alias="selectedCount")


class StoreHealthResponse(ApiModel):
    ok: bool
    detail: str
    status_code: int | None = Field(default=None, alias="statusCode")
    tested_path: str | None = Field(default=None, alias="testedPath")


class StorageHealthResponse(ApiModel):
    source: StoreHealthResponse
    destination: StoreHealthResponse


__all__ = [
    "CreateImportJobRequest",
    "ImportJobDetailResponse",
    "ImportJobItemListResponse",
    "ImportJobItemResponse",
    "ImportJobListResponse",
    "ImportJobResponse",
    "ItemCountsResponse",
    "JobTotalsResponse",
    "ScanJobRequest",
    "ScanResultResponse",
    "StartJobRequest",
    "StartJobResponse",
    "StorageHealthResponse",
    "StoreHealthResponse",
]
