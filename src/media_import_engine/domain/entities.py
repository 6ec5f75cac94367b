"""Domain entities."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import datetime

from media_import_engine.domain.import_types import (
    SOURCE_PROVIDER,
    ImportMode,
    ItemStatus,
    JobStatus,
)
from media_import_engine.domain.job_settings import JobSettings


@dataclass(slots=True)
class JobTotals:
    """Aggregate job counters; also used as a delta when buffering increments."""

    scanned: int = 0
    bytes_total: int = 0
    bytes_copied: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0

    @classmethod
    def from_mapping(cls, raw: Mapping[str, object] | None) -> JobTotals:
        """Build totals from a persisted JSON mapping, ignoring unknown keys."""

        totals = cls()
        if not raw:
            return totals
        for name in TOTALS_FIELDS:
            value = raw.get(name)
            if value is None:
                continue
            try:
                setattr(totals, name, max(0, int(value)))  # type: ignore[call-overload]
            except (TypeError, ValueError):
                continue
        return totals

    def add(self, other: JobTotals) -> None:
        for name in TOTALS_FIELDS:
            setattr(self, name, getattr(self, name) + getattr(other, name))

    def is_empty(self) -> bool:
        return all(getattr(self, name) == 0 for name in TOTALS_FIELDS)

    def as_dict(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in TOTALS_FIELDS}


TOTALS_FIELDS = tuple(item.name for item in fields(JobTotals))


@dataclass(slots=True)
class ImportJob:
    """One migration run with its own mode, settings and aggregate totals."""

    job_id: str
    mode: ImportMode
    settings: JobSettings
    status: JobStatus = JobStatus.QUEUED
    source_provider: str = SOURCE_PROVIDER
    dest_provider: str | None = None
    totals: JobTotals = field(default_factory=JobTotals)
    last_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    lease_owner: str | None = None
    lease_until: datetime | None = None


@dataclass(slots=True)
class ImportJobItem:
    """One tracked source object inside a job."""

    item_id: int
    job_id: str
    source_key: str
    status: ItemStatus = ItemStatus.QUEUED
    source_etag: str | None = None
    source_size_bytes: int | None = None
    source_last_modified: datetime | None = None
    dest_key: str | None = None
    dest_url: str | None = None
    video_id: int | None = None
    error: str | None = None
    attempts: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class ItemStatusCounts:
    """Item aggregates used for job finalization and operator views."""

    completed: int = 0
    skipped: int = 0
    failed: int = 0
    pending: int = 0

    @property
    def total(self) -> int:
        return self.completed + self.skipped + self.failed + self.pending

    def final_job_status(self) -> JobStatus:
        """Derive the job status once the runner has drained the queue."""

        if self.pending > 0:
            return JobStatus.RUNNING
        if self.failed > 0:
            return JobStatus.FAILED
        return JobStatus.COMPLETED


@dataclass(slots=True, frozen=True)
class CatalogEntry:
    """Playable media record written once an item's URL is known."""

    title: str
    url: str
    visibility: str
    category_id: int | None = None


@dataclass(slots=True, frozen=True)
class CatalogInsertResult:
    """Outcome of an idempotent catalog insert."""

    video_id: int
    created: bool


__all__ = [
    "CatalogEntry",
    "CatalogInsertResult",
    "ImportJob",
    "ImportJobItem",
    "ItemStatusCounts",
    "JobTotals",
    "TOTALS_FIELDS",
]
