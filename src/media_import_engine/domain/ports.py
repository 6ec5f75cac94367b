"""Ports for persistence, catalog writes and object stores."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Protocol

from media_import_engine.domain.entities import (
    CatalogEntry,
    CatalogInsertResult,
    ImportJob,
    ImportJobItem,
    ItemStatusCounts,
    JobTotals,
)
from media_import_engine.domain.import_types import AccessMode, ItemStatus, JobStatus
from media_import_engine.domain.storage_models import (
    ObjectHead,
    ObjectListing,
    ObjectSummary,
    StoreHealth,
    VerifiedObject,
)


class ImportJobRepository(Protocol):
    """Persistence port for jobs and their items."""

    async def create_job(self, job: ImportJob) -> ImportJob:
        """Persist a new job and return it with timestamps populated."""

    async def get_job(self, job_id: str) -> ImportJob | None:
        """Return a job by id."""

    async def get_job_status(self, job_id: str) -> JobStatus | None:
        """Return only the persisted status of a job."""

    async def list_jobs(self, limit: int) -> list[ImportJob]:
        """Return most recent jobs first."""

    async def update_job_status(
        self,
        job_id: str,
        status: JobStatus,
        *,
        started: bool = False,
        finished: bool = False,
        last_error: str | None = None,
        clear_last_error: bool = False,
    ) -> None:
        """Set job status and optional timestamp/error side effects."""

    async def set_job_last_error(self, job_id: str, error: str | None) -> None:
        """Record the most recent job-level error."""

    async def mark_job_running(
        self,
        job_id: str,
        *,
        lease_owner: str,
        lease_seconds: float,
    ) -> bool:
        """Move a job to running and take its runner lease.

        Returns False when another owner holds a live lease.
        """

    async def claim_due_jobs(
        self,
        *,
        lease_owner: str,
        limit: int,
        lease_seconds: float,
    ) -> list[str]:
        """Claim running jobs whose runner lease is absent or expired."""

    async def renew_job_lease(
        self,
        job_id: str,
        *,
        lease_owner: str,
        lease_seconds: float,
    ) -> bool:
        """Extend a lease still owned by this worker."""

    async def release_job_lease(self, job_id: str, *, lease_owner: str) -> None:
        """Drop a lease owned by this worker."""

    async def increment_job_totals(self, job_id: str, delta: JobTotals) -> None:
        """Atomically add counter deltas onto the persisted totals."""

    async def record_scan_result(self, job_id: str, *, scanned: int) -> None:
        """Set totals.scanned for the latest pass and mark the job ready."""

    async def set_bytes_total_if_unset(self, job_id: str, bytes_total: int) -> bool:
        """Set totals.bytes_total only when it is still zero."""

    async def apply_item_counts(
        self,
        job_id: str,
        counts: ItemStatusCounts,
        *,
        status: JobStatus | None = None,
    ) -> None:
        """Overwrite completed/failed/skipped totals with exact item counts."""

    async def insert_items(self, job_id: str, objects: Sequence[ObjectSummary]) -> int:
        """Insert queued items, skipping keys already tracked; return inserted count."""

    async def list_pending_items(
        self,
        job_id: str,
        limit: int | None = None,
    ) -> list[ImportJobItem]:
        """Return queued/retrying items in insertion order."""

    async def list_items(
        self,
        job_id: str,
        *,
        status: ItemStatus | None = None,
        limit: int = 200,
    ) -> list[ImportJobItem]:
        """Return items newest first, optionally filtered by status."""

    async def get_items_by_ids(
        self,
        job_id: str,
        item_ids: Sequence[int],
    ) -> list[ImportJobItem]:
        """Return the given items of one job in ascending id order."""

    async def save_item(self, item: ImportJobItem) -> None:
        """Persist the mutable fields of one item."""

    async def count_items_by_status(self, job_id: str) -> ItemStatusCounts:
        """Aggregate item statuses of one job."""

    async def select_items_for_run(self, job_id: str, item_ids: Sequence[int]) -> int:
        """Narrow a run to the given items; return how many of them exist."""

    async def skip_pending_items(self, job_id: str) -> int:
        """Mark every queued/retrying item skipped."""

    async def requeue_interrupted_items(self, job_id: str) -> int:
        """Move items stuck in an in-progress status back to retrying."""


class CatalogWriter(Protocol):
    """Port to the platform's video catalog."""

    async def insert_if_absent(self, entry: CatalogEntry) -> CatalogInsertResult:
        """Insert a record unless one already exists for the same URL."""


class SourceStore(Protocol):
    """Read side: the S3-compatible store objects are migrated from."""

    @property
    def default_prefix(self) -> str:
        """Import prefix configured for the store."""

    async def list_objects(
        self,
        prefix: str,
        cursor: str | None = None,
        limit: int = 1000,
    ) -> ObjectListing:
        """List one page of objects under a prefix."""

    async def head_object(self, key: str) -> ObjectHead:
        """Return object metadata."""

    def open_read_stream(self, key: str) -> AsyncIterator[bytes]:
        """Stream object bytes in chunks."""

    async def build_url(self, key: str, access_mode: AccessMode, ttl_seconds: int) -> str:
        """Return a public or signed URL for an object."""

    async def check_connection(self) -> StoreHealth:
        """Probe connectivity and credentials."""


class DestinationStore(Protocol):
    """Write side: the HTTP-PUT object store objects are copied into."""

    def build_path(self, source_key: str) -> str:
        """Map a source key to a destination path."""

    async def put(
        self,
        path: str,
        stream: AsyncIterator[bytes],
        content_type: str,
        content_length: int | None = None,
    ) -> None:
        """Upload a streamed body."""

    async def verify(self, path: str, expected_size: int = 0) -> VerifiedObject:
        """Confirm the object is durably readable."""

    def build_public_url(self, path: str) -> str:
        """Return the public (CDN when configured) URL of a stored path."""

    async def check_connection(self) -> StoreHealth:
        """Probe connectivity and credentials."""


__all__ = [
    "CatalogWriter",
    "DestinationStore",
    "ImportJobRepository",
    "SourceStore",
]
