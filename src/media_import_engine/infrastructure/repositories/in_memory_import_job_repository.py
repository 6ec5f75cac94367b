"""In-memory repository implementation for import jobs and the video catalog."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta

from media_import_engine.domain.entities import (
    CatalogEntry,
    CatalogInsertResult,
    ImportJob,
    ImportJobItem,
    ItemStatusCounts,
    JobTotals,
)
from media_import_engine.domain.import_types import (
    IN_PROGRESS_ITEM_STATUSES,
    PENDING_ITEM_STATUSES,
    TERMINAL_JOB_STATUSES,
    ItemStatus,
    JobStatus,
)
from media_import_engine.domain.ports import CatalogWriter, ImportJobRepository
from media_import_engine.domain.storage_models import ObjectSummary


@dataclass(slots=True)
class _InMemoryVideo:
    video_id: int
    title: str
    video_url: str
    visibility: str
    category_id: int | None
    created_at: datetime


class InMemoryImportJobRepository(ImportJobRepository, CatalogWriter):
    """Simple repository for local development and tests."""

    def __init__(self) -> None:
        self._jobs: dict[str, ImportJob] = {}
        self._items: dict[str, dict[int, ImportJobItem]] = {}
        self._next_item_id = 1
        self._videos_by_url: dict[str, _InMemoryVideo] = {}
        self._next_video_id = 1
        self._lock = asyncio.Lock()

    async def create_job(self, job: ImportJob) -> ImportJob:
        """Persist a new job."""

        now = datetime.now(tz=UTC)
        async with self._lock:
            stored = _copy_job(job)
            stored.created_at = now
            stored.updated_at = now
            self._jobs[job.job_id] = stored
            self._items.setdefault(job.job_id, {})
            return _copy_job(stored)

    async def get_job(self, job_id: str) -> ImportJob | None:
        """Return by job id."""

        async with self._lock:
            job = self._jobs.get(job_id)
            return None if job is None else _copy_job(job)

    async def get_job_status(self, job_id: str) -> JobStatus | None:
        job = self._jobs.get(job_id)
        return None if job is None else job.status

    async def list_jobs(self, limit: int) -> list[ImportJob]:
        """Return newest jobs first."""

        async with self._lock:
            jobs = sorted(
                self._jobs.values(),
                key=lambda job: job.created_at or datetime.min.replace(tzinfo=UTC),
                reverse=True,
            )
            return [_copy_job(job) for job in jobs[: max(limit, 0)]]

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
        """Set job status and optional timestamps."""

        now = datetime.now(tz=UTC)
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.status = status
            if started:
                job.started_at = job.started_at or now
                job.finished_at = None
            if finished:
                job.finished_at = now
            if last_error is not None:
                job.last_error = last_error
            elif clear_last_error:
                job.last_error = None
            job.updated_at = now

    async def set_job_last_error(self, job_id: str, error: str | None) -> None:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.last_error = error
            job.updated_at = datetime.now(tz=UTC)

    async def mark_job_running(
        self,
        job_id: str,
        *,
        lease_owner: str,
        lease_seconds: float,
    ) -> bool:
        """Move job to running and take the runner lease if free."""

        now = datetime.now(tz=UTC)
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False
            if (
                job.lease_owner is not None
                and job.lease_owner != lease_owner
                and job.lease_until is not None
                and job.lease_until > now
            ):
                return False
            job.status = JobStatus.RUNNING
            job.started_at = job.started_at or now
            job.finished_at = None
            job.last_error = None
            job.lease_owner = lease_owner
            job.lease_until = now + timedelta(seconds=max(lease_seconds, 0.0))
            job.updated_at = now
            return True

    async def claim_due_jobs(
        self,
        *,
        lease_owner: str,
        limit: int,
        lease_seconds: float,
    ) -> list[str]:
        """Claim running jobs whose lease is absent or expired."""

        if limit <= 0:
            return []

        now = datetime.now(tz=UTC)
        lease_until = now + timedelta(seconds=max(lease_seconds, 0.0))
        async with self._lock:
            due = [
                job
                for job in self._jobs.values()
                if job.status is JobStatus.RUNNING
                and (job.lease_until is None or job.lease_until <= now)
            ]
            due.sort(key=lambda job: (job.updated_at or now, job.job_id))
            claimed = due[:limit]
            for job in claimed:
                job.lease_owner = lease_owner
                job.lease_until = lease_until
                job.updated_at = now
            return [job.job_id for job in claimed]

    async def renew_job_lease(
        self,
        job_id: str,
        *,
        lease_owner: str,
        lease_seconds: float,
    ) -> bool:
        """Renew one running job lease if still owned by worker."""

        now = datetime.now(tz=UTC)
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status is not JobStatus.RUNNING:
                return False
            if job.lease_owner != lease_owner:
                return False
            job.lease_until = now + timedelta(seconds=max(lease_seconds, 0.0))
            return True

    async def release_job_lease(self, job_id: str, *, lease_owner: str) -> None:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.lease_owner != lease_owner:
                return
            job.lease_owner = None
            job.lease_until = None

    async def increment_job_totals(self, job_id: str, delta: JobTotals) -> None:
        """Add counter deltas onto the stored totals."""

        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.totals.add(delta)
            for name, value in job.totals.as_dict().items():
                if value < 0:
                    setattr(job.totals, name, 0)
            job.updated_at = datetime.now(tz=UTC)

    async def record_scan_result(self, job_id: str, *, scanned: int) -> None:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.totals.scanned = max(scanned, 0)
            job.status = JobStatus.READY
            job.updated_at = datetime.now(tz=UTC)

    async def set_bytes_total_if_unset(self, job_id: str, bytes_total: int) -> bool:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.totals.bytes_total > 0:
                return False
            job.totals.bytes_total = max(bytes_total, 0)
            job.updated_at = datetime.now(tz=UTC)
            return True

    async def apply_item_counts(
        self,
        job_id: str,
        counts: ItemStatusCounts,
        *,
        status: JobStatus | None = None,
    ) -> None:
        """Overwrite item-derived totals and optionally the job status."""

        now = datetime.now(tz=UTC)
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.totals.completed = counts.completed
            job.totals.failed = counts.failed
            job.totals.skipped = counts.skipped
            if status is not None:
                job.status = status
                if status in TERMINAL_JOB_STATUSES:
                    job.finished_at = now
            job.updated_at = now

    async def insert_items(self, job_id: str, objects: Sequence[ObjectSummary]) -> int:
        """Insert queued items for keys not yet tracked by the job."""

        now = datetime.now(tz=UTC)
        inserted = 0
        async with self._lock:
            items = self._items.setdefault(job_id, {})
            known_keys = {item.source_key for item in items.values()}
            for summary in objects:
                if summary.key in known_keys:
                    continue
                item_id = self._next_item_id
                self._next_item_id += 1
                items[item_id] = ImportJobItem(
                    item_id=item_id,
                    job_id=job_id,
                    source_key=summary.key,
                    source_etag=summary.etag,
                    source_size_bytes=summary.size if summary.size > 0 else None,
                    source_last_modified=summary.last_modified,
                    created_at=now,
                    updated_at=now,
                )
                known_keys.add(summary.key)
                inserted += 1
        return inserted

    async def list_pending_items(
        self,
        job_id: str,
        limit: int | None = None,
    ) -> list[ImportJobItem]:
        """Return queued/retrying items ordered by id."""

        async with self._lock:
            pending = [
                replace(item)
                for item_id, item in sorted(self._items.get(job_id, {}).items())
                if item.status in PENDING_ITEM_STATUSES
            ]
        if limit is None:
            return pending
        return pending[: max(limit, 0)]

    async def list_items(
        self,
        job_id: str,
        *,
        status: ItemStatus | None = None,
        limit: int = 200,
    ) -> list[ImportJobItem]:
        """Return newest items first."""

        async with self._lock:
            items = sorted(
                self._items.get(job_id, {}).values(),
                key=lambda item: item.item_id,
                reverse=True,
            )
            return [
                replace(item)
                for item in items
                if status is None or item.status is status
            ][: max(limit, 0)]

    async def get_items_by_ids(
        self,
        job_id: str,
        item_ids: Sequence[int],
    ) -> list[ImportJobItem]:
        wanted = set(item_ids)
        async with self._lock:
            return [
                replace(item)
                for item_id, item in sorted(self._items.get(job_id, {}).items())
                if item_id in wanted
            ]

    async def save_item(self, item: ImportJobItem) -> None:
        """Persist the mutable fields of one item."""

        async with self._lock:
            items = self._items.get(item.job_id)
            if items is None or item.item_id not in items:
                return
            stored = replace(item)
            stored.updated_at = datetime.now(tz=UTC)
            items[item.item_id] = stored
            item.updated_at = stored.updated_at

    async def count_items_by_status(self, job_id: str) -> ItemStatusCounts:
        completed = skipped = failed = pending = 0
        async with self._lock:
            for item in self._items.get(job_id, {}).values():
                if item.status is ItemStatus.COMPLETED:
                    completed += 1
                elif item.status is ItemStatus.SKIPPED:
                    skipped += 1
                elif item.status is ItemStatus.FAILED:
                    failed += 1
                else:
                    pending += 1
        return ItemStatusCounts(
            completed=completed,
            skipped=skipped,
            failed=failed,
            pending=pending,
        )

    async def select_items_for_run(self, job_id: str, item_ids: Sequence[int]) -> int:
        """Skip non-selected pending items and requeue selected ones."""

        selected = set(item_ids)
        now = datetime.now(tz=UTC)
        found = 0
        async with self._lock:
            for item_id, item in self._items.get(job_id, {}).items():
                if item_id in selected:
                    found += 1
                    if item.status is ItemStatus.SKIPPED:
                        item.status = ItemStatus.QUEUED
                        item.updated_at = now
                    elif item.status is ItemStatus.FAILED:
                        item.status = ItemStatus.RETRYING
                        item.error = None
                        item.updated_at = now
                elif item.status in PENDING_ITEM_STATUSES:
                    item.status = ItemStatus.SKIPPED
                    item.updated_at = now
        return found

    async def skip_pending_items(self, job_id: str) -> int:
        return await self._move_items(job_id, PENDING_ITEM_STATUSES, ItemStatus.SKIPPED)

    async def requeue_interrupted_items(self, job_id: str) -> int:
        return await self._move_items(
            job_id,
            IN_PROGRESS_ITEM_STATUSES,
            ItemStatus.RETRYING,
        )

    async def insert_if_absent(self, entry: CatalogEntry) -> CatalogInsertResult:
        """Insert one catalog record unless the URL is already known."""

        async with self._lock:
            existing = self._videos_by_url.get(entry.url)
            if existing is not None:
                return CatalogInsertResult(video_id=existing.video_id, created=False)
            video_id = self._next_video_id
            self._next_video_id += 1
            self._videos_by_url[entry.url] = _InMemoryVideo(
                video_id=video_id,
                title=entry.title,
                video_url=entry.url,
                visibility=entry.visibility,
                category_id=entry.category_id,
                created_at=datetime.now(tz=UTC),
            )
            return CatalogInsertResult(video_id=video_id, created=True)

    async def count_videos(self) -> int:
        """Return the number of catalog records."""

        async with self._lock:
            return len(self._videos_by_url)

    async def _move_items(
        self,
        job_id: str,
        from_statuses: frozenset[ItemStatus],
        to_status: ItemStatus,
    ) -> int:
        now = datetime.now(tz=UTC)
        moved = 0
        async with self._lock:
            for item in self._items.get(job_id, {}).values():
                if item.status in from_statuses:
                    item.status = to_status
                    item.updated_at = now
                    moved += 1
        return moved


def _copy_job(job: ImportJob) -> ImportJob:
    return replace(
        job,
        settings=job.settings.model_copy(deep=True),
        totals=replace(job.totals),
    )


__all__ = ["InMemoryImportJobRepository"]
