"""PostgreSQL repository implementation for import jobs and the video catalog."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import asyncpg  # type: ignore[import-untyped]

from media_import_engine.domain.entities import (
    TOTALS_FIELDS,
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
    ImportMode,
    ItemStatus,
    JobStatus,
)
from media_import_engine.domain.job_settings import JobSettings
from media_import_engine.domain.ports import CatalogWriter, ImportJobRepository
from media_import_engine.domain.storage_models import ObjectSummary

_JOB_COLUMNS = """
    id,
    source_provider,
    dest_provider,
    mode,
    status,
    settings,
    totals,
    last_error,
    lease_owner,
    lease_until,
    created_at,
    updated_at,
    started_at,
    finished_at
"""

_ITEM_COLUMNS = """
    id,
    job_id,
    source_key,
    source_etag,
    source_size_bytes,
    source_last_modified,
    status,
    dest_key,
    dest_url,
    video_id,
    error,
    attempts,
    created_at,
    updated_at
"""

_PENDING_STATUSES = sorted(status.value for status in PENDING_ITEM_STATUSES)
_IN_PROGRESS_STATUSES = sorted(status.value for status in IN_PROGRESS_ITEM_STATUSES)


def _totals_increment_sql() -> str:
    parts = ",\n".join(
        f"'{name}', GREATEST(0, COALESCE((totals->>'{name}')::bigint, 0) + ${index})"
        for index, name in enumerate(TOTALS_FIELDS, start=2)
    )
    return f"""
        UPDATE import_jobs
        SET
            totals = totals || jsonb_build_object(
{parts}
            ),
            updated_at = NOW()
        WHERE id = $1
    """


_INCREMENT_TOTALS_SQL = _totals_increment_sql()


class PostgresImportJobRepository(ImportJobRepository, CatalogWriter):
    """Import job repository backed by PostgreSQL."""

    def __init__(
        self,
        dsn: str,
        min_pool_size: int = 1,
        max_pool_size: int = 10,
    ) -> None:
        self._dsn = dsn
        self._min_pool_size = min_pool_size
        self._max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    async def create_job(self, job: ImportJob) -> ImportJob:
        """Persist a new job."""

        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            INSERT INTO import_jobs (
                id,
                source_provider,
                dest_provider,
                mode,
                status,
                settings,
                totals
            ) VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7::jsonb)
            RETURNING {_JOB_COLUMNS}
            """,
            job.job_id,
            job.source_provider,
            job.dest_provider,
            job.mode.value,
            job.status.value,
            json.dumps(job.settings.model_dump(mode="json")),
            json.dumps(job.totals.as_dict()),
        )
        return self._to_job(row)

    async def get_job(self, job_id: str) -> ImportJob | None:
        """Return by job id."""

        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"SELECT {_JOB_COLUMNS} FROM import_jobs WHERE id = $1",
            job_id,
        )
        if row is None:
            return None
        return self._to_job(row)

    async def get_job_status(self, job_id: str) -> JobStatus | None:
        pool = await self._get_pool()
        value = await pool.fetchval("SELECT status FROM import_jobs WHERE id = $1", job_id)
        return None if value is None else JobStatus(str(value))

    async def list_jobs(self, limit: int) -> list[ImportJob]:
        """Return newest jobs first."""

        pool = await self._get_pool()
        rows = await pool.fetch(
            f"SELECT {_JOB_COLUMNS} FROM import_jobs ORDER BY created_at DESC LIMIT $1",
            max(limit, 0),
        )
        return [self._to_job(row) for row in rows]

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

        pool = await self._get_pool()
        await pool.execute(
            """
            UPDATE import_jobs
            SET
                status = $2,
                started_at = CASE WHEN $3 THEN COALESCE(started_at, NOW()) ELSE started_at END,
                finished_at = CASE
                    WHEN $4 THEN NOW()
                    WHEN $3 THEN NULL
                    ELSE finished_at
                END,
                last_error = CASE
                    WHEN $5::text IS NOT NULL THEN $5::text
                    WHEN $6 THEN NULL
                    ELSE last_error
                END,
                updated_at = NOW()
            WHERE id = $1
            """,
            job_id,
            status.value,
            started,
            finished,
            last_error,
            clear_last_error,
        )

    async def set_job_last_error(self, job_id: str, error: str | None) -> None:
        pool = await self._get_pool()
        await pool.execute(
            "UPDATE import_jobs SET last_error = $2, updated_at = NOW() WHERE id = $1",
            job_id,
            error,
        )

    async def mark_job_running(
        self,
        job_id: str,
        *,
        lease_owner: str,
        lease_seconds: float,
    ) -> bool:
        """Move job to running and take the runner lease if free."""

        pool = await self._get_pool()
        result = await pool.execute(
            """
            UPDATE import_jobs
            SET
                status = 'running',
                started_at = COALESCE(started_at, NOW()),
                finished_at = NULL,
                last_error = NULL,
                lease_owner = $2,
                lease_until = NOW() + ($3::double precision * INTERVAL '1 second'),
                updated_at = NOW()
            WHERE id = $1
              AND (
                lease_owner IS NULL
                OR lease_owner = $2
                OR lease_until IS NULL
                OR lease_until <= NOW()
              )
            """,
            job_id,
            lease_owner,
            max(lease_seconds, 0.0),
        )
        return result.endswith("1")

    async def claim_due_jobs(
        self,
        *,
        lease_owner: str,
        limit: int,
        lease_seconds: float,
    ) -> list[str]:
        """Claim running jobs whose lease is absent/expired."""

        if limit <= 0:
            return []

        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            WITH due AS (
                SELECT id
                FROM import_jobs
                WHERE status = 'running'
                  AND (lease_until IS NULL OR lease_until <= NOW())
                ORDER BY updated_at ASC, id ASC
                FOR UPDATE SKIP LOCKED
                LIMIT $1
            )
            UPDATE import_jobs AS jobs
            SET
                lease_owner = $2,
                lease_until = NOW() + ($3::double precision * INTERVAL '1 second'),
                updated_at = NOW()
            FROM due
            WHERE jobs.id = due.id
            RETURNING jobs.id
            """,
            limit,
            lease_owner,
            max(lease_seconds, 0.0),
        )
        return [str(row["id"]) for row in rows]

    async def renew_job_lease(
        self,
        job_id: str,
        *,
        lease_owner: str,
        lease_seconds: float,
    ) -> bool:
        """Extend one running job lease if ownership still matches."""

        pool = await self._get_pool()
        result = await pool.execute(
            """
            UPDATE import_jobs
            SET lease_until = NOW() + ($3::double precision * INTERVAL '1 second')
            WHERE id = $1
              AND status = 'running'
              AND lease_owner = $2
            """,
            job_id,
            lease_owner,
            max(lease_seconds, 0.0),
        )
        return result.endswith("1")

    async def release_job_lease(self, job_id: str, *, lease_owner: str) -> None:
        pool = await self._get_pool()
        await pool.execute(
            """
            UPDATE import_jobs
            SET lease_owner = NULL, lease_until = NULL
            WHERE id = $1 AND lease_owner = $2
            """,
            job_id,
            lease_owner,
        )

    async def increment_job_totals(self, job_id: str, delta: JobTotals) -> None:
        """Apply all counter deltas in one UPDATE statement."""

        pool = await self._get_pool()
        await pool.execute(
            _INCREMENT_TOTALS_SQL,
            job_id,
            *(getattr(delta, name) for name in TOTALS_FIELDS),
        )

    async def record_scan_result(self, job_id: str, *, scanned: int) -> None:
        pool = await self._get_pool()
        await pool.execute(
            """
            UPDATE import_jobs
            SET
                totals = totals || jsonb_build_object('scanned', $2::bigint),
                status = 'ready',
                updated_at = NOW()
            WHERE id = $1
            """,
            job_id,
            max(scanned, 0),
        )

    async def set_bytes_total_if_unset(self, job_id: str, bytes_total: int) -> bool:
        pool = await self._get_pool()
        result = await pool.execute(
            """
            UPDATE import_jobs
            SET
                totals = totals || jsonb_build_object('bytes_total', $2::bigint),
                updated_at = NOW()
            WHERE id = $1
              AND COALESCE((totals->>'bytes_total')::bigint, 0) = 0
            """,
            job_id,
            max(bytes_total, 0),
        )
        return result.endswith("1")

    async def apply_item_counts(
        self,
        job_id: str,
        counts: ItemStatusCounts,
        *,
        status: JobStatus | None = None,
    ) -> None:
        """Overwrite item-derived totals and optionally the job status."""

        terminal = status is not None and status in TERMINAL_JOB_STATUSES
        pool = await self._get_pool()
        await pool.execute(
            """
            UPDATE import_jobs
            SET
                totals = totals || jsonb_build_object(
                    'completed', $2::bigint,
                    'failed', $3::bigint,
                    'skipped', $4::bigint
                ),
                status = COALESCE($5::text, status),
                finished_at = CASE WHEN $6 THEN NOW() ELSE finished_at END,
                updated_at = NOW()
            WHERE id = $1
            """,
            job_id,
            counts.completed,
            counts.failed,
            counts.skipped,
            None if status is None else status.value,
            terminal,
        )

    async def insert_items(self, job_id: str, objects: Sequence[ObjectSummary]) -> int:
        """Insert queued items, ignoring keys the job already tracks."""

        if not objects:
            return 0

        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            INSERT INTO import_job_items (
                job_id,
                source_key,
                source_etag,
                source_size_bytes,
                source_last_modified,
                status
            )
            SELECT $1, entry.key, entry.etag, entry.size, entry.last_modified, 'queued'
            FROM unnest(
                $2::text[],
                $3::text[],
                $4::bigint[],
                $5::timestamptz[]
            ) AS entry(key, etag, size, last_modified)
            ON CONFLICT (job_id, source_key) DO NOTHING
            RETURNING id
            """,
            job_id,
            [summary.key for summary in objects],
            [summary.etag for summary in objects],
            [summary.size if summary.size > 0 else None for summary in objects],
            [summary.last_modified for summary in objects],
        )
        return len(rows)

    async def list_pending_items(
        self,
        job_id: str,
        limit: int | None = None,
    ) -> list[ImportJobItem]:
        """Return queued/retrying items ordered by id."""

        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            SELECT {_ITEM_COLUMNS}
            FROM import_job_items
            WHERE job_id = $1 AND status = ANY($2::text[])
            ORDER BY id ASC
            LIMIT $3
            """,
            job_id,
            _PENDING_STATUSES,
            None if limit is None else max(limit, 0),
        )
        return [self._to_item(row) for row in rows]

    async def list_items(
        self,
        job_id: str,
        *,
        status: ItemStatus | None = None,
        limit: int = 200,
    ) -> list[ImportJobItem]:
        """Return newest items first."""

        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            SELECT {_ITEM_COLUMNS}
            FROM import_job_items
            WHERE job_id = $1 AND ($2::text IS NULL OR status = $2::text)
            ORDER BY id DESC
            LIMIT $3
            """,
            job_id,
            None if status is None else status.value,
            max(limit, 0),
        )
        return [self._to_item(row) for row in rows]

    async def get_items_by_ids(
        self,
        job_id: str,
        item_ids: Sequence[int],
    ) -> list[ImportJobItem]:
        if not item_ids:
            return []

        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            SELECT {_ITEM_COLUMNS}
            FROM import_job_items
            WHERE job_id = $1 AND id = ANY($2::bigint[])
            ORDER BY id ASC
            """,
            job_id,
            list(item_ids),
        )
        return [self._to_item(row) for row in rows]

    async def save_item(self, item: ImportJobItem) -> None:
        """Persist the mutable fields of one item."""

        pool = await self._get_pool()
        updated_at = await pool.fetchval(
            """
            UPDATE import_job_items
            SET
                status = $3,
                source_size_bytes = $4,
                dest_key = $5,
                dest_url = $6,
                video_id = $7,
                error = $8,
                attempts = $9,
                updated_at = NOW()
            WHERE job_id = $1 AND id = $2
            RETURNING updated_at
            """,
            item.job_id,
            item.item_id,
            item.status.value,
            item.source_size_bytes,
            item.dest_key,
            item.dest_url,
            item.video_id,
            item.error,
            item.attempts,
        )
        if updated_at is not None:
            item.updated_at = updated_at

    async def count_items_by_status(self, job_id: str) -> ItemStatusCounts:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            SELECT status, COUNT(*) AS total
            FROM import_job_items
            WHERE job_id = $1
            GROUP BY status
            """,
            job_id,
        )
        by_status = {str(row["status"]): int(row["total"]) for row in rows}
        completed = by_status.pop(ItemStatus.COMPLETED.value, 0)
        skipped = by_status.pop(ItemStatus.SKIPPED.value, 0)
        failed = by_status.pop(ItemStatus.FAILED.value, 0)
        return ItemStatusCounts(
            completed=completed,
            skipped=skipped,
            failed=failed,
            pending=sum(by_status.values()),
        )

    async def select_items_for_run(self, job_id: str, item_ids: Sequence[int]) -> int:
        """Skip non-selected pending items and requeue selected ones."""

        selected = list(item_ids)
        pool = await self._get_pool()
        async with pool.acquire() as connection:
            async with connection.transaction():
                await connection.execute(
                    """
                    UPDATE import_job_items
                    SET status = 'skipped', updated_at = NOW()
                    WHERE job_id = $1
                      AND status = ANY($2::text[])
                      AND NOT (id = ANY($3::bigint[]))
                    """,
                    job_id,
                    _PENDING_STATUSES,
                    selected,
                )
                await connection.execute(
                    """
                    UPDATE import_job_items
                    SET status = 'queued', updated_at = NOW()
                    WHERE job_id = $1 AND status = 'skipped' AND id = ANY($2::bigint[])
                    """,
                    job_id,
                    selected,
                )
                await connection.execute(
                    """
                    UPDATE import_job_items
                    SET status = 'retrying', error = NULL, updated_at = NOW()
                    WHERE job_id = $1 AND status = 'failed' AND id = ANY($2::bigint[])
                    """,
                    job_id,
                    selected,
                )
                found = await connection.fetchval(
                    """
                    SELECT COUNT(*)
                    FROM import_job_items
                    WHERE job_id = $1 AND id = ANY($2::bigint[])
                    """,
                    job_id,
                    selected,
                )
        return int(found or 0)

    async def skip_pending_items(self, job_id: str) -> int:
        return await self._move_items(job_id, _PENDING_STATUSES, ItemStatus.SKIPPED)

    async def requeue_interrupted_items(self, job_id: str) -> int:
        return await self._move_items(job_id, _IN_PROGRESS_STATUSES, ItemStatus.RETRYING)

    async def insert_if_absent(self, entry: CatalogEntry) -> CatalogInsertResult:
        """Insert one catalog record unless the URL is already known."""

        pool = await self._get_pool()
        async with pool.acquire() as connection:
            video_id = await connection.fetchval(
                """
                INSERT INTO videos (title, video_url, visibility, category_id)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (video_url) DO NOTHING
                RETURNING id
                """,
                entry.title,
                entry.url,
                entry.visibility,
                entry.category_id,
            )
            if video_id is not None:
                return CatalogInsertResult(video_id=int(video_id), created=True)
            existing_id = await connection.fetchval(
                "SELECT id FROM videos WHERE video_url = $1",
                entry.url,
            )
        if existing_id is None:
            raise RuntimeError(f"Catalog record for '{entry.url}' vanished after conflict.")
        return CatalogInsertResult(video_id=int(existing_id), created=False)

    async def close(self) -> None:
        """Close the pool if it was initialized."""

        pool = self._pool
        self._pool = None
        if pool is not None:
            await pool.close()

    async def _move_items(
        self,
        job_id: str,
        from_statuses: list[str],
        to_status: ItemStatus,
    ) -> int:
        pool = await self._get_pool()
        result = await pool.execute(
            """
            UPDATE import_job_items
            SET status = $3, updated_at = NOW()
            WHERE job_id = $1 AND status = ANY($2::text[])
            """,
            job_id,
            from_statuses,
            to_status.value,
        )
        return int(result.rsplit(" ", 1)[-1])

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is not None:
            return self._pool

        async with self._pool_lock:
            if self._pool is None:
                pool = await asyncpg.create_pool(
                    dsn=self._dsn,
                    min_size=self._min_pool_size,
                    max_size=self._max_pool_size,
                )
                await self._ensure_schema(pool)
                self._pool = pool
        assert self._pool is not None
        return self._pool

    async def _ensure_schema(self, pool: asyncpg.Pool) -> None:
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS import_jobs (
                id TEXT PRIMARY KEY,
                source_provider TEXT NOT NULL,
                dest_provider TEXT,
                mode TEXT NOT NULL,
                status TEXT NOT NULL,
                settings JSONB NOT NULL DEFAULT '{}'::jsonb,
                totals JSONB NOT NULL DEFAULT '{}'::jsonb,
                last_error TEXT,
                lease_owner TEXT,
                lease_until TIMESTAMPTZ,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                started_at TIMESTAMPTZ,
                finished_at TIMESTAMPTZ
            );
            CREATE INDEX IF NOT EXISTS idx_import_jobs_recovery
                ON import_jobs (status, lease_until, updated_at, id)
                WHERE status = 'running';
            """
        )
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS import_job_items (
                id BIGSERIAL PRIMARY KEY,
                job_id TEXT NOT NULL REFERENCES import_jobs(id) ON DELETE CASCADE,
                source_key TEXT NOT NULL,
                source_etag TEXT,
                source_size_bytes BIGINT,
                source_last_modified TIMESTAMPTZ,
                status TEXT NOT NULL,
                dest_key TEXT,
                dest_url TEXT,
                video_id BIGINT,
                error TEXT,
                attempts INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                UNIQUE (job_id, source_key)
            );
            CREATE INDEX IF NOT EXISTS idx_import_job_items_status
                ON import_job_items (job_id, status, id);
            """
        )
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS videos (
                id BIGSERIAL PRIMARY KEY,
                title TEXT NOT NULL,
                video_url TEXT NOT NULL UNIQUE,
                visibility TEXT NOT NULL,
                category_id BIGINT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
            """
        )

    def _to_job(self, row: asyncpg.Record) -> ImportJob:
        settings_raw = self._decode_json_field(row["settings"])
        totals_raw = self._decode_json_field(row["totals"])
        return ImportJob(
            job_id=str(row["id"]),
            mode=ImportMode(str(row["mode"])),
            settings=JobSettings.model_validate(settings_raw or {}),
            status=JobStatus(str(row["status"])),
            source_provider=str(row["source_provider"]),
            dest_provider=self._as_optional_str(row["dest_provider"]),
            totals=JobTotals.from_mapping(totals_raw if isinstance(totals_raw, dict) else None),
            last_error=self._as_optional_str(row["last_error"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            lease_owner=self._as_optional_str(row["lease_owner"]),
            lease_until=row["lease_until"],
        )

    def _to_item(self, row: asyncpg.Record) -> ImportJobItem:
        return ImportJobItem(
            item_id=int(row["id"]),
            job_id=str(row["job_id"]),
            source_key=str(row["source_key"]),
            status=ItemStatus(str(row["status"])),
            source_etag=self._as_optional_str(row["source_etag"]),
            source_size_bytes=self._as_optional_int(row["source_size_bytes"]),
            source_last_modified=self._as_optional_datetime(row["source_last_modified"]),
            dest_key=self._as_optional_str(row["dest_key"]),
            dest_url=self._as_optional_str(row["dest_url"]),
            video_id=self._as_optional_int(row["video_id"]),
            error=self._as_optional_str(row["error"]),
            attempts=int(row["attempts"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _decode_json_field(self, value: object) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            return json.loads(value)
        return value

    def _as_optional_str(self, value: object) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            return value
        raise TypeError(f"Expected optional string value, got {type(value)!r}.")

    def _as_optional_int(self, value: object) -> int | None:
        if value is None:
            return None
        return int(value)  # type: ignore[call-overload]

    def _as_optional_datetime(self, value: object) -> datetime | None:
        if value is None or isinstance(value, datetime):
            return value
        raise TypeError(f"Expected optional datetime value, got {type(value)!r}.")


__all__ = ["PostgresImportJobRepository"]
