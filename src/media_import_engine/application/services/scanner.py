"""Source discovery: list a prefix and register matching objects as job items."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from media_import_engine.domain.entities import ImportJob
from media_import_engine.domain.errors import ImportScanError
from media_import_engine.domain.import_types import JobStatus
from media_import_engine.domain.ports import ImportJobRepository, SourceStore
from media_import_engine.domain.storage_models import ObjectSummary, normalize_prefix

DEFAULT_SCAN_LIMIT = 1000
MAX_SCAN_LIMIT = 1000
_SAMPLE_SIZE = 25

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ScanResult:
    """Outcome of one scan pass."""

    job_id: str
    prefix: str
    scanned: int
    inserted: int
    next_cursor: str | None = None
    sample: list[str] = field(default_factory=list)


class Scanner:
    """Page through the source listing and insert new media keys as queued items."""

    def __init__(self, repository: ImportJobRepository, source: SourceStore) -> None:
        self._repository = repository
        self._source = source

    async def scan(
        self,
        job: ImportJob,
        prefix: str | None = None,
        limit: int | None = None,
    ) -> ScanResult:
        """Run one pass; re-scanning the same prefix never duplicates items."""

        max_items = max(1, min(MAX_SCAN_LIMIT, limit or DEFAULT_SCAN_LIMIT))
        resolved_prefix = normalize_prefix(
            prefix or job.settings.prefix or self._source.default_prefix
        )

        await self._repository.update_job_status(
            job.job_id,
            JobStatus.SCANNING,
            clear_last_error=True,
        )

        matched: list[ObjectSummary] = []
        cursor: str | None = None
        try:
            while len(matched) < max_items:
                listing = await self._source.list_objects(
                    resolved_prefix,
                    cursor=cursor,
                    limit=max_items - len(matched),
                )
                for summary in listing.objects:
                    if len(matched) >= max_items:
                        break
                    if job.settings.matches_media_key(summary.key):
                        matched.append(summary)
                cursor = listing.next_cursor
                if not cursor:
                    break
            inserted = await self._repository.insert_items(job.job_id, matched)
            await self._repository.record_scan_result(job.job_id, scanned=len(matched))
        except Exception as exc:  # noqa: BLE001
            message = str(exc).strip() or "Scan failed"
            logger.warning("Scan failed for job '%s': %s", job.job_id, message)
            await self._repository.update_job_status(
                job.job_id,
                JobStatus.FAILED,
                last_error=message,
            )
            raise ImportScanError(message) from exc

        logger.info(
            "Scanned job '%s' under '%s': %s matched, %s new.",
            job.job_id,
            resolved_prefix,
            len(matched),
            inserted,
        )
        return ScanResult(
            job_id=job.job_id,
            prefix=resolved_prefix,
            scanned=len(matched),
            inserted=inserted,
            next_cursor=cursor,
            sample=[summary.key for summary in matched[:_SAMPLE_SIZE]],
        )


__all__ = ["DEFAULT_SCAN_LIMIT", "MAX_SCAN_LIMIT", "ScanResult", "Scanner"]
