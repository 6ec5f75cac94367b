"""Job runner: drains queued items in small batches until done, paused or canceled."""

from __future__ import annotations

import logging

from media_import_engine.application.services.item_handlers import (
    ItemHandler,
    RemoteLinkHandler,
    StreamCopyHandler,
)
from media_import_engine.application.services.job_control import JobControl
from media_import_engine.application.services.totals_aggregator import TotalsAggregator
from media_import_engine.domain.entities import ImportJob, ImportJobItem
from media_import_engine.domain.errors import ImportJobNotFoundError
from media_import_engine.domain.import_types import ImportMode, ItemStatus, JobStatus
from media_import_engine.domain.ports import (
    CatalogWriter,
    DestinationStore,
    ImportJobRepository,
    SourceStore,
)

_DEFAULT_BATCH_SIZE = 3
_DEFAULT_BYTES_TOTAL_ITEM_LIMIT = 500
_ITEM_COUNT_TOTALS = ("completed", "failed", "skipped")
_FALLBACK_ITEM_ERROR = "Import failed"

logger = logging.getLogger(__name__)


class ImportRunner:
    """Process one job's pending items sequentially and finalize the job."""

    def __init__(
        self,
        repository: ImportJobRepository,
        catalog: CatalogWriter,
        source: SourceStore,
        destination: DestinationStore,
        aggregator: TotalsAggregator,
        batch_size: int = _DEFAULT_BATCH_SIZE,
        bytes_total_item_limit: int = _DEFAULT_BYTES_TOTAL_ITEM_LIMIT,
    ) -> None:
        self._repository = repository
        self._source = source
        self._aggregator = aggregator
        self._batch_size = max(batch_size, 1)
        self._bytes_total_item_limit = max(bytes_total_item_limit, 0)
        self._handlers: dict[ImportMode, ItemHandler] = {
            ImportMode.REMOTE: RemoteLinkHandler(repository, catalog, source),
            ImportMode.COPY: StreamCopyHandler(
                repository,
                catalog,
                source,
                destination,
                aggregator,
            ),
        }

    async def run(self, job_id: str, control: JobControl) -> JobStatus:
        """Run until the queue is empty or the control token asks to stop.

        Returns the status the job was left in.
        """

        job = await self._repository.get_job(job_id)
        if job is None:
            raise ImportJobNotFoundError(f"No import job found for id '{job_id}'.")

        if job.status in {JobStatus.PAUSED, JobStatus.CANCELED}:
            control.request_stop(job.status)
        if control.should_stop:
            logger.info("Job '%s' asked to stop before running.", job_id)
            return await self._finish_stopped(job_id, control)

        requeued = await self._repository.requeue_interrupted_items(job_id)
        if requeued:
            logger.info("Requeued %s interrupted items of job '%s'.", requeued, job_id)
        if job.status is not JobStatus.RUNNING:
            await self._repository.update_job_status(job_id, JobStatus.RUNNING, started=True)

        handler = self._handlers[job.mode]
        control.start_refresh()
        try:
            await self._ensure_bytes_total(job)
            while not control.should_stop:
                batch = await self._repository.list_pending_items(job_id, self._batch_size)
                if not batch:
                    break
                for item in batch:
                    if control.should_stop:
                        break
                    await self._process_item(job, item, handler)
        except Exception as exc:
            logger.exception(
                "Runner for job '%s' crashed; leaving it to lease recovery.",
                job_id,
            )
            await control.stop_refresh()
            await self._aggregator.close(job_id)
            return await self._leave_for_recovery(
                job_id,
                control,
                str(exc).strip() or "Runner failed",
            )

        await control.stop_refresh()
        persisted = await self._aggregator.close(job_id)
        await self._observe_cancel(job_id, control)

        if control.should_stop:
            status = await self._finish_stopped(job_id, control)
        else:
            status = await self._finalize(job_id)

        if not persisted:
            error = self._aggregator.last_flush_error(job_id) or "unknown error"
            await self._repository.set_job_last_error(
                job_id,
                f"Progress totals not fully persisted yet, retrying in background: {error}",
            )
        logger.info("Runner for job '%s' exited with status '%s'.", job_id, status.value)
        return status

    async def _process_item(
        self,
        job: ImportJob,
        item: ImportJobItem,
        handler: ItemHandler,
    ) -> None:
        item.attempts += 1
        item.error = None
        try:
            await handler.process(job, item)
        except Exception as exc:  # noqa: BLE001
            message = str(exc).strip() or _FALLBACK_ITEM_ERROR
            logger.warning(
                "Item %s (%s) of job '%s' failed: %s",
                item.item_id,
                item.source_key,
                job.job_id,
                message,
            )
            item.status = ItemStatus.FAILED
            item.error = message
            await self._repository.save_item(item)
            self._aggregator.add(job.job_id, failed=1)
            await self._repository.set_job_last_error(job.job_id, message)
            return
        self._aggregator.add(job.job_id, completed=1)

    async def _ensure_bytes_total(self, job: ImportJob) -> None:
        """Compute totals.bytes_total once, heading items whose size is unknown."""

        if job.totals.bytes_total > 0 or self._bytes_total_item_limit == 0:
            return

        total = 0
        pending = await self._repository.list_pending_items(
            job.job_id,
            self._bytes_total_item_limit,
        )
        for item in pending:
            size = item.source_size_bytes or 0
            if size <= 0:
                try:
                    head = await self._source.head_object(item.source_key)
                except Exception as exc:  # noqa: BLE001
                    logger.warning("Head failed for '%s': %s", item.source_key, exc)
                else:
                    size = head.content_length
                    if size > 0:
                        item.source_size_bytes = size
                        await self._repository.save_item(item)
            total += max(size, 0)

        if total > 0:
            await self._repository.set_bytes_total_if_unset(job.job_id, total)

    async def _observe_cancel(self, job_id: str, control: JobControl) -> None:
        """Latch a cancel persisted by another process after the refresh loop stopped."""

        job = await self._repository.get_job(job_id)
        if job is not None and job.status is JobStatus.CANCELED:
            control.request_stop(JobStatus.CANCELED)

    async def _leave_for_recovery(
        self,
        job_id: str,
        control: JobControl,
        message: str,
    ) -> JobStatus:
        """Requeue in-flight items and keep the job running so another runner resumes it."""

        try:
            requeued = await self._repository.requeue_interrupted_items(job_id)
            if requeued:
                logger.info("Requeued %s interrupted items of job '%s'.", requeued, job_id)
            await self._observe_cancel(job_id, control)
            if control.should_stop:
                return await self._finish_stopped(job_id, control)
            await self._repository.set_job_last_error(
                job_id,
                f"Runner interrupted, resuming after lease expiry: {message}",
            )
        except Exception:
            logger.exception("Could not record interruption of job '%s'.", job_id)
        return JobStatus.RUNNING

    async def _finish_stopped(self, job_id: str, control: JobControl) -> JobStatus:
        if control.stop_status is JobStatus.CANCELED:
            skipped = await self._repository.skip_pending_items(job_id)
            if skipped:
                logger.info("Skipped %s pending items of canceled job '%s'.", skipped, job_id)
            counts = await self._repository.count_items_by_status(job_id)
            await self._repository.apply_item_counts(
                job_id,
                counts,
                status=JobStatus.CANCELED,
            )
            self._aggregator.discard(job_id, _ITEM_COUNT_TOTALS)
            return JobStatus.CANCELED

        await self._repository.update_job_status(job_id, JobStatus.PAUSED)
        return JobStatus.PAUSED

    async def _finalize(self, job_id: str) -> JobStatus:
        counts = await self._repository.count_items_by_status(job_id)
        status = counts.final_job_status()
        await self._repository.apply_item_counts(job_id, counts, status=status)
        self._aggregator.discard(job_id, _ITEM_COUNT_TOTALS)
        return status


__all__ = ["ImportRunner"]
