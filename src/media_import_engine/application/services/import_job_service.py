"""Import job use-case service."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from contextlib import suppress
from dataclasses import dataclass
from uuid import uuid4

from media_import_engine.application.services.import_runner import ImportRunner
from media_import_engine.application.services.job_control import JobControl
from media_import_engine.application.services.scanner import ScanResult, Scanner
from media_import_engine.application.services.totals_aggregator import TotalsAggregator
from media_import_engine.domain.entities import (
    ImportJob,
    ImportJobItem,
    ItemStatusCounts,
)
from media_import_engine.domain.errors import (
    ImportJobConflictError,
    ImportJobNotFoundError,
    ImportJobValidationError,
)
from media_import_engine.domain.import_types import (
    SCANNABLE_JOB_STATUSES,
    STARTABLE_JOB_STATUSES,
    TERMINAL_JOB_STATUSES,
    ImportMode,
    JobStatus,
    destination_provider_for,
    parse_item_status,
)
from media_import_engine.domain.job_settings import JobSettings
from media_import_engine.domain.ports import (
    DestinationStore,
    ImportJobRepository,
    SourceStore,
)
from media_import_engine.domain.storage_models import StoreHealth

_DEFAULT_RECOVERY_POLL_SECONDS = 5.0
_DEFAULT_RECOVERY_BATCH_SIZE = 5
_DEFAULT_LEASE_SECONDS = 60.0
_DEFAULT_HEARTBEAT_SECONDS = 15.0
_DEFAULT_CONTROL_REFRESH_SECONDS = 2.0
DEFAULT_ITEM_LIST_LIMIT = 200
MAX_ITEM_LIST_LIMIT = 500
MAX_ITEMS_BY_IDS = 500

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class StartResult:
    """Outcome of a start request."""

    job_id: str
    status: JobStatus
    selected_count: int = 0


@dataclass(slots=True)
class _ActiveRun:
    control: JobControl
    task: asyncio.Task[JobStatus | None]


class ImportJobService:
    """Orchestrates job lifecycle commands and owns background runner tasks."""

    def __init__(
        self,
        worker_id: str,
        repository: ImportJobRepository,
        source: SourceStore,
        destination: DestinationStore,
        scanner: Scanner,
        runner: ImportRunner,
        aggregator: TotalsAggregator,
        recovery_enabled: bool = True,
        recovery_poll_seconds: float = _DEFAULT_RECOVERY_POLL_SECONDS,
        recovery_batch_size: int = _DEFAULT_RECOVERY_BATCH_SIZE,
        lease_seconds: float = _DEFAULT_LEASE_SECONDS,
        heartbeat_seconds: float = _DEFAULT_HEARTBEAT_SECONDS,
        control_refresh_seconds: float = _DEFAULT_CONTROL_REFRESH_SECONDS,
    ) -> None:
        self._repository = repository
        self._source = source
        self._destination = destination
        self._scanner = scanner
        self._runner = runner
        self._aggregator = aggregator
        self._recovery_enabled = recovery_enabled
        self._recovery_poll_seconds = max(recovery_poll_seconds, 0.05)
        self._recovery_batch_size = max(recovery_batch_size, 1)
        self._lease_seconds = max(lease_seconds, 1.0)
        self._heartbeat_seconds = max(min(heartbeat_seconds, self._lease_seconds), 0.1)
        self._control_refresh_seconds = control_refresh_seconds
        self._lease_owner = f"{worker_id}:{uuid4()}"
        self._runs: dict[str, _ActiveRun] = {}
        self._recovery_task: asyncio.Task[None] | None = None
        self._recovery_stop = asyncio.Event()
        self._recovery_wake = asyncio.Event()

    @property
    def lease_owner(self) -> str:
        return self._lease_owner

    async def startup(self) -> None:
        """Start the lease recovery loop."""

        if not self._recovery_enabled:
            return
        task = self._recovery_task
        if task is not None and not task.done():
            return
        self._recovery_stop.clear()
        self._recovery_wake.set()
        self._recovery_task = asyncio.create_task(
            self._run_recovery_loop(),
            name="import-job-recovery-loop",
        )

    async def shutdown(self) -> None:
        """Stop background work; interrupted jobs are resumed once their lease expires."""

        await self._stop_recovery_loop()
        runs = list(self._runs.values())
        for run in runs:
            run.task.cancel()
        for run in runs:
            with suppress(asyncio.CancelledError):
                await run.task
        await self._aggregator.shutdown()
        close = getattr(self._repository, "close", None)
        if close is not None:
            await close()

    async def create_job(self, mode: ImportMode, settings: JobSettings) -> ImportJob:
        """Create a queued job."""

        job = ImportJob(
            job_id=f"job-{uuid4()}",
            mode=mode,
            settings=settings,
            dest_provider=destination_provider_for(mode),
        )
        created = await self._repository.create_job(job)
        logger.info("Created %s import job '%s'.", mode.value, created.job_id)
        return created

    async def list_jobs(self, limit: int = 50) -> list[ImportJob]:
        return await self._repository.list_jobs(max(1, min(limit, 500)))

    async def get_job(self, job_id: str) -> ImportJob:
        """Return a job or raise not-found."""

        job = await self._repository.get_job(job_id)
        if job is None:
            raise ImportJobNotFoundError(f"No import job found for id '{job_id}'.")
        return job

    async def get_job_detail(self, job_id: str) -> tuple[ImportJob, ItemStatusCounts]:
        """Return a job together with live item aggregates."""

        job = await self.get_job(job_id)
        counts = await self._repository.count_items_by_status(job_id)
        return job, counts

    async def scan_job(
        self,
        job_id: str,
        prefix: str | None = None,
        limit: int | None = None,
    ) -> ScanResult:
        """Discover source objects for a job that is not running."""

        job = await self.get_job(job_id)
        if job.status not in SCANNABLE_JOB_STATUSES or self._is_running_locally(job_id):
            raise ImportJobConflictError(
                f"Cannot scan import job '{job_id}' in status '{job.status.value}'."
            )
        return await self._scanner.scan(job, prefix=prefix, limit=limit)

    async def start_job(self, job_id: str, item_ids: Sequence[int] | None = None) -> StartResult:
        """Start or resume a job, optionally narrowed to selected items."""

        job = await self.get_job(job_id)
        if job.status not in STARTABLE_JOB_STATUSES:
            raise ImportJobConflictError(
                f"Cannot start import job '{job_id}' in status '{job.status.value}'."
            )
        if self._is_running_locally(job_id):
            raise ImportJobConflictError(
                f"Import job '{job_id}' is still stopping; retry once it has exited."
            )

        selected_count = 0
        selection = sorted(set(item_ids or []))
        if selection:
            known = await self._repository.get_items_by_ids(job_id, selection)
            if not known:
                raise ImportJobValidationError(
                    f"None of the selected items belong to import job '{job_id}'."
                )
            selected_count = await self._repository.select_items_for_run(job_id, selection)

        counts = await self._repository.count_items_by_status(job_id)
        await self._repository.apply_item_counts(job_id, counts)

        acquired = await self._repository.mark_job_running(
            job_id,
            lease_owner=self._lease_owner,
            lease_seconds=self._lease_seconds,
        )
        if not acquired:
            raise ImportJobConflictError(
                f"Import job '{job_id}' is being run by another worker."
            )

        self._spawn_runner(job_id)
        logger.info(
            "Started import job '%s' (%s pending items, %s selected).",
            job_id,
            counts.pending,
            selected_count or "all",
        )
        return StartResult(job_id=job_id, status=JobStatus.RUNNING, selected_count=selected_count)

    async def pause_job(self, job_id: str) -> ImportJob:
        """Request a cooperative pause; the runner exits after its current item."""

        job = await self.get_job(job_id)
        if job.status in TERMINAL_JOB_STATUSES:
            raise ImportJobConflictError(
                f"Cannot pause import job '{job_id}' in status '{job.status.value}'."
            )
        if job.status is not JobStatus.PAUSED:
            await self._repository.update_job_status(job_id, JobStatus.PAUSED)
        self._signal_run(job_id, JobStatus.PAUSED)
        return await self.get_job(job_id)

    async def cancel_job(self, job_id: str) -> ImportJob:
        """Cancel a job and mark its remaining pending items skipped."""

        job = await self.get_job(job_id)
        if job.status is JobStatus.CANCELED:
            return job
        if job.status is JobStatus.COMPLETED:
            raise ImportJobConflictError(f"Import job '{job_id}' is already completed.")

        await self._repository.update_job_status(job_id, JobStatus.CANCELED, finished=True)
        self._signal_run(job_id, JobStatus.CANCELED)
        await self._repository.skip_pending_items(job_id)
        counts = await self._repository.count_items_by_status(job_id)
        await self._repository.apply_item_counts(job_id, counts)
        logger.info("Canceled import job '%s'.", job_id)
        return await self.get_job(job_id)

    async def list_items(
        self,
        job_id: str,
        status: str | None = None,
        limit: int = DEFAULT_ITEM_LIST_LIMIT,
    ) -> list[ImportJobItem]:
        """Return the job's items newest first."""

        await self.get_job(job_id)
        status_filter = parse_item_status(status) if status and status.strip() else None
        bounded = max(1, min(MAX_ITEM_LIST_LIMIT, limit))
        return await self._repository.list_items(job_id, status=status_filter, limit=bounded)

    async def get_items_by_ids(self, job_id: str, item_ids: Sequence[int]) -> list[ImportJobItem]:
        """Return selected items of a job in ascending id order."""

        await self.get_job(job_id)
        unique_ids = sorted(set(item_ids))
        if not unique_ids:
            raise ImportJobValidationError("At least one item id is required.")
        if len(unique_ids) > MAX_ITEMS_BY_IDS:
            raise ImportJobValidationError(
                f"At most {MAX_ITEMS_BY_IDS} item ids can be requested at once."
            )
        return await self._repository.get_items_by_ids(job_id, unique_ids)

    async def check_storage(self) -> tuple[StoreHealth, StoreHealth]:
        """Probe source and destination stores concurrently."""

        source_health, destination_health = await asyncio.gather(
            self._source.check_connection(),
            self._destination.check_connection(),
        )
        return source_health, destination_health

    async def wait_for_run(self, job_id: str) -> JobStatus | None:
        """Await this process's runner for a job, if any."""

        run = self._runs.get(job_id)
        if run is None:
            return None
        return await asyncio.shield(run.task)

    def _is_running_locally(self, job_id: str) -> bool:
        run = self._runs.get(job_id)
        return run is not None and not run.task.done()

    def _signal_run(self, job_id: str, status: JobStatus) -> None:
        run = self._runs.get(job_id)
        if run is not None and not run.task.done():
            run.control.request_stop(status)

    def _spawn_runner(self, job_id: str) -> None:
        control = JobControl(job_id, self._repository, self._control_refresh_seconds)
        task = asyncio.create_task(
            self._run_job(job_id, control),
            name=f"import-job-runner-{job_id}",
        )
        self._runs[job_id] = _ActiveRun(control=control, task=task)

    async def _run_job(self, job_id: str, control: JobControl) -> JobStatus | None:
        heartbeat = asyncio.create_task(
            self._run_heartbeat(job_id),
            name=f"import-job-heartbeat-{job_id}",
        )
        try:
            return await self._runner.run(job_id, control)
        except asyncio.CancelledError:
            logger.info("Runner for job '%s' cancelled.", job_id)
            raise
        except Exception:
            logger.exception("Runner for job '%s' failed.", job_id)
            return None
        finally:
            heartbeat.cancel()
            with suppress(asyncio.CancelledError):
                await heartbeat
            await control.stop_refresh()
            try:
                await self._repository.release_job_lease(job_id, lease_owner=self._lease_owner)
            except Exception:
                logger.exception("Releasing lease failed for job '%s'.", job_id)
            current = self._runs.get(job_id)
            if current is not None and current.control is control:
                self._runs.pop(job_id, None)

    async def _run_heartbeat(self, job_id: str) -> None:
        """Refresh lease ownership while the runner is active."""

        try:
            while True:
                await asyncio.sleep(self._heartbeat_seconds)
                renewed = await self._repository.renew_job_lease(
                    job_id,
                    lease_owner=self._lease_owner,
                    lease_seconds=self._lease_seconds,
                )
                if not renewed:
                    return
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Lease heartbeat failed for job '%s'.", job_id)

    async def _run_recovery_loop(self) -> None:
        """Resume running jobs whose runner lease expired (crash or restart)."""

        while not self._recovery_stop.is_set():
            processed = 0
            try:
                claimed = await self._repository.claim_due_jobs(
                    lease_owner=self._lease_owner,
                    limit=self._recovery_batch_size,
                    lease_seconds=self._lease_seconds,
                )
                for job_id in claimed:
                    if self._is_running_locally(job_id):
                        continue
                    processed += 1
                    logger.info("Recovering import job '%s' after lease expiry.", job_id)
                    self._spawn_runner(job_id)
            except Exception:
                logger.exception("Import job recovery loop failed.")

            if processed > 0:
                continue

            self._recovery_wake.clear()
            try:
                await asyncio.wait_for(
                    self._recovery_wake.wait(),
                    timeout=self._recovery_poll_seconds,
                )
            except TimeoutError:
                pass

    async def _stop_recovery_loop(self) -> None:
        task = self._recovery_task
        if task is None:
            return
        self._recovery_task = None
        self._recovery_stop.set()
        self._recovery_wake.set()
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


__all__ = [
    "DEFAULT_ITEM_LIST_LIMIT",
    "ImportJobService",
    "MAX_ITEMS_BY_IDS",
    "MAX_ITEM_LIST_LIMIT",
    "StartResult",
]
