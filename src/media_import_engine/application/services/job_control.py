"""Cooperative stop signal for one runner."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress

from media_import_engine.domain.import_types import JobStatus
from media_import_engine.domain.ports import ImportJobRepository

_DEFAULT_REFRESH_SECONDS = 2.0
_STOP_STATUSES = frozenset({JobStatus.PAUSED, JobStatus.CANCELED})

logger = logging.getLogger(__name__)


class JobControl:
    """Stop token checked by the runner between items.

    The owning service signals it directly on pause/cancel. A background refresh
    re-reads the persisted status so changes made by other processes are seen too.
    """

    def __init__(
        self,
        job_id: str,
        repository: ImportJobRepository,
        refresh_seconds: float = _DEFAULT_REFRESH_SECONDS,
    ) -> None:
        self._job_id = job_id
        self._repository = repository
        self._refresh_seconds = max(refresh_seconds, 0.05)
        self._stop_status: JobStatus | None = None
        self._stopped = asyncio.Event()
        self._refresh_task: asyncio.Task[None] | None = None

    @property
    def job_id(self) -> str:
        return self._job_id

    @property
    def stop_status(self) -> JobStatus | None:
        return self._stop_status

    @property
    def should_stop(self) -> bool:
        return self._stop_status is not None

    def request_stop(self, status: JobStatus) -> None:
        """Ask the runner to exit; cancel overrides an earlier pause."""

        if status not in _STOP_STATUSES:
            raise ValueError(f"Unsupported stop status '{status.value}'.")
        if self._stop_status is JobStatus.CANCELED:
            return
        self._stop_status = status
        self._stopped.set()

    async def refresh(self) -> JobStatus | None:
        """Read the persisted status once and latch a stop it carries."""

        status = await self._repository.get_job_status(self._job_id)
        if status in _STOP_STATUSES:
            self.request_stop(status)
        return status

    async def wait_stopped(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    def start_refresh(self) -> None:
        task = self._refresh_task
        if task is not None and not task.done():
            return
        self._refresh_task = asyncio.create_task(
            self._run_refresh_loop(),
            name=f"job-control-refresh-{self._job_id}",
        )

    async def stop_refresh(self) -> None:
        task = self._refresh_task
        self._refresh_task = None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def _run_refresh_loop(self) -> None:
        while not self.should_stop:
            if await self.wait_stopped(timeout=self._refresh_seconds):
                return
            try:
                await self.refresh()
            except Exception:
                logger.exception("Control refresh failed for job '%s'.", self._job_id)


__all__ = ["JobControl"]
