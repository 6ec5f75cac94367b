"""Buffered, single-flight persistence of per-job progress counters."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from contextlib import suppress
from dataclasses import dataclass, field, replace

from media_import_engine.domain.entities import JobTotals
from media_import_engine.domain.ports import ImportJobRepository

_DEFAULT_FLUSH_INTERVAL_SECONDS = 1.0

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _JobBuffer:
    pending: JobTotals = field(default_factory=JobTotals)
    timer: asyncio.Task[None] | None = None
    flush_task: asyncio.Task[None] | None = None
    flush_requested: bool = False
    closed: bool = False
    last_error: str | None = None


class TotalsAggregator:
    """Accumulate counter deltas per job and write them in one atomic increment.

    - `add` is synchronous and only touches memory; the first add of a window arms a
      timer that flushes after `flush_interval_seconds`.
    - At most one increment per job is in flight. A flush requested meanwhile runs
      right after it, and every caller awaits the flush covering its request.
    - A failed increment puts its deltas back into the buffer; they are retried on
      the next window, so persisted totals always converge to the sum of all adds.
    """

    def __init__(
        self,
        repository: ImportJobRepository,
        flush_interval_seconds: float = _DEFAULT_FLUSH_INTERVAL_SECONDS,
    ) -> None:
        self._repository = repository
        self._flush_interval_seconds = max(flush_interval_seconds, 0.0)
        self._buffers: dict[str, _JobBuffer] = {}

    def add(self, job_id: str, delta: JobTotals | None = None, **counters: int) -> None:
        """Buffer a delta; counters may be given as a `JobTotals` or keywords."""

        increment = JobTotals() if delta is None else replace(delta)
        if counters:
            increment.add(JobTotals(**counters))
        if increment.is_empty():
            return

        state = self._buffers.get(job_id)
        if state is None:
            state = _JobBuffer()
            self._buffers[job_id] = state
        state.closed = False
        state.pending.add(increment)
        self._arm_timer(job_id, state)

    async def flush(self, job_id: str) -> None:
        """Persist everything buffered so far for one job."""

        state = self._buffers.get(job_id)
        if state is None:
            return
        state.flush_requested = True
        task = state.flush_task
        if task is None or task.done():
            task = asyncio.create_task(
                self._run_flushes(job_id, state),
                name=f"totals-flush-{job_id}",
            )
            state.flush_task = task
        await asyncio.shield(task)

    async def close(self, job_id: str) -> bool:
        """Stop the timer and flush; return whether nothing is left unpersisted.

        When the final flush fails the buffer is kept and retried on later windows.
        """

        state = self._buffers.get(job_id)
        if state is None:
            return True
        state.closed = True
        await self._cancel_timer(state)
        await self.flush(job_id)
        if state.pending.is_empty():
            self._drop_if_idle(job_id, state)
            return True
        self._arm_timer(job_id, state)
        return False

    def discard(self, job_id: str, counters: Iterable[str]) -> None:
        """Zero buffered counters that were overwritten with exact values elsewhere."""

        state = self._buffers.get(job_id)
        if state is None:
            return
        for name in counters:
            setattr(state.pending, name, 0)

    def pending(self, job_id: str) -> JobTotals:
        state = self._buffers.get(job_id)
        return JobTotals() if state is None else replace(state.pending)

    def last_flush_error(self, job_id: str) -> str | None:
        state = self._buffers.get(job_id)
        return None if state is None else state.last_error

    async def shutdown(self) -> None:
        """Flush every job once and stop all timers."""

        for job_id in list(self._buffers):
            try:
                persisted = await self.close(job_id)
            except Exception:
                logger.exception("Final totals flush failed for job '%s'.", job_id)
                continue
            if not persisted:
                logger.warning("Job '%s' shut down with unpersisted totals.", job_id)
        for state in list(self._buffers.values()):
            await self._cancel_timer(state)

    async def _run_flushes(self, job_id: str, state: _JobBuffer) -> None:
        while state.flush_requested:
            state.flush_requested = False
            delta = state.pending
            if delta.is_empty():
                continue
            state.pending = JobTotals()
            try:
                await self._repository.increment_job_totals(job_id, delta)
            except Exception as exc:  # noqa: BLE001
                delta.add(state.pending)
                state.pending = delta
                state.last_error = str(exc).strip() or exc.__class__.__name__
                logger.warning(
                    "Totals flush failed for job '%s', keeping %s buffered: %s",
                    job_id,
                    delta.as_dict(),
                    state.last_error,
                )
                self._arm_timer(job_id, state)
                return
            state.last_error = None
        if state.closed:
            self._drop_if_idle(job_id, state)

    def _arm_timer(self, job_id: str, state: _JobBuffer) -> None:
        if state.timer is not None and not state.timer.done():
            return
        state.timer = asyncio.create_task(
            self._flush_after_interval(job_id, state),
            name=f"totals-timer-{job_id}",
        )

    async def _flush_after_interval(self, job_id: str, state: _JobBuffer) -> None:
        await asyncio.sleep(self._flush_interval_seconds)
        state.timer = None
        try:
            await self.flush(job_id)
        except Exception:
            logger.exception("Scheduled totals flush failed for job '%s'.", job_id)

    async def _cancel_timer(self, state: _JobBuffer) -> None:
        timer = state.timer
        state.timer = None
        if timer is None or timer is asyncio.current_task():
            return
        timer.cancel()
        with suppress(asyncio.CancelledError):
            await timer

    def _drop_if_idle(self, job_id: str, state: _JobBuffer) -> None:
        if not state.pending.is_empty():
            return
        if state.timer is not None and not state.timer.done():
            return
        if self._buffers.get(job_id) is state:
            self._buffers.pop(job_id, None)


__all__ = ["TotalsAggregator"]
