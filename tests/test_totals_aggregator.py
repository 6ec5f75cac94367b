from __future__ import annotations

import asyncio

from media_import_engine.application.services import TotalsAggregator
from media_import_engine.domain.entities import ImportJob, JobTotals
from media_import_engine.domain.import_types import ImportMode
from media_import_engine.domain.job_settings import JobSettings
from media_import_engine.infrastructure.repositories import InMemoryImportJobRepository


class FlakyTotalsRepository(InMemoryImportJobRepository):
    """Repository whose first increments fail."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.increment_calls = 0

    async def increment_job_totals(self, job_id: str, delta: JobTotals) -> None:
        self.increment_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("database unavailable")
        await super().increment_job_totals(job_id, delta)


class GatedTotalsRepository(InMemoryImportJobRepository):
    """Repository that blocks increments until released and tracks overlap."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()
        self.in_flight = 0
        self.max_in_flight = 0
        self.increment_calls = 0

    async def increment_job_totals(self, job_id: str, delta: JobTotals) -> None:
        self.increment_calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await self.gate.wait()
            await super().increment_job_totals(job_id, delta)
        finally:
            self.in_flight -= 1


async def _create_job(repository: InMemoryImportJobRepository) -> str:
    job = await repository.create_job(
        ImportJob(job_id="job-1", mode=ImportMode.COPY, settings=JobSettings())
    )
    return job.job_id


def test_flush_writes_accumulated_deltas_in_one_increment() -> None:
    async def scenario() -> None:
        repository = FlakyTotalsRepository(failures=0)
        job_id = await _create_job(repository)
        aggregator = TotalsAggregator(repository, flush_interval_seconds=60)

        aggregator.add(job_id, bytes_copied=10)
        aggregator.add(job_id, bytes_copied=15)
        aggregator.add(job_id, JobTotals(completed=1))
        await aggregator.flush(job_id)

        job = await repository.get_job(job_id)
        assert job is not None
        assert job.totals.bytes_copied == 25
        assert job.totals.completed == 1
        assert repository.increment_calls == 1
        assert aggregator.pending(job_id).is_empty()
        await aggregator.shutdown()

    asyncio.run(scenario())


def test_failed_flush_keeps_deltas_until_a_later_flush_succeeds() -> None:
    async def scenario() -> None:
        repository = FlakyTotalsRepository(failures=1)
        job_id = await _create_job(repository)
        aggregator = TotalsAggregator(repository, flush_interval_seconds=60)

        aggregator.add(job_id, bytes_copied=5)
        await aggregator.flush(job_id)

        assert aggregator.pending(job_id).bytes_copied == 5
        assert aggregator.last_flush_error(job_id) == "database unavailable"

        aggregator.add(job_id, bytes_copied=7)
        persisted = await aggregator.close(job_id)

        job = await repository.get_job(job_id)
        assert job is not None
        assert persisted is True
        assert job.totals.bytes_copied == 12
        assert aggregator.pending(job_id).is_empty()
        assert aggregator.last_flush_error(job_id) is None

    asyncio.run(scenario())


def test_close_reports_unpersisted_totals_and_retries_on_timer() -> None:
    async def scenario() -> None:
        repository = FlakyTotalsRepository(failures=1)
        job_id = await _create_job(repository)
        aggregator = TotalsAggregator(repository, flush_interval_seconds=0.01)

        aggregator.add(job_id, failed=1)
        persisted = await aggregator.close(job_id)
        assert persisted is False

        for _ in range(100):
            job = await repository.get_job(job_id)
            assert job is not None
            if job.totals.failed == 1:
                break
            await asyncio.sleep(0.01)

        assert job.totals.failed == 1
        await aggregator.shutdown()

    asyncio.run(scenario())


def test_concurrent_flushes_never_overlap() -> None:
    async def scenario() -> None:
        repository = GatedTotalsRepository()
        job_id = await _create_job(repository)
        aggregator = TotalsAggregator(repository, flush_interval_seconds=60)

        aggregator.add(job_id, bytes_copied=1)
        first = asyncio.create_task(aggregator.flush(job_id))
        for _ in range(10):
            if repository.in_flight:
                break
            await asyncio.sleep(0)
        assert repository.in_flight == 1
        aggregator.add(job_id, bytes_copied=2)
        second = asyncio.create_task(aggregator.flush(job_id))
        await asyncio.sleep(0)
        assert repository.in_flight == 1

        repository.gate.set()
        await asyncio.gather(first, second)

        job = await repository.get_job(job_id)
        assert job is not None
        assert job.totals.bytes_copied == 3
        assert repository.max_in_flight == 1
        assert repository.increment_calls == 2
        await aggregator.shutdown()

    asyncio.run(scenario())


def test_discard_drops_counters_overwritten_elsewhere() -> None:
    async def scenario() -> None:
        repository = FlakyTotalsRepository(failures=0)
        job_id = await _create_job(repository)
        aggregator = TotalsAggregator(repository, flush_interval_seconds=60)

        aggregator.add(job_id, completed=2, failed=1, bytes_copied=9)
        aggregator.discard(job_id, ("completed", "failed", "skipped"))

        pending = aggregator.pending(job_id)
        assert pending.completed == 0
        assert pending.failed == 0
        assert pending.bytes_copied == 9
        await aggregator.shutdown()

    asyncio.run(scenario())
