from __future__ import annotations

import asyncio

import pytest
from doubles import FakeS3Client, build_source

from media_import_engine.application.services import Scanner
from media_import_engine.domain.entities import ImportJob
from media_import_engine.domain.errors import ImportScanError
from media_import_engine.domain.import_types import ImportMode, JobStatus
from media_import_engine.domain.job_settings import JobSettings
from media_import_engine.infrastructure.repositories import InMemoryImportJobRepository

OBJECTS = {
    "videos/a.mp4": b"aaaa",
    "videos/b.MP4": b"bbbbbb",
    "videos/c.mov": b"cc",
    "videos/notes.txt": b"n",
}


async def _create_job(
    repository: InMemoryImportJobRepository,
    settings: JobSettings | None = None,
) -> ImportJob:
    return await repository.create_job(
        ImportJob(
            job_id="job-scan",
            mode=ImportMode.COPY,
            settings=settings or JobSettings(prefix="videos"),
        )
    )


def test_scan_registers_media_keys_and_marks_job_ready() -> None:
    async def scenario() -> None:
        repository = InMemoryImportJobRepository()
        job = await _create_job(repository)
        scanner = Scanner(repository, build_source(FakeS3Client(OBJECTS)))

        result = await scanner.scan(job)

        assert result.prefix == "videos/"
        assert result.scanned == 2
        assert result.inserted == 2
        assert result.sample == ["videos/a.mp4", "videos/b.MP4"]
        stored = await repository.get_job(job.job_id)
        assert stored is not None
        assert stored.status is JobStatus.READY
        assert stored.totals.scanned == 2
        items = await repository.list_pending_items(job.job_id)
        assert [item.source_size_bytes for item in items] == [4, 6]

    asyncio.run(scenario())


def test_rescan_does_not_duplicate_items() -> None:
    async def scenario() -> None:
        repository = InMemoryImportJobRepository()
        job = await _create_job(repository)
        scanner = Scanner(repository, build_source(FakeS3Client(OBJECTS)))

        await scanner.scan(job)
        second = await scanner.scan(job)

        assert second.scanned == 2
        assert second.inserted == 0
        counts = await repository.count_items_by_status(job.job_id)
        assert counts.total == 2

    asyncio.run(scenario())


def test_scan_honors_configured_extensions() -> None:
    async def scenario() -> None:
        repository = InMemoryImportJobRepository()
        job = await _create_job(
            repository,
            JobSettings.model_validate({"prefix": "videos", "mediaExtensions": "mov, .MP4"}),
        )
        scanner = Scanner(repository, build_source(FakeS3Client(OBJECTS)))

        result = await scanner.scan(job)

        assert sorted(result.sample) == ["videos/a.mp4", "videos/b.MP4", "videos/c.mov"]

    asyncio.run(scenario())


def test_scan_limit_stops_early_and_returns_cursor() -> None:
    async def scenario() -> None:
        repository = InMemoryImportJobRepository()
        job = await _create_job(repository, JobSettings(prefix="v"))
        client = FakeS3Client({f"v/{index:02d}.mp4": b"x" for index in range(6)})
        scanner = Scanner(repository, build_source(client))

        result = await scanner.scan(job, limit=2)

        assert result.scanned == 2
        assert result.next_cursor == "2"
        assert client.list_requests[0]["MaxKeys"] == 2

    asyncio.run(scenario())


def test_scan_prefix_override_wins_over_job_prefix() -> None:
    async def scenario() -> None:
        repository = InMemoryImportJobRepository()
        job = await _create_job(repository)
        client = FakeS3Client({"other/x.mp4": b"x"})
        scanner = Scanner(repository, build_source(client))

        result = await scanner.scan(job, prefix="/other")

        assert result.prefix == "other/"
        assert result.inserted == 1

    asyncio.run(scenario())


def test_scan_failure_marks_job_failed() -> None:
    async def scenario() -> None:
        repository = InMemoryImportJobRepository()
        job = await _create_job(repository)
        client = FakeS3Client(OBJECTS)
        client.list_error = RuntimeError("bucket unreachable")
        scanner = Scanner(repository, build_source(client))

        with pytest.raises(ImportScanError):
            await scanner.scan(job)

        stored = await repository.get_job(job.job_id)
        assert stored is not None
        assert stored.status is JobStatus.FAILED
        assert stored.last_error == "bucket unreachable"

    asyncio.run(scenario())


class FailingScanResultRepository(InMemoryImportJobRepository):
    async def record_scan_result(self, job_id: str, *, scanned: int) -> None:
        raise RuntimeError("connection reset")


def test_failed_scan_result_write_does_not_leave_job_scanning() -> None:
    async def scenario() -> None:
        repository = FailingScanResultRepository()
        job = await _create_job(repository)
        scanner = Scanner(repository, build_source(FakeS3Client(OBJECTS)))

        with pytest.raises(ImportScanError):
            await scanner.scan(job)

        stored = await repository.get_job(job.job_id)
        assert stored is not None
        assert stored.status is JobStatus.FAILED
        assert stored.last_error == "connection reset"

    asyncio.run(scenario())
