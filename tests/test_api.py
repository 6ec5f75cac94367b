from __future__ import annotations

import time
from collections.abc import Iterator

import pytest
from doubles import FakeS3Client, build_service
from fastapi.testclient import TestClient

from media_import_engine import __version__
from media_import_engine.api.dependencies import get_import_job_service, get_settings
from media_import_engine.infrastructure.repositories import InMemoryImportJobRepository
from media_import_engine.main import app

OBJECTS = {
    "videos/intro.mp4": b"i" * 12,
    "videos/part_two.mp4": b"p" * 8,
    "videos/readme.txt": b"r",
}


@pytest.fixture(autouse=True)
def _isolated_service(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("MIE_REPOSITORY_BACKEND", "in_memory")
    monkeypatch.setenv("MIE_JOB_RECOVERY_ENABLED", "false")
    for name in ("MIE_SOURCE_ENDPOINT", "MIE_SOURCE_BUCKET", "MIE_DESTINATION_HOST"):
        monkeypatch.delenv(name, raising=False)
    get_import_job_service.cache_clear()
    get_settings.cache_clear()
    yield
    app.dependency_overrides.clear()
    get_import_job_service.cache_clear()
    get_settings.cache_clear()


def _wait_for_job_status(client: TestClient, job_id: str, expected: str) -> dict[str, object]:
    body: dict[str, object] = {}
    for _ in range(200):
        response = client.get(f"/import-jobs/{job_id}")
        assert response.status_code == 200
        body = response.json()
        if body["job"]["status"] == expected:  # type: ignore[index]
            return body
        time.sleep(0.01)
    raise AssertionError(f"job '{job_id}' stayed at {body}")


def test_healthz() -> None:
    with TestClient(app) as client:
        response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": __version__}


def test_create_job_returns_queued_job() -> None:
    payload = {
        "mode": "copy",
        "settings": {
            "prefix": " imports/2024 ",
            "visibility": "Unlisted",
            "categoryId": "0",
            "mediaExtensions": "mp4,MOV",
        },
    }
    with TestClient(app) as client:
        response = client.post("/import-jobs", json=payload)
        listing = client.get("/import-jobs")

    assert response.status_code == 201
    body = response.json()
    assert body["jobId"].startswith("job-")
    assert body["status"] == "queued"
    assert body["mode"] == "copy"
    assert body["sourceProvider"] == "s3"
    assert body["destProvider"] == "http_storage"
    assert body["settings"]["prefix"] == "imports/2024"
    assert body["settings"]["visibility"] == "unlisted"
    assert body["settings"]["categoryId"] is None
    assert body["settings"]["mediaExtensions"] == [".mp4", ".mov"]
    assert body["totals"]["percentComplete"] is None
    assert [job["jobId"] for job in listing.json()["jobs"]] == [body["jobId"]]


def test_create_job_with_unknown_mode_returns_422() -> None:
    with TestClient(app) as client:
        response = client.post("/import-jobs", json={"mode": "teleport"})

    assert response.status_code == 422


def test_unknown_job_returns_404() -> None:
    with TestClient(app) as client:
        response = client.get("/import-jobs/job-missing")
        start = client.post("/import-jobs/job-missing/start")

    assert response.status_code == 404
    assert start.status_code == 404


def test_scan_without_source_configuration_returns_502_and_fails_job() -> None:
    with TestClient(app) as client:
        job_id = client.post("/import-jobs", json={}).json()["jobId"]
        response = client.post(f"/import-jobs/{job_id}/scan", json={"prefix": "videos"})
        detail = client.get(f"/import-jobs/{job_id}").json()

    assert response.status_code == 502
    assert detail["job"]["status"] == "failed"
    assert detail["job"]["lastError"]


def test_item_query_validation_returns_400() -> None:
    with TestClient(app) as client:
        job_id = client.post("/import-jobs", json={}).json()["jobId"]
        bad_status = client.get(f"/import-jobs/{job_id}/items", params={"status": "bogus"})
        bad_ids = client.get(f"/import-jobs/{job_id}/items/by-ids", params={"ids": "1,a"})
        no_ids = client.get(f"/import-jobs/{job_id}/items/by-ids")

    assert bad_status.status_code == 400
    assert bad_ids.status_code == 400
    assert no_ids.status_code == 400


def test_storage_health_reports_unconfigured_stores() -> None:
    with TestClient(app) as client:
        response = client.get("/storage/health")

    assert response.status_code == 200
    body = response.json()
    assert body["source"]["ok"] is False
    assert body["destination"]["ok"] is False


def test_remote_import_flow_end_to_end() -> None:
    service = build_service(InMemoryImportJobRepository(), FakeS3Client(OBJECTS))
    app.dependency_overrides[get_import_job_service] = lambda: service

    with TestClient(app) as client:
        created = client.post(
            "/import-jobs",
            json={"mode": "remote", "settings": {"prefix": "videos", "visibility": "public"}},
        )
        job_id = created.json()["jobId"]

        scan = client.post(f"/import-jobs/{job_id}/scan")
        assert scan.status_code == 200
        assert scan.json()["scanned"] == 2
        assert scan.json()["sample"] == ["videos/intro.mp4", "videos/part_two.mp4"]

        rescan = client.post(f"/import-jobs/{job_id}/scan", json={"limit": 10})
        assert rescan.json()["inserted"] == 0

        start = client.post(f"/import-jobs/{job_id}/start", json={"itemIds": []})
        assert start.status_code == 202
        assert start.json() == {"jobId": job_id, "status": "running", "selectedCount": 0}

        detail = _wait_for_job_status(client, job_id, "completed")
        items = client.get(f"/import-jobs/{job_id}/items").json()["items"]
        first_id = items[-1]["itemId"]
        selected = client.get(
            f"/import-jobs/{job_id}/items/by-ids",
            params={"ids": f"{first_id}, {first_id}"},
        ).json()["items"]
        pause = client.post(f"/import-jobs/{job_id}/pause")

    assert detail["counts"] == {"completed": 2, "skipped": 0, "failed": 0, "pending": 0}
    assert detail["job"]["totals"]["completed"] == 2
    assert detail["job"]["totals"]["bytesTotal"] == 20
    assert [item["sourceKey"] for item in items] == ["videos/part_two.mp4", "videos/intro.mp4"]
    assert items[1]["destUrl"] == "https://s3.example.com/media/videos/intro.mp4"
    assert all(item["status"] == "completed" for item in items)
    assert [item["itemId"] for item in selected] == [first_id]
    assert pause.status_code == 409
