from __future__ import annotations

import asyncio

from doubles import SOURCE_BUCKET, FakeS3Client, build_source

from media_import_engine.domain.import_types import AccessMode
from media_import_engine.infrastructure.storage import S3SourceStore


def test_list_objects_normalizes_prefix_and_clamps_page_size() -> None:
    client = FakeS3Client({"media/a.mp4": b"aa", "media/b.mp4": b"bbb", "other/c.mp4": b"c"})
    store = build_source(client)

    listing = asyncio.run(store.list_objects("/media", limit=5000))

    assert listing.prefix == "media/"
    assert [summary.key for summary in listing.objects] == ["media/a.mp4", "media/b.mp4"]
    assert [summary.size for summary in listing.objects] == [2, 3]
    assert listing.next_cursor is None
    assert client.list_requests == [
        {"Bucket": SOURCE_BUCKET, "MaxKeys": 1000, "Prefix": "media/"}
    ]


def test_list_objects_returns_continuation_cursor() -> None:
    client = FakeS3Client({f"v/{index}.mp4": b"x" for index in range(5)}, page_size=2)
    store = build_source(client)

    first = asyncio.run(store.list_objects("v/"))
    second = asyncio.run(store.list_objects("v/", cursor=first.next_cursor))

    assert len(first.objects) == 2
    assert first.next_cursor == "2"
    assert client.list_requests[1]["ContinuationToken"] == "2"
    assert [summary.key for summary in second.objects] == ["v/2.mp4", "v/3.mp4"]


def test_public_url_is_path_style_and_encoded() -> None:
    store = build_source(FakeS3Client({}))

    url = asyncio.run(store.build_url("folder/a b.mp4", AccessMode.PUBLIC, 3600))

    assert url == "https://s3.example.com/media/folder/a%20b.mp4"


def test_signed_url_ttl_is_clamped() -> None:
    client = FakeS3Client({})
    store = build_source(client)

    asyncio.run(store.build_url("a.mp4", AccessMode.SIGNED, 10))
    asyncio.run(store.build_url("a.mp4", AccessMode.SIGNED, 10 * 24 * 3600))

    assert [request[2] for request in client.presign_requests] == [60, 24 * 3600]
    assert client.presign_requests[0][0] == "get_object"
    assert client.presign_requests[0][1] == {"Bucket": SOURCE_BUCKET, "Key": "a.mp4"}


def test_open_read_stream_yields_chunks_and_closes_body() -> None:
    client = FakeS3Client({"a.mp4": b"0123456789"})
    store = build_source(client)

    async def read_all() -> list[bytes]:
        return [chunk async for chunk in store.open_read_stream("a.mp4")]

    chunks = asyncio.run(read_all())

    assert chunks == [b"0123", b"4567", b"89"]
    assert client.bodies[0].closed is True


def test_check_connection_lists_one_key() -> None:
    client = FakeS3Client({"imports/a.mp4": b"a"})
    store = build_source(client, import_prefix="imports")

    health = asyncio.run(store.check_connection())

    assert health.ok is True
    assert "imports/a.mp4" in health.detail
    assert client.list_requests[0]["MaxKeys"] == 1


def test_check_connection_reports_listing_errors() -> None:
    client = FakeS3Client({})
    client.list_error = RuntimeError("AccessDenied")
    store = build_source(client)

    health = asyncio.run(store.check_connection())

    assert health.ok is False
    assert "AccessDenied" in health.detail


def test_unconfigured_source_is_not_healthy() -> None:
    store = S3SourceStore(endpoint=None, bucket=None)

    health = asyncio.run(store.check_connection())

    assert health.ok is False
