"""S3-compatible source store adapter (path-style, e.g. Wasabi/MinIO)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from datetime import datetime
from typing import Any, Protocol, cast
from urllib.parse import quote

from media_import_engine.domain.errors import StorageConfigurationError
from media_import_engine.domain.import_types import AccessMode
from media_import_engine.domain.ports import SourceStore
from media_import_engine.domain.storage_models import (
    ObjectHead,
    ObjectListing,
    ObjectSummary,
    StoreHealth,
    normalize_prefix,
)

logger = logging.getLogger(__name__)

_MIN_SIGNED_URL_TTL_SECONDS = 60
_MAX_SIGNED_URL_TTL_SECONDS = 24 * 3600
_MAX_LIST_KEYS = 1000
_DEFAULT_READ_CHUNK_SIZE = 1024 * 1024


class S3Client(Protocol):
    """Subset of S3 client operations used by the source store."""

    def list_objects_v2(self, **kwargs: Any) -> dict[str, Any]:
        """List one page of objects."""

    def head_object(self, *, Bucket: str, Key: str) -> dict[str, Any]:
        """Return object metadata."""

    def get_object(self, *, Bucket: str, Key: str) -> dict[str, Any]:
        """Return object body stream and metadata."""

    def generate_presigned_url(
        self,
        ClientMethod: str,
        Params: dict[str, Any],
        ExpiresIn: int,
    ) -> str:
        """Return a presigned URL."""


class S3SourceStore(SourceStore):
    """Source adapter listing, reading and addressing objects in one bucket."""

    def __init__(
        self,
        *,
        endpoint: str | None,
        bucket: str | None,
        region: str = "us-east-1",
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        import_prefix: str = "",
        read_chunk_size: int = _DEFAULT_READ_CHUNK_SIZE,
        s3_client_factory: Callable[[], S3Client] | None = None,
    ) -> None:
        self._endpoint = (endpoint or "").strip().rstrip("/")
        self._bucket = (bucket or "").strip()
        self._region = region
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._import_prefix = import_prefix
        self._read_chunk_size = max(1, read_chunk_size)
        self._s3_client_factory = s3_client_factory or self._build_default_s3_client
        self._client: S3Client | None = None

    @property
    def default_prefix(self) -> str:
        return self._import_prefix

    async def list_objects(
        self,
        prefix: str,
        cursor: str | None = None,
        limit: int = _MAX_LIST_KEYS,
    ) -> ObjectListing:
        """List one page of objects under a normalized prefix."""

        client = self._get_client()
        normalized = normalize_prefix(prefix)
        request: dict[str, Any] = {
            "Bucket": self._bucket,
            "MaxKeys": max(1, min(_MAX_LIST_KEYS, int(limit or _MAX_LIST_KEYS))),
        }
        if normalized:
            request["Prefix"] = normalized
        if cursor:
            request["ContinuationToken"] = cursor

        response = await asyncio.to_thread(client.list_objects_v2, **request)
        objects = [
            ObjectSummary(
                key=str(entry["Key"]),
                size=int(entry.get("Size") or 0),
                etag=entry.get("ETag"),
                last_modified=_as_datetime(entry.get("LastModified")),
            )
            for entry in response.get("Contents") or []
            if entry.get("Key")
        ]
        next_cursor = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        return ObjectListing(prefix=normalized, objects=objects, next_cursor=next_cursor)

    async def head_object(self, key: str) -> ObjectHead:
        """Return object metadata."""

        client = self._get_client()
        response = await asyncio.to_thread(client.head_object, Bucket=self._bucket, Key=key)
        return ObjectHead(
            content_length=int(response.get("ContentLength") or 0),
            content_type=response.get("ContentType") or None,
            etag=response.get("ETag"),
            last_modified=_as_datetime(response.get("LastModified")),
        )

    async def open_read_stream(self, key: str) -> AsyncIterator[bytes]:
        """Yield the object body in chunks read off the event loop."""

        client = self._get_client()
        response = await asyncio.to_thread(client.get_object, Bucket=self._bucket, Key=key)
        body = response.get("Body")
        if body is None:
            raise RuntimeError(f"get_object returned no Body for '{key}'.")
        try:
            while True:
                chunk = await asyncio.to_thread(body.read, self._read_chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            close = getattr(body, "close", None)
            if callable(close):
                close()

    async def build_url(self, key: str, access_mode: AccessMode, ttl_seconds: int) -> str:
        """Return a presigned GET URL for signed mode, the public URL otherwise."""

        if access_mode is AccessMode.SIGNED:
            client = self._get_client()
            ttl = max(
                _MIN_SIGNED_URL_TTL_SECONDS,
                min(_MAX_SIGNED_URL_TTL_SECONDS, int(ttl_seconds or 3600)),
            )
            return await asyncio.to_thread(
                client.generate_presigned_url,
                "get_object",
                {"Bucket": self._bucket, "Key": key},
                ttl,
            )
        return self.public_url(key)

    def public_url(self, key: str) -> str:
        self._require_configured()
        return f"{self._endpoint}/{self._bucket}/{quote(key, safe='/')}"

    async def check_connection(self) -> StoreHealth:
        """List at most one key under the import prefix."""

        prefix = normalize_prefix(self._import_prefix)
        try:
            listing = await self.list_objects(prefix, limit=1)
        except StorageConfigurationError as exc:
            return StoreHealth(ok=False, detail=str(exc), tested_path=prefix)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Source store health check failed: %s", exc)
            return StoreHealth(
                ok=False,
                detail=str(exc),
                status_code=_status_code_of(exc),
                tested_path=prefix,
            )
        sample = listing.objects[0].key if listing.objects else "none"
        return StoreHealth(
            ok=True,
            detail=f"bucket '{self._bucket}' reachable, sample key: {sample}",
            status_code=200,
            tested_path=prefix,
        )

    def _get_client(self) -> S3Client:
        self._require_configured()
        if self._client is None:
            self._client = self._s3_client_factory()
        return self._client

    def _require_configured(self) -> None:
        if not self._endpoint or not self._bucket:
            raise StorageConfigurationError(
                "Source store requires an endpoint and a bucket to be configured."
            )

    def _build_default_s3_client(self) -> S3Client:
        """Create a boto3 S3 client lazily to avoid import-time hard dependency."""

        try:
            import boto3  # type: ignore[import-not-found]
            from botocore.config import Config  # type: ignore[import-not-found]
        except ModuleNotFoundError as exc:
            raise RuntimeError(
                "boto3 is required for the S3 source store. Install project dependencies first."
            ) from exc

        client = boto3.client(
            "s3",
            region_name=self._region,
            endpoint_url=self._endpoint,
            aws_access_key_id=self._access_key_id,
            aws_secret_access_key=self._secret_access_key,
            config=Config(s3={"addressing_style": "path"}),
        )
        return cast(S3Client, client)


def _as_datetime(value: object) -> datetime | None:
    return value if isinstance(value, datetime) else None


def _status_code_of(exc: Exception) -> int | None:
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return None
    status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return status if isinstance(status, int) else None


__all__ = ["S3Client", "S3SourceStore"]
