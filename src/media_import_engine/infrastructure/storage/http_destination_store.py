"""HTTP-PUT object storage destination (storage-zone style API with AccessKey auth)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from typing import cast
from urllib.parse import quote

import httpx

from media_import_engine.domain.errors import (
    ObjectNotVisibleError,
    ObjectSizeMismatchError,
    StorageAuthorizationError,
    StorageConfigurationError,
    StorageError,
)
from media_import_engine.domain.ports import DestinationStore
from media_import_engine.domain.storage_models import (
    StoreHealth,
    VerifiedObject,
    safe_filename_from_key,
)

logger = logging.getLogger(__name__)

DEFAULT_VERIFY_BACKOFF_SECONDS: tuple[float, ...] = (0.25, 0.5, 0.9, 1.3, 1.8, 2.5, 3.2, 4.0)
HEALTHCHECK_FILENAME = "__healthcheck__does_not_exist__.txt"

_PUT_SUCCESS_CODES = frozenset({200, 201, 204})
_RANGE_SUCCESS_CODES = frozenset({200, 206})
_MAX_ERROR_BODY_CHARS = 500
_SEGMENT_SAFE_CHARS = "!'()*"


class HttpDestinationStore(DestinationStore):
    """Upload objects with streamed PUTs and confirm them with 1-byte range reads."""

    def __init__(
        self,
        *,
        host: str | None,
        storage_zone: str | None,
        base_path: str | None,
        api_key: str | None,
        cdn_base_url: str | None = None,
        put_timeout_seconds: float = 2 * 60 * 60,
        verify_timeout_seconds: float = 15.0,
        verify_backoff_seconds: Sequence[float] = DEFAULT_VERIFY_BACKOFF_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._host = (host or "").strip().strip("/")
        self._zone = (storage_zone or "").strip().strip("/")
        self._base_path = (base_path or "").strip().strip("/")
        self._api_key = api_key or ""
        self._cdn_base_url = (cdn_base_url or "").strip().rstrip("/")
        self._put_timeout_seconds = put_timeout_seconds
        self._verify_timeout_seconds = verify_timeout_seconds
        self._verify_backoff_seconds = tuple(verify_backoff_seconds) or (0.0,)
        self._transport = transport

    @property
    def put_base_url(self) -> str:
        return f"https://{self._host}/{self._zone}"

    def build_path(self, source_key: str) -> str:
        """Place the sanitized source filename under the configured base path."""

        self._require_configured()
        return f"{self._base_path}/{safe_filename_from_key(source_key)}"

    def build_public_url(self, path: str) -> str:
        """Prefer the CDN base; fall back to the storage endpoint URL."""

        if not path:
            return ""
        if self._cdn_base_url:
            return f"{self._cdn_base_url}/{path}"
        return self._object_url(path)

    async def put(
        self,
        path: str,
        stream: AsyncIterator[bytes],
        content_type: str,
        content_length: int | None = None,
    ) -> None:
        """Stream one object body to the storage endpoint."""

        self._require_configured()
        url = self._object_url(path)
        headers = {"AccessKey": self._api_key, "Content-Type": content_type or "video/mp4"}
        if content_length:
            headers["Content-Length"] = str(content_length)

        try:
            async with self._client(self._put_timeout_seconds) as http_client:
                response = await http_client.put(url, content=stream, headers=headers)
        except httpx.HTTPError as exc:
            raise StorageError(f"PUT {path} failed: {exc}") from exc

        if response.status_code == 401:
            raise StorageAuthorizationError(f"Storage rejected AccessKey (401) for {path}.")
        if response.status_code not in _PUT_SUCCESS_CODES:
            body = response.text[:_MAX_ERROR_BODY_CHARS]
            raise StorageError(
                f"Upload failed (status {response.status_code}) for {path}. Body={body}"
            )

    async def verify(self, path: str, expected_size: int = 0) -> VerifiedObject:
        """Range-read the first byte until the object is visible.

        404 is treated as eventual consistency and retried with backoff; 401 and any
        other unexpected status fail immediately.
        """

        self._require_configured()
        attempts = len(self._verify_backoff_seconds)
        async with self._client(self._verify_timeout_seconds) as http_client:
            for attempt, delay in enumerate(self._verify_backoff_seconds, start=1):
                response = await self._range_probe(http_client, path)
                status = response.status_code

                if status == 401:
                    raise StorageAuthorizationError(
                        f"Verify failed (401): storage rejected AccessKey for {path}."
                    )
                if status in _RANGE_SUCCESS_CODES:
                    total = _total_from_content_range(response.headers.get("content-range"))
                    if expected_size and total and total != expected_size:
                        raise ObjectSizeMismatchError(
                            f"Size mismatch (expected {expected_size}, got {total}) for {path}."
                        )
                    return VerifiedObject(path=path, size=total or expected_size or 0)
                if status != 404:
                    raise StorageError(f"Verify failed (status {status}) for {path}.")

                if attempt < attempts:
                    logger.debug(
                        "Object %s not visible yet (attempt %s/%s), retrying in %.2fs.",
                        path,
                        attempt,
                        attempts,
                        delay,
                    )
                    await asyncio.sleep(delay)

        raise ObjectNotVisibleError(f"Verify failed (not found after {attempts} attempts) for {path}.")

    async def check_connection(self) -> StoreHealth:
        """Probe a path that does not exist: 404 means the key was accepted."""

        try:
            self._require_configured()
        except StorageConfigurationError as exc:
            return StoreHealth(ok=False, detail=str(exc))

        tested_path = f"{self._base_path}/{HEALTHCHECK_FILENAME}"
        try:
            async with self._client(self._verify_timeout_seconds) as http_client:
                response = await self._range_probe(http_client, tested_path)
        except StorageError as exc:
            logger.warning("Destination store health check failed: %s", exc)
            return StoreHealth(ok=False, detail=str(exc), tested_path=tested_path)

        if response.status_code == 401:
            return StoreHealth(
                ok=False,
                detail="Storage rejected AccessKey (401). Wrong storage password/API key.",
                status_code=401,
                tested_path=tested_path,
            )
        return StoreHealth(
            ok=True,
            detail=f"zone '{self._zone}' on {self._host} accepted credentials",
            status_code=response.status_code,
            tested_path=tested_path,
        )

    async def _range_probe(self, http_client: httpx.AsyncClient, path: str) -> httpx.Response:
        url = self._object_url(path)
        try:
            return await http_client.get(
                url,
                headers={"AccessKey": self._api_key, "Range": "bytes=0-0"},
            )
        except httpx.HTTPError as exc:
            raise StorageError(f"GET {path} failed: {exc}") from exc

    def _client(self, timeout_seconds: float) -> httpx.AsyncClient:
        async_transport = cast(httpx.AsyncBaseTransport | None, self._transport)
        return httpx.AsyncClient(
            timeout=timeout_seconds,
            transport=async_transport,
            follow_redirects=False,
        )

    def _object_url(self, path: str) -> str:
        return f"{self.put_base_url}/{_encode_path(path)}"

    def _require_configured(self) -> None:
        if not self._host or not self._zone or not self._base_path or not self._api_key:
            raise StorageConfigurationError(
                "Destination store requires host, storage zone, base path and API key."
            )


def _encode_path(path: str) -> str:
    return "/".join(
        quote(segment, safe=_SEGMENT_SAFE_CHARS) for segment in path.split("/") if segment
    )


def _total_from_content_range(value: str | None) -> int:
    if not value or "/" not in value:
        return 0
    total = value.rsplit("/", 1)[-1].strip()
    try:
        return int(total)
    except ValueError:
        return 0


__all__ = [
    "DEFAULT_VERIFY_BACKOFF_SECONDS",
    "HEALTHCHECK_FILENAME",
    "HttpDestinationStore",
]
