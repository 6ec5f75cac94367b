"""Async byte stream wrapper that reports progress per chunk."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable


class ByteCountingStream:
    """Pass chunks through unchanged while reporting each chunk's length."""

    def __init__(
        self,
        source: AsyncIterator[bytes],
        on_chunk: Callable[[int], None] | None = None,
    ) -> None:
        self._source = source
        self._on_chunk = on_chunk
        self.bytes_read = 0

    def __aiter__(self) -> ByteCountingStream:
        return self

    async def __anext__(self) -> bytes:
        chunk = await self._source.__anext__()
        size = len(chunk)
        if size:
            self.bytes_read += size
            if self._on_chunk is not None:
                self._on_chunk(size)
        return chunk

    async def aclose(self) -> None:
        close = getattr(self._source, "aclose", None)
        if close is not None:
            await close()


__all__ = ["ByteCountingStream"]
