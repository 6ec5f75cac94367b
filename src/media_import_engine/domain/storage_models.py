"""Value types exchanged with object-store adapters."""

from __future__ import annotations

import mimetypes
import re
from dataclasses import dataclass, field
from datetime import datetime

from media_import_engine.domain.import_types import TitleMode

_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.\-() ]+", re.ASCII)
_TITLE_SEPARATORS = re.compile(r"[_-]+")
_WHITESPACE = re.compile(r"\s+")
_FALLBACK_CONTENT_TYPE = "video/mp4"


@dataclass(slots=True, frozen=True)
class ObjectSummary:
    """One listed source object."""

    key: str
    size: int = 0
    etag: str | None = None
    last_modified: datetime | None = None


@dataclass(slots=True, frozen=True)
class ObjectListing:
    """One page of a source listing."""

    prefix: str
    objects: list[ObjectSummary] = field(default_factory=list)
    next_cursor: str | None = None


@dataclass(slots=True, frozen=True)
class ObjectHead:
    """Source object metadata returned by a head request."""

    content_length: int = 0
    content_type: str | None = None
    etag: str | None = None
    last_modified: datetime | None = None


@dataclass(slots=True, frozen=True)
class VerifiedObject:
    """Destination object confirmed readable after upload."""

    path: str
    size: int


@dataclass(slots=True, frozen=True)
class StoreHealth:
    """Result of a connectivity/credential probe against one store."""

    ok: bool
    detail: str
    status_code: int | None = None
    tested_path: str | None = None


def normalize_prefix(prefix: str | None) -> str:
    """Strip leading slashes and force a trailing slash on non-empty prefixes."""

    if not prefix:
        return ""
    normalized = prefix.strip().lstrip("/")
    if not normalized:
        return ""
    return normalized if normalized.endswith("/") else f"{normalized}/"


def safe_filename_from_key(key: str) -> str:
    """Return the last key segment with unsafe characters replaced."""

    filename = key.rsplit("/", 1)[-1] or key
    return _UNSAFE_FILENAME_CHARS.sub("_", filename)


def title_from_key(key: str, mode: TitleMode = TitleMode.FILENAME_NO_EXT) -> str:
    """Derive a catalog title from an object key."""

    filename = safe_filename_from_key(key)
    if mode is TitleMode.FILENAME:
        return filename

    dot = filename.rfind(".")
    stem = filename[:dot] if dot > 0 else filename
    return _WHITESPACE.sub(" ", _TITLE_SEPARATORS.sub(" ", stem)).strip()


def guess_content_type(key: str, declared: str | None = None) -> str:
    """Prefer the store-declared type, then the key extension."""

    if declared:
        return declared
    guessed, _ = mimetypes.guess_type(key)
    return guessed or _FALLBACK_CONTENT_TYPE


__all__ = [
    "ObjectHead",
    "ObjectListing",
    "ObjectSummary",
    "StoreHealth",
    "VerifiedObject",
    "guess_content_type",
    "normalize_prefix",
    "safe_filename_from_key",
    "title_from_key",
]
