"""Import mode, status and settings enums."""

from enum import StrEnum

from media_import_engine.domain.errors import ImportJobValidationError


class ImportMode(StrEnum):
    """How discovered objects reach the catalog."""

    REMOTE = "remote"
    COPY = "copy"


class JobStatus(StrEnum):
    """Import job lifecycle states."""

    QUEUED = "queued"
    SCANNING = "scanning"
    READY = "ready"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


class ItemStatus(StrEnum):
    """Per-object states inside one job."""

    QUEUED = "queued"
    VALIDATING = "validating"
    COPYING = "copying"
    IMPORTING = "importing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    RETRYING = "retrying"


class AccessMode(StrEnum):
    """URL policy for remote-mode catalog entries."""

    AUTO = "auto"
    PUBLIC = "public"
    SIGNED = "signed"


class TitleMode(StrEnum):
    """How catalog titles are derived from object keys."""

    FILENAME_NO_EXT = "filename_no_ext"
    FILENAME = "filename"


class Visibility(StrEnum):
    """Catalog visibility assigned to imported videos."""

    PRIVATE = "private"
    PUBLIC = "public"
    UNLISTED = "unlisted"


SOURCE_PROVIDER = "s3"
DESTINATION_PROVIDER = "http_storage"

TERMINAL_JOB_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELED}
)
STARTABLE_JOB_STATUSES = frozenset(
    {JobStatus.QUEUED, JobStatus.READY, JobStatus.PAUSED, JobStatus.FAILED}
)
SCANNABLE_JOB_STATUSES = frozenset(
    {JobStatus.QUEUED, JobStatus.READY, JobStatus.PAUSED, JobStatus.FAILED}
)

PENDING_ITEM_STATUSES = frozenset({ItemStatus.QUEUED, ItemStatus.RETRYING})
IN_PROGRESS_ITEM_STATUSES = frozenset(
    {ItemStatus.VALIDATING, ItemStatus.COPYING, ItemStatus.IMPORTING}
)
TERMINAL_ITEM_STATUSES = frozenset(
    {ItemStatus.COMPLETED, ItemStatus.FAILED, ItemStatus.SKIPPED}
)


def destination_provider_for(mode: ImportMode) -> str | None:
    """Return the destination provider name used by a mode, if any."""

    if mode is ImportMode.COPY:
        return DESTINATION_PROVIDER
    return None


def parse_item_status(value: str) -> ItemStatus:
    """Parse an item status filter supplied by an operator."""

    normalized = value.strip().lower()
    try:
        return ItemStatus(normalized)
    except ValueError as exc:
        allowed = ", ".join(status.value for status in ItemStatus)
        raise ImportJobValidationError(
            f"Unknown item status '{value}', expected one of: {allowed}."
        ) from exc


__all__ = [
    "AccessMode",
    "DESTINATION_PROVIDER",
    "IN_PROGRESS_ITEM_STATUSES",
    "ImportMode",
    "ItemStatus",
    "JobStatus",
    "PENDING_ITEM_STATUSES",
    "SCANNABLE_JOB_STATUSES",
    "SOURCE_PROVIDER",
    "STARTABLE_JOB_STATUSES",
    "TERMINAL_ITEM_STATUSES",
    "TERMINAL_JOB_STATUSES",
    "TitleMode",
    "Visibility",
    "destination_provider_for",
    "parse_item_status",
]
