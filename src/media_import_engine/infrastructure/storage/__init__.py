"""Object store adapters."""

from media_import_engine.infrastructure.storage.http_destination_store import (
    HttpDestinationStore,
)
from media_import_engine.infrastructure.storage.s3_source_store import S3SourceStore

__all__ = ["HttpDestinationStore", "S3SourceStore"]
