"""Infrastructure layer public API."""

from media_import_engine.infrastructure.repositories import (
    InMemoryImportJobRepository,
    PostgresImportJobRepository,
)
from media_import_engine.infrastructure.storage import HttpDestinationStore, S3SourceStore

__all__ = [
    "HttpDestinationStore",
    "InMemoryImportJobRepository",
    "PostgresImportJobRepository",
    "S3SourceStore",
]
