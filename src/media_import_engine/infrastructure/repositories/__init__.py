"""Repository implementations."""

from media_import_engine.infrastructure.repositories.in_memory_import_job_repository import (
    InMemoryImportJobRepository,
)
from media_import_engine.infrastructure.repositories.postgres_import_job_repository import (
    PostgresImportJobRepository,
)

__all__ = ["InMemoryImportJobRepository", "PostgresImportJobRepository"]
