"""Domain public API."""

from media_import_engine.domain.entities import (
    CatalogEntry,
    CatalogInsertResult,
    ImportJob,
    ImportJobItem,
    ItemStatusCounts,
    JobTotals,
)
from media_import_engine.domain.errors import (
    ImportJobConflictError,
    ImportJobError,
    ImportJobNotFoundError,
    ImportJobValidationError,
    ImportScanError,
    ObjectNotVisibleError,
    ObjectSizeMismatchError,
    StorageAuthorizationError,
    StorageConfigurationError,
    StorageError,
)
from media_import_engine.domain.import_types import (
    AccessMode,
    ImportMode,
    ItemStatus,
    JobStatus,
    TitleMode,
    Visibility,
)
from media_import_engine.domain.job_settings import JobSettings
from media_import_engine.domain.ports import (
    CatalogWriter,
    DestinationStore,
    ImportJobRepository,
    SourceStore,
)
from media_import_engine.domain.storage_models import (
    ObjectHead,
    ObjectListing,
    ObjectSummary,
    StoreHealth,
    VerifiedObject,
)

__all__ = [
    "AccessMode",
    "CatalogEntry",
    "CatalogInsertResult",
    "CatalogWriter",
    "DestinationStore",
    "ImportJob",
    "ImportJobConflictError",
    "ImportJobError",
    "ImportJobItem",
    "ImportJobNotFoundError",
    "ImportJobRepository",
    "ImportJobValidationError",
    "ImportMode",
    "ImportScanError",
    "ItemStatus",
    "ItemStatusCounts",
    "JobSettings",
    "JobStatus",
    "JobTotals",
    "ObjectHead",
    "ObjectListing",
    "ObjectNotVisibleError",
    "ObjectSizeMismatchError",
    "ObjectSummary",
    "SourceStore",
    "StorageAuthorizationError",
    "StorageConfigurationError",
    "StorageError",
    "StoreHealth",
    "TitleMode",
    "VerifiedObject",
    "Visibility",
]
