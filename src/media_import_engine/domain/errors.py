"""Domain exceptions for import job and storage operations."""


class ImportJobError(Exception):
    """Base class for import job errors."""


class ImportJobNotFoundError(ImportJobError):
    """Raised when an import job cannot be found."""


class ImportJobConflictError(ImportJobError):
    """Raised when an operation conflicts with current job state."""


class ImportJobValidationError(ImportJobError):
    """Raised when request validation fails."""


class ImportScanError(ImportJobError):
    """Raised when listing the source store fails during a scan."""


class StorageError(Exception):
    """Base class for object-store adapter failures."""


class StorageConfigurationError(StorageError):
    """Raised when a storage adapter is used without required settings."""


class StorageAuthorizationError(StorageError):
    """Raised when a store rejects the configured credentials.

    Never retried: a rejected key will not start working on the next attempt.
    """


class ObjectNotVisibleError(StorageError):
    """Raised when a written object is still not readable after all retries."""


class ObjectSizeMismatchError(StorageError):
    """Raised when a stored object's size differs from the expected size."""


__all__ = [
    "ImportJobConflictError",
    "ImportJobError",
    "ImportJobNotFoundError",
    "ImportJobValidationError",
    "ImportScanError",
    "ObjectNotVisibleError",
    "ObjectSizeMismatchError",
    "StorageAuthorizationError",
    "StorageConfigurationError",
    "StorageError",
]
