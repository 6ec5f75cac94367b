"""Application settings."""

from enum import StrEnum

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RepositoryBackend(StrEnum):
    """Available persistence adapters for import job state."""

    IN_MEMORY = "in_memory"
    POSTGRES = "postgres"


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "Media Import Engine"
    api_prefix: str = ""
    worker_id: str = "import-worker-local"
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    source_endpoint: str | None = None
    source_bucket: str | None = None
    source_region: str = "us-east-1"
    source_access_key_id: str | None = None
    source_secret_access_key: str | None = None
    source_import_prefix: str = ""
    source_read_chunk_size: int = 1024 * 1024

    destination_host: str | None = None
    destination_storage_zone: str | None = None
    destination_base_path: str | None = None
    destination_api_key: str | None = None
    destination_cdn_base_url: str | None = None
    destination_put_timeout_seconds: float = 2 * 60 * 60
    destination_verify_timeout_seconds: float = 15.0

    runner_batch_size: int = 3
    runner_bytes_total_item_limit: int = 500
    totals_flush_interval_seconds: float = 1.0
    control_refresh_seconds: float = 2.0
    job_recovery_enabled: bool = True
    job_recovery_poll_seconds: float = 5.0
    job_recovery_batch_size: int = 5
    job_lease_seconds: float = 60.0
    job_heartbeat_seconds: float = 15.0

    repository_backend: RepositoryBackend = RepositoryBackend.IN_MEMORY
    postgres_dsn: str | None = None
    postgres_pool_min_size: int = 1
    postgres_pool_max_size: int = 10

    @field_validator("source_endpoint", "destination_cdn_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip().rstrip("/")
            return stripped or None
        return value

    @model_validator(mode="after")
    def validate_runtime_settings(self) -> "Settings":
        """Ensure backend-specific and runner settings are valid."""

        if self.repository_backend == RepositoryBackend.POSTGRES and not self.postgres_dsn:
            raise ValueError(
                "MIE_POSTGRES_DSN is required when MIE_REPOSITORY_BACKEND=postgres."
            )
        if self.postgres_pool_min_size < 1:
            raise ValueError("MIE_POSTGRES_POOL_MIN_SIZE must be >= 1.")
        if self.postgres_pool_max_size < self.postgres_pool_min_size:
            raise ValueError(
                "MIE_POSTGRES_POOL_MAX_SIZE must be >= MIE_POSTGRES_POOL_MIN_SIZE."
            )
        if self.source_read_chunk_size < 1:
            raise ValueError("MIE_SOURCE_READ_CHUNK_SIZE must be >= 1.")
        if self.destination_put_timeout_seconds <= 0:
            raise ValueError("MIE_DESTINATION_PUT_TIMEOUT_SECONDS must be > 0.")
        if self.destination_verify_timeout_seconds <= 0:
            raise ValueError("MIE_DESTINATION_VERIFY_TIMEOUT_SECONDS must be > 0.")
        if self.runner_batch_size < 1:
            raise ValueError("MIE_RUNNER_BATCH_SIZE must be >= 1.")
        if self.runner_bytes_total_item_limit < 0:
            raise ValueError("MIE_RUNNER_BYTES_TOTAL_ITEM_LIMIT must be >= 0.")
        if self.totals_flush_interval_seconds <= 0:
            raise ValueError("MIE_TOTALS_FLUSH_INTERVAL_SECONDS must be > 0.")
        if self.control_refresh_seconds <= 0:
            raise ValueError("MIE_CONTROL_REFRESH_SECONDS must be > 0.")
        if self.job_recovery_poll_seconds <= 0:
            raise ValueError("MIE_JOB_RECOVERY_POLL_SECONDS must be > 0.")
        if self.job_recovery_batch_size < 1:
            raise ValueError("MIE_JOB_RECOVERY_BATCH_SIZE must be >= 1.")
        if self.job_lease_seconds <= 0:
            raise ValueError("MIE_JOB_LEASE_SECONDS must be > 0.")
        if self.job_heartbeat_seconds <= 0:
            raise ValueError("MIE_JOB_HEARTBEAT_SECONDS must be > 0.")
        if self.job_heartbeat_seconds > self.job_lease_seconds:
            raise ValueError("MIE_JOB_HEARTBEAT_SECONDS must be <= MIE_JOB_LEASE_SECONDS.")
        return self

    model_config = SettingsConfigDict(env_prefix="MIE_", extra="ignore")


__all__ = ["RepositoryBackend", "Settings"]
