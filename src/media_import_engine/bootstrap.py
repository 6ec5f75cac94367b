"""Application bootstrap/wiring."""

import logging

from media_import_engine.application.services import (
    ImportJobService,
    ImportRunner,
    Scanner,
    TotalsAggregator,
)
from media_import_engine.config import RepositoryBackend, Settings
from media_import_engine.infrastructure.repositories import (
    InMemoryImportJobRepository,
    PostgresImportJobRepository,
)
from media_import_engine.infrastructure.storage import HttpDestinationStore, S3SourceStore

logger = logging.getLogger(__name__)


def _build_repository(
    settings: Settings,
) -> InMemoryImportJobRepository | PostgresImportJobRepository:
    if settings.repository_backend == RepositoryBackend.POSTGRES:
        if settings.postgres_dsn is None:
            raise ValueError(
                "MIE_POSTGRES_DSN is required when MIE_REPOSITORY_BACKEND=postgres."
            )
        return PostgresImportJobRepository(
            dsn=settings.postgres_dsn,
            min_pool_size=settings.postgres_pool_min_size,
            max_pool_size=settings.postgres_pool_max_size,
        )
    return InMemoryImportJobRepository()


def _build_source_store(settings: Settings) -> S3SourceStore:
    if not settings.source_endpoint or not settings.source_bucket:
        logger.warning(
            "MIE_SOURCE_ENDPOINT/MIE_SOURCE_BUCKET are not set; scans and imports will fail "
            "until the source store is configured."
        )
    return S3SourceStore(
        endpoint=settings.source_endpoint,
        bucket=settings.source_bucket,
        region=settings.source_region,
        access_key_id=settings.source_access_key_id,
        secret_access_key=settings.source_secret_access_key,
        import_prefix=settings.source_import_prefix,
        read_chunk_size=settings.source_read_chunk_size,
    )


def _build_destination_store(settings: Settings) -> HttpDestinationStore:
    return HttpDestinationStore(
        host=settings.destination_host,
        storage_zone=settings.destination_storage_zone,
        base_path=settings.destination_base_path,
        api_key=settings.destination_api_key,
        cdn_base_url=settings.destination_cdn_base_url,
        put_timeout_seconds=settings.destination_put_timeout_seconds,
        verify_timeout_seconds=settings.destination_verify_timeout_seconds,
    )


def build_import_job_service(settings: Settings) -> ImportJobService:
    """Compose service graph."""

    repository = _build_repository(settings)
    source = _build_source_store(settings)
    destination = _build_destination_store(settings)
    aggregator = TotalsAggregator(
        repository,
        flush_interval_seconds=settings.totals_flush_interval_seconds,
    )

    return ImportJobService(
        worker_id=settings.worker_id,
        repository=repository,
        source=source,
        destination=destination,
        scanner=Scanner(repository, source),
        runner=ImportRunner(
            repository=repository,
            catalog=repository,
            source=source,
            destination=destination,
            aggregator=aggregator,
            batch_size=settings.runner_batch_size,
            bytes_total_item_limit=settings.runner_bytes_total_item_limit,
        ),
        aggregator=aggregator,
        recovery_enabled=settings.job_recovery_enabled,
        recovery_poll_seconds=settings.job_recovery_poll_seconds,
        recovery_batch_size=settings.job_recovery_batch_size,
        lease_seconds=settings.job_lease_seconds,
        heartbeat_seconds=settings.job_heartbeat_seconds,
        control_refresh_seconds=settings.control_refresh_seconds,
    )


__all__ = ["build_import_job_service"]
