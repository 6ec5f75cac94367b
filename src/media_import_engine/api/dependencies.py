"""Dependency providers for FastAPI routes."""

from functools import lru_cache

from media_import_engine.application.services import ImportJobService
from media_import_engine.bootstrap import build_import_job_service
from media_import_engine.config import Settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return singleton settings."""

    return Settings()


@lru_cache(maxsize=1)
def get_import_job_service() -> ImportJobService:
    """Return singleton service graph."""

    return build_import_job_service(get_settings())


__all__ = ["get_import_job_service", "get_settings"]
