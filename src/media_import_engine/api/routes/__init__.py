"""Route modules public API."""

from media_import_engine.api.routes.health import router as health_router
from media_import_engine.api.routes.import_jobs import router as import_jobs_router
from media_import_engine.api.routes.storage import router as storage_router

__all__ = ["health_router", "import_jobs_router", "storage_router"]
