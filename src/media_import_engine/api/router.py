"""Top-level API router composition."""

from fastapi import APIRouter

from media_import_engine.api.routes import health_router, import_jobs_router, storage_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(import_jobs_router)
api_router.include_router(storage_router)

__all__ = ["api_router"]
