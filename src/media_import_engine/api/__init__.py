"""HTTP API layer."""

from media_import_engine.api.router import api_router

__all__ = ["api_router"]
