"""Liveness route."""

from fastapi import APIRouter

from media_import_engine import __version__

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    """Process is up; storage reachability lives under /storage/health."""

    return {"status": "ok", "version": __version__}


__all__ = ["router"]
