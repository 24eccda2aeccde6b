"""
Health check and monitoring endpoints.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from storefront.core.config import settings
from storefront.core.database import DbSession

router = APIRouter(tags=["health"])


@router.get("/")
async def root() -> dict:
    """API root endpoint."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "running",
    }


@router.get("/health")
async def health_check() -> dict:
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.app_version,
    }


@router.get("/health/ready")
async def readiness_check(request: Request, session: DbSession) -> dict:
    """
    Readiness probe - checks if the service can handle requests.

    Without a database the service still takes payments on in-memory
    storage, so it reports ready with ``storage: memory``.
    """
    if session is None:
        db_status = "unavailable"
        storage = "memory"
    else:
        storage = "database"
        try:
            await session.execute(text("SELECT 1"))
            db_status = "connected"
        except SQLAlchemyError as e:
            db_status = f"error: {e.__class__.__name__}"

    is_ready = db_status in ("connected", "unavailable")

    return {
        "status": "ready" if is_ready else "not_ready",
        "checks": {
            "database": db_status,
            "storage": storage,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/live")
async def liveness_check() -> dict:
    """
    Liveness probe - checks if the service is alive.
    Simple check that doesn't verify dependencies.
    """
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
