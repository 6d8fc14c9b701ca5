"""Health check endpoints."""

from fastapi import APIRouter, Request

from edutrack.config import get_settings
from edutrack.core.database import AsyncCassandraConnection
from edutrack.core.redis import get_redis


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe - reports which backing services are wired up."""
    settings = get_settings()
    progress_ready = bool(getattr(request.app.state, "progress_service", None))
    return {
        "status": "ready" if progress_ready else "degraded",
        "environment": settings.environment,
        "progress_service": progress_ready,
        "cassandra": AsyncCassandraConnection.is_connected(),
        "redis": get_redis() is not None,
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
