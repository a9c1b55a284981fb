"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from clinic_scheduler.config import settings
from clinic_scheduler.core.redis_client import check_redis_connection
from clinic_scheduler.database import check_database_connection

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    """Health of the scheduler and the stores it depends on."""

    database: str
    slot_cache: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Detailed health check",
)
async def detailed_health_check() -> DetailedHealthResponse:
    """
    Check the database and the slot cache.

    Bookings need the database; a cache outage only slows slot listings, so
    it degrades the status instead of failing it.
    """
    db_healthy = await check_database_connection()

    if settings.cache_enabled:
        slot_cache = "healthy" if await check_redis_connection() else "unhealthy"
    else:
        slot_cache = "disabled"

    if not db_healthy:
        overall = "unhealthy"
    elif slot_cache == "unhealthy":
        overall = "degraded"
    else:
        overall = "healthy"

    return DetailedHealthResponse(
        status=overall,
        version=settings.app_version,
        environment=settings.environment,
        database="healthy" if db_healthy else "unhealthy",
        slot_cache=slot_cache,
    )


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Simple ping",
)
async def ping() -> dict[str, str]:
    return {"message": "pong"}
