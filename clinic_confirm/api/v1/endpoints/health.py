"""Health check endpoints."""

from fastapi import APIRouter, Request, status
from pydantic import BaseModel

from clinic_confirm.config import settings
from clinic_confirm.core.redis_client import check_redis_connection
from clinic_confirm.database import check_database_connection

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(BaseModel):
    """Detailed health check response model."""

    status: str
    version: str
    environment: str
    database: str
    redis: str
    scheduler: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    """Basic health status."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Detailed health check",
)
async def detailed_health_check(request: Request) -> DetailedHealthResponse:
    """
    Health of the database and Redis, plus whether the job scheduler runs.

    Redis only backs link rate limiting, which fails open, so an unhealthy
    Redis reports the service as degraded rather than down.
    """
    db_healthy = await check_database_connection()
    redis_healthy = await check_redis_connection()
    orchestrator = getattr(request.app.state, "orchestrator", None)

    return DetailedHealthResponse(
        status="healthy" if db_healthy and redis_healthy else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        database="healthy" if db_healthy else "unhealthy",
        redis="healthy" if redis_healthy else "unhealthy",
        scheduler="running" if orchestrator is not None else "disabled",
    )


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    summary="Simple ping",
)
async def ping() -> dict[str, str]:
    """Pong."""
    return {"message": "pong"}
