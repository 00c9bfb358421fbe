"""Health check endpoints."""

from fastapi import APIRouter, Request, status
from pydantic import BaseModel

from app.config import settings
from app.core.exceptions import InfraError
from app.core.redis_client import check_redis_connection
from app.database import check_database_connection

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    ok: bool
    status: str


class DetailedHealthResponse(BaseModel):
    """Detailed health check response model."""

    ok: bool
    status: str
    version: str
    environment: str
    database: str
    redis: str
    worker: str
    queue: dict[str, int] | None = None


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Liveness check",
)
async def health_check() -> HealthResponse:
    """
    Liveness only; does not touch any dependency.

    Returns:
        Basic health status
    """
    return HealthResponse(ok=True, status="up")


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Detailed health check",
)
async def detailed_health_check(request: Request) -> DetailedHealthResponse:
    """
    Detailed health check with database, Redis and queue status.

    Returns:
        Detailed health status including dependencies
    """
    db_healthy = await check_database_connection()
    redis_healthy = await check_redis_connection()

    queue_stats = None
    queue = getattr(request.app.state, "push_queue", None)
    if queue is not None and redis_healthy:
        try:
            queue_stats = await queue.stats()
        except InfraError:
            queue_stats = None

    runtime = getattr(request.app.state, "push_runtime", None)
    if runtime is None:
        worker_state = "absent"
    else:
        worker_state = "running" if runtime.worker.running else "stopped"

    healthy = db_healthy and redis_healthy
    return DetailedHealthResponse(
        ok=healthy,
        status="up" if healthy else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        database="healthy" if db_healthy else "unhealthy",
        redis="healthy" if redis_healthy else "unhealthy",
        worker=worker_state,
        queue=queue_stats,
    )
