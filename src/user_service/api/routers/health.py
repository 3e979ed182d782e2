"""
user_service.api.routers.health

Health endpoint.

Responsibilities:
- Report 200 when the database, Redis and the task queue all answer.
- Report 503 naming the first dependency that failed.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from user_service.api.container import Container
from user_service.api.deps import container_dep
from user_service.api.envelope import error_response, success_response
from user_service.db.session import ping
from user_service.observability.logging import get_logger

router = APIRouter()
log = get_logger(__name__)


@router.get("/health")
async def health(container: Container = Depends(container_dep)) -> JSONResponse:
    try:
        await ping(container.engine)
    except Exception as e:
        log.error("health_check_failed", dependency="database", error=str(e))
        return error_response(503, "Database connection failed", str(e))

    redis_client = container.cache if container.cache is not None else container.bus
    try:
        await redis_client.ping()
    except Exception as e:
        log.error("health_check_failed", dependency="redis", error=str(e))
        return error_response(503, "Redis connection failed", str(e))

    try:
        await container.enqueuer.ping()
    except Exception as e:
        log.error("health_check_failed", dependency="task_queue", error=str(e))
        return error_response(503, "Task queue connection failed", str(e))

    return success_response(
        200,
        "Service is healthy",
        {"status": "ok", "database": "connected", "redis": "connected", "queue": "connected"},
    )
