"""
user_service.api.app

FastAPI app factory for the user service.

Responsibilities:
- Build the FastAPI application and register routers/middleware.
- Initialize and dispose shared infrastructure through the container in the app lifespan.
- Map domain errors, validation errors and unmatched routes onto the envelope.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from user_service import __version__
from user_service.api.container import Container, build_container
from user_service.api.envelope import error_response
from user_service.api.routers.health import router as health_router
from user_service.api.routers.users import router as users_router
from user_service.db.init_db import init_db
from user_service.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from user_service.observability.logging import configure_logging, get_logger
from user_service.observability.middleware import RequestContextMiddleware
from user_service.settings import Settings

log = get_logger(__name__)

# Checked in order; the first matching class decides status and message.
_ERROR_STATUS: list[tuple[type[ServiceError], int, str]] = [
    (ValidationError, 400, "Invalid request"),
    (NotFoundError, 404, "Resource not found"),
    (ConflictError, 409, "Resource already exists"),
    (InternalError, 500, "Internal server error"),
]


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())[1:])
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def create_app(*, settings: Settings, container: Container | None = None) -> FastAPI:
    # Configure structured logging once at process startup (before app serves requests).
    configure_logging(service_name=settings.service_name, level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("startup", env=settings.env)
        # Infrastructure is built once and stashed on app.state; routers reach it
        # via dependencies (see `user_service.api.deps`).
        app.state.container = container or await build_container(settings)
        try:
            if settings.env in ("dev", "test"):
                # Dev/test only; prod schemas come from Alembic migrations.
                await init_db(app.state.container.engine)
            yield
        finally:
            await app.state.container.close()
            log.info("shutdown")

    app = FastAPI(
        title="User Service",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(RequestContextMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(users_router)

    @app.exception_handler(ServiceError)
    async def _service_error(request: Request, exc: ServiceError) -> JSONResponse:
        for cls, status, message in _ERROR_STATUS:
            if isinstance(exc, cls):
                break
        else:
            status, message = 500, "Internal server error"
        if status >= 500:
            log.error("request_failed", error=exc.message, error_type=type(exc).__name__)
            return error_response(status, message, "internal error")
        return error_response(status, message, exc.message)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return error_response(400, "Invalid request body", _format_validation_errors(exc))

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return error_response(404, "you are lost")
        return error_response(exc.status_code, str(exc.detail), headers=exc.headers)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        log.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        return error_response(500, "Internal server error", "internal error")

    return app


# --- Module Notes -----------------------------------------------------------
# App composition stays here; business logic stays in services, persistence in
# repositories.
