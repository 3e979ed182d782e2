"""
user_service.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Provide dependency functions for the container, the user service and the cache.
- Encapsulate app.state access patterns.
"""

from __future__ import annotations

from fastapi import Depends, Request

from user_service.api.container import Container
from user_service.cache import ResponseCache
from user_service.services.user_service import UserService


def container_dep(request: Request) -> Container:
    # The container is created on app startup in `user_service.api.app.create_app`.
    return request.app.state.container  # type: ignore[attr-defined]


def user_service_dep(container: Container = Depends(container_dep)) -> UserService:
    return container.service


def cache_dep(container: Container = Depends(container_dep)) -> ResponseCache | None:
    return container.cache
