"""
user_service.api.routers.users

Public CRUD endpoints for users.

Responsibilities:
- Validate request bodies and path/query parameters.
- Delegate to `UserService` and render the response envelope.
- Serve GET-by-id through the response cache (`X-Cache: HIT|MISS`).
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from user_service.api.deps import cache_dep, user_service_dep
from user_service.api.envelope import paginated_response, success_response
from user_service.cache import ResponseCache, cache_key
from user_service.errors import ValidationError
from user_service.observability.logging import get_logger
from user_service.pagination import (
    MAX_INT64,
    MIN_INT64,
    SortParam,
    calculate_page_meta,
    parse_filters,
    parse_pagination,
    parse_sorts,
)
from user_service.services.user_service import UserService

router = APIRouter(prefix="/api/v1/users", tags=["users"])
log = get_logger(__name__)

ALLOWED_FILTERS = ("name", "email")
# Public sort key -> storage column.
ALLOWED_SORTS = {
    "id": "id",
    "email": "email",
    "name": "name",
    "created_at": "created_at",
    "updated_at": "updated_at",
}
DEFAULT_SORTS = [SortParam(field="created_at", direction="desc")]


class CreateUserRequest(BaseModel):
    email: EmailStr
    name: str = Field(min_length=3, max_length=100)
    password: str = Field(min_length=6)


class UpdateUserRequest(BaseModel):
    email: EmailStr | None = None
    name: str | None = Field(default=None, min_length=3, max_length=100)

    @field_validator("email", "name", mode="before")
    @classmethod
    def _blank_is_absent(cls, v: object) -> object:
        # An empty string means "leave unchanged", same as omitting the field.
        return None if v == "" else v


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    created_at: datetime
    updated_at: datetime


def _parse_user_id(raw: str) -> int:
    try:
        uid = int(raw)
    except ValueError:
        raise ValidationError("Invalid user ID") from None
    if not MIN_INT64 <= uid <= MAX_INT64:
        raise ValidationError("Invalid user ID")
    return uid


def _public(user: object) -> dict:
    return UserResponse.model_validate(user).model_dump(mode="json")


@router.post("", status_code=201)
async def create_user(
    body: CreateUserRequest,
    service: UserService = Depends(user_service_dep),
) -> JSONResponse:
    user = await service.create_user(email=body.email, name=body.name, password=body.password)
    return success_response(201, "User created successfully", _public(user))


@router.get("")
async def list_users(
    request: Request,
    service: UserService = Depends(user_service_dep),
) -> JSONResponse:
    params = request.query_params
    pagination = parse_pagination(params.get("page"), params.get("limit"))
    sorts = parse_sorts(params.get("sort"), allowed=ALLOWED_SORTS, default=DEFAULT_SORTS)
    filters = parse_filters(params.multi_items(), allowed=ALLOWED_FILTERS)

    users, total = await service.list_users(pagination=pagination, filters=filters, sorts=sorts)
    return paginated_response([_public(u) for u in users], calculate_page_meta(pagination, total))


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    request: Request,
    service: UserService = Depends(user_service_dep),
    cache: ResponseCache | None = Depends(cache_dep),
) -> Response:
    uid = _parse_user_id(user_id)
    if cache is None:
        user = await service.get_user(uid)
        return success_response(200, "User retrieved successfully", _public(user))

    key = cache_key("GET", request.url.path, request.url.query)
    try:
        cached = await cache.get(key)
    except Exception as e:
        log.error("cache_read_failed", key=key, error=str(e))
        cached = None
    if cached is not None:
        return Response(
            content=cached, media_type="application/json", headers={"X-Cache": "HIT"}
        )

    user = await service.get_user(uid)
    response = success_response(200, "User retrieved successfully", _public(user))
    try:
        await cache.set(key, bytes(response.body))
    except Exception as e:
        log.error("cache_write_failed", key=key, error=str(e))
    response.headers["X-Cache"] = "MISS"
    return response


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    body: UpdateUserRequest,
    service: UserService = Depends(user_service_dep),
) -> JSONResponse:
    uid = _parse_user_id(user_id)
    user = await service.update_user(uid, email=body.email, name=body.name)
    return success_response(200, "User updated successfully", _public(user))


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    service: UserService = Depends(user_service_dep),
) -> JSONResponse:
    await service.delete_user(_parse_user_id(user_id))
    return success_response(200, "User deleted successfully")


# --- Module Notes -----------------------------------------------------------
# Only successful (200) GET-by-id bodies are cached; 404s always reach the store.
