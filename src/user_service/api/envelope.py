"""
user_service.api.envelope

Uniform JSON response envelope.

Responsibilities:
- Render `{success, message?, data?, error?}` bodies (absent keys are omitted).
- Render paginated bodies with `pagination: {page, limit, total_rows, total_pages}`.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from user_service.pagination import PageMeta


def envelope(
    *,
    success: bool,
    message: str | None = None,
    data: Any = None,
    error: str | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {"success": success}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = jsonable_encoder(data)
    if error:
        body["error"] = error
    return body


def success_response(status_code: int, message: str, data: Any = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content=envelope(success=True, message=message, data=data)
    )


def error_response(
    status_code: int,
    message: str,
    error: str | None = None,
    *,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=envelope(success=False, message=message, error=error),
        headers=headers,
    )


def paginated_response(data: list[Any], meta: PageMeta, message: str | None = None) -> JSONResponse:
    body = envelope(success=True, message=message)
    # An empty page is still a list, never omitted.
    body["data"] = jsonable_encoder(data)
    body["pagination"] = asdict(meta)
    return JSONResponse(status_code=200, content=body)
