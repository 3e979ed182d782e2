"""
user_service.pagination

Pagination, filter and sort parameters for list endpoints.

Responsibilities:
- Coerce page/limit into a bounded window (out-of-range values are clamped, never rejected).
- Validate `sort=field:direction,...` against an allow-list (unknowns are rejected).
- Validate query parameter names against a filter allow-list.
- Compute pagination metadata for the response envelope.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Literal

from user_service.errors import FilterValidationError, SortValidationError

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100

# Integer columns and OFFSET are signed 64-bit in every supported store.
MAX_INT64 = 2**63 - 1
MIN_INT64 = -(2**63)

# Query parameters every list endpoint understands besides its filters.
RESERVED_QUERY_PARAMS = frozenset({"page", "limit", "sort"})

Direction = Literal["asc", "desc"]


@dataclass(frozen=True, slots=True)
class Pagination:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True, slots=True)
class SortParam:
    # `field` is the storage column, already mapped from the user-facing key.
    field: str
    direction: Direction = "asc"


@dataclass(frozen=True, slots=True)
class PageMeta:
    page: int
    limit: int
    total_rows: int
    total_pages: int


def _to_int(raw: str | int | None, default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    if not MIN_INT64 <= value <= MAX_INT64:
        return default
    return value


def parse_pagination(
    page: str | int | None,
    limit: str | int | None,
    *,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> Pagination:
    p = _to_int(page, DEFAULT_PAGE)
    n = _to_int(limit, default_limit)
    if p < 1:
        p = DEFAULT_PAGE
    if n < 1:
        n = default_limit
    if n > max_limit:
        n = max_limit
    # (page - 1) * limit must stay a valid OFFSET.
    max_page = MAX_INT64 // n + 1
    if p > max_page:
        p = max_page
    return Pagination(page=p, limit=n)


def parse_sorts(
    raw: str | None,
    *,
    allowed: Mapping[str, str],
    default: list[SortParam],
) -> list[SortParam]:
    """
    Parse `name:desc,id` into sort params.

    - direction defaults to `asc` and is case-insensitive
    - repeated fields keep their first occurrence
    - any unknown field or direction raises `SortValidationError` naming all offenders
    """

    if not raw:
        return list(default)

    sorts: list[SortParam] = []
    invalid_fields: list[str] = []
    invalid_directions: list[str] = []
    seen: set[str] = set()

    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        key, _, dir_raw = part.partition(":")
        column = allowed.get(key)
        if column is None:
            invalid_fields.append(key)
            continue
        if key in seen:
            continue
        seen.add(key)

        direction = "asc"
        if dir_raw:
            direction = dir_raw.lower()
            if direction not in ("asc", "desc"):
                invalid_directions.append(dir_raw)
                continue
        sorts.append(SortParam(field=column, direction=direction))  # type: ignore[arg-type]

    if invalid_fields or invalid_directions:
        raise SortValidationError(
            invalid_fields=invalid_fields, invalid_directions=invalid_directions
        )
    return sorts or list(default)


def parse_filters(
    params: Mapping[str, str] | Iterable[tuple[str, str]],
    *,
    allowed: Iterable[str],
) -> dict[str, str]:
    allowed_set = frozenset(allowed)
    items = list(params.items()) if isinstance(params, Mapping) else list(params)

    invalid = sorted(
        {k for k, _ in items if k not in allowed_set and k not in RESERVED_QUERY_PARAMS}
    )
    if invalid:
        raise FilterValidationError(invalid_params=invalid)

    filters: dict[str, str] = {}
    for key, value in items:
        if key in allowed_set and value != "" and key not in filters:
            filters[key] = value
    return filters


def calculate_page_meta(pagination: Pagination, total_rows: int) -> PageMeta:
    limit = pagination.limit if pagination.limit > 0 else DEFAULT_LIMIT
    total_pages = -(-total_rows // limit) if total_rows > 0 else 0
    return PageMeta(
        page=max(pagination.page, 1),
        limit=limit,
        total_rows=total_rows,
        total_pages=total_pages,
    )
