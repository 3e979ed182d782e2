from __future__ import annotations

import pytest

from user_service.errors import FilterValidationError, SortValidationError
from user_service.pagination import (
    MAX_INT64,
    Pagination,
    SortParam,
    calculate_page_meta,
    parse_filters,
    parse_pagination,
    parse_sorts,
)

ALLOWED = {"id": "id", "name": "name", "created": "created_at"}
DEFAULT = [SortParam(field="created_at", direction="desc")]


@pytest.mark.parametrize(
    ("page", "limit", "expected"),
    [
        (None, None, Pagination(page=1, limit=10)),
        ("2", "25", Pagination(page=2, limit=25)),
        ("0", "0", Pagination(page=1, limit=10)),
        ("-3", "500", Pagination(page=1, limit=100)),
        ("abc", "xyz", Pagination(page=1, limit=10)),
        ("99999999999999999999", "99999999999999999999", Pagination(page=1, limit=10)),
    ],
)
def test_parse_pagination_clamps(page, limit, expected) -> None:
    assert parse_pagination(page, limit) == expected


def test_offset() -> None:
    assert Pagination(page=3, limit=10).offset == 20


def test_page_is_capped_so_offset_fits_64_bits() -> None:
    p = parse_pagination(str(MAX_INT64), "10")
    assert p.offset <= MAX_INT64
    assert p.page == MAX_INT64 // 10 + 1


def test_parse_sorts_maps_and_dedupes() -> None:
    sorts = parse_sorts("name:DESC,created,name:asc", allowed=ALLOWED, default=DEFAULT)
    assert sorts == [SortParam("name", "desc"), SortParam("created_at", "asc")]


def test_parse_sorts_default_when_empty() -> None:
    assert parse_sorts(None, allowed=ALLOWED, default=DEFAULT) == DEFAULT
    assert parse_sorts("", allowed=ALLOWED, default=DEFAULT) == DEFAULT


def test_parse_sorts_reports_every_offender() -> None:
    with pytest.raises(SortValidationError) as ei:
        parse_sorts("bogus:asc,name:up,password", allowed=ALLOWED, default=DEFAULT)
    assert ei.value.invalid_fields == ["bogus", "password"]
    assert ei.value.invalid_directions == ["up"]
    assert "bogus" in ei.value.message


def test_parse_filters() -> None:
    params = [("name", "ann"), ("page", "2"), ("sort", "id"), ("email", "")]
    assert parse_filters(params, allowed=["name", "email"]) == {"name": "ann"}

    with pytest.raises(FilterValidationError) as ei:
        parse_filters({"name": "a", "role": "admin"}, allowed=["name", "email"])
    assert ei.value.invalid_params == ["role"]


@pytest.mark.parametrize(("total", "pages"), [(0, 0), (20, 2), (25, 3), (1, 1)])
def test_total_pages_is_ceiling(total: int, pages: int) -> None:
    meta = calculate_page_meta(Pagination(page=1, limit=10), total)
    assert meta.total_pages == pages
    assert meta.total_rows == total
