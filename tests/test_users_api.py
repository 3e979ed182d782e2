from __future__ import annotations

import httpx
import pytest

USERS = "/api/v1/users"


async def _create(client: httpx.AsyncClient, n: int | str, **overrides: str) -> dict:
    payload = {"email": f"user{n}@example.com", "name": f"user{n}", "password": "secret1"}
    payload.update(overrides)
    r = await client.post(USERS, json=payload)
    assert r.status_code == 201, r.text
    return r.json()["data"]


@pytest.mark.asyncio
async def test_create_returns_public_user(client: httpx.AsyncClient) -> None:
    r = await client.post(
        USERS, json={"email": "alice@example.com", "name": "alice", "password": "secret1"}
    )
    assert r.status_code == 201
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "User created successfully"
    assert set(body["data"]) == {"id", "email", "name", "created_at", "updated_at"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"email": "not-an-email", "name": "alice", "password": "secret1"},
        {"email": "a@example.com", "name": "al", "password": "secret1"},
        {"email": "a@example.com", "name": "alice", "password": "123"},
        {"email": "a@example.com", "name": "alice"},
    ],
)
async def test_create_validation_errors(client: httpx.AsyncClient, payload: dict) -> None:
    r = await client.post(USERS, json=payload)
    assert r.status_code == 400
    assert r.json()["success"] is False


@pytest.mark.asyncio
async def test_duplicate_email_is_409(client: httpx.AsyncClient) -> None:
    await _create(client, 1)
    r = await client.post(
        USERS, json={"email": "user1@example.com", "name": "someone", "password": "secret1"}
    )
    # Conflicts get their own status instead of the generic 500 path.
    assert r.status_code == 409
    assert r.json()["error"] == "email already exists"


@pytest.mark.asyncio
async def test_get_by_id_is_cached(client: httpx.AsyncClient) -> None:
    user = await _create(client, 1)

    first = await client.get(f"{USERS}/{user['id']}")
    assert first.status_code == 200
    assert first.headers["X-Cache"] == "MISS"

    second = await client.get(f"{USERS}/{user['id']}")
    assert second.status_code == 200
    assert second.headers["X-Cache"] == "HIT"
    assert second.json() == first.json()


@pytest.mark.asyncio
async def test_update_invalidates_cached_read(client: httpx.AsyncClient) -> None:
    user = await _create(client, 1)
    await client.get(f"{USERS}/{user['id']}")

    r = await client.put(f"{USERS}/{user['id']}", json={"name": "renamed"})
    assert r.status_code == 200
    assert r.json()["data"]["name"] == "renamed"

    after = await client.get(f"{USERS}/{user['id']}")
    assert after.headers["X-Cache"] == "MISS"
    assert after.json()["data"]["name"] == "renamed"


@pytest.mark.asyncio
async def test_update_errors(client: httpx.AsyncClient) -> None:
    await _create(client, 1)
    other = await _create(client, 2)

    r = await client.put(f"{USERS}/{other['id']}", json={"email": "user1@example.com"})
    assert r.status_code == 409

    r = await client.put(f"{USERS}/999", json={"name": "ghosty"})
    assert r.status_code == 404

    r = await client.put(f"{USERS}/{other['id']}", json={"email": "bad"})
    assert r.status_code == 400

    # Blank fields mean "unchanged".
    r = await client.put(f"{USERS}/{other['id']}", json={"email": "", "name": ""})
    assert r.status_code == 200
    assert r.json()["data"]["email"] == "user2@example.com"


@pytest.mark.asyncio
async def test_get_missing_and_invalid_id(client: httpx.AsyncClient) -> None:
    r = await client.get(f"{USERS}/12345")
    assert r.status_code == 404
    assert r.json()["success"] is False

    r = await client.get(f"{USERS}/abc")
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid user ID"


@pytest.mark.asyncio
async def test_delete_then_get_is_404(client: httpx.AsyncClient) -> None:
    user = await _create(client, 1)

    r = await client.delete(f"{USERS}/{user['id']}")
    assert r.status_code == 200
    assert "data" not in r.json()

    r = await client.delete(f"{USERS}/{user['id']}")
    assert r.status_code == 404
    r = await client.get(f"{USERS}/{user['id']}")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_pagination_metadata(client: httpx.AsyncClient) -> None:
    for i in range(25):
        await _create(client, i)

    r = await client.get(USERS, params={"limit": 10, "page": 3})
    assert r.status_code == 200
    body = r.json()
    assert body["pagination"] == {"page": 3, "limit": 10, "total_rows": 25, "total_pages": 3}
    assert len(body["data"]) == 5

    r = await client.get(USERS, params={"limit": 1000, "page": 0})
    assert r.json()["pagination"]["limit"] == 100
    assert r.json()["pagination"]["page"] == 1


@pytest.mark.asyncio
async def test_sort_and_filter(client: httpx.AsyncClient) -> None:
    for name in ("anna", "bert", "carl"):
        await _create(client, name, name=name)

    r = await client.get(USERS, params={"sort": "name:desc"})
    assert r.status_code == 200
    assert [u["name"] for u in r.json()["data"]] == ["carl", "bert", "anna"]

    r = await client.get(USERS, params={"name": "ER"})
    assert [u["name"] for u in r.json()["data"]] == ["bert"]


@pytest.mark.asyncio
async def test_invalid_sort_is_400_naming_field(client: httpx.AsyncClient) -> None:
    r = await client.get(USERS, params={"sort": "bogus:asc"})
    assert r.status_code == 400
    assert "bogus" in r.json()["error"]

    r = await client.get(USERS, params={"sort": "name:sideways"})
    assert r.status_code == 400
    assert "sideways" in r.json()["error"]


@pytest.mark.asyncio
async def test_unknown_query_parameter_is_400(client: httpx.AsyncClient) -> None:
    r = await client.get(USERS, params={"role": "admin"})
    assert r.status_code == 400
    assert "role" in r.json()["error"]


@pytest.mark.asyncio
async def test_empty_list_has_empty_data(client: httpx.AsyncClient) -> None:
    r = await client.get(USERS)
    body = r.json()
    assert body["data"] == []
    assert body["pagination"]["total_pages"] == 0


@pytest.mark.asyncio
async def test_create_survives_unreachable_broker(client: httpx.AsyncClient, fake_bus) -> None:
    fake_bus.error = ConnectionError("broker unreachable")

    user = await _create(client, 1)

    r = await client.get(f"{USERS}/{user['id']}")
    assert r.status_code == 200
    assert r.json()["data"]["email"] == "user1@example.com"


@pytest.mark.asyncio
async def test_empty_update_keeps_fields(client: httpx.AsyncClient) -> None:
    user = await _create(client, 1)

    r = await client.put(f"{USERS}/{user['id']}", json={})
    assert r.status_code == 200
    data = r.json()["data"]
    assert (data["email"], data["name"]) == (user["email"], user["name"])


@pytest.mark.asyncio
async def test_page_beyond_64_bits_falls_back_to_default(client: httpx.AsyncClient) -> None:
    await _create(client, 1)

    r = await client.get(USERS, params={"page": "99999999999999999999"})
    assert r.status_code == 200
    assert r.json()["pagination"]["page"] == 1
    assert len(r.json()["data"]) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
async def test_user_id_beyond_64_bits_is_400(client: httpx.AsyncClient, method: str) -> None:
    kwargs = {"json": {"name": "renamed"}} if method == "PUT" else {}
    r = await client.request(method, f"{USERS}/99999999999999999999", **kwargs)
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid user ID"
