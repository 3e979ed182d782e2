"""
tests.conftest

Shared fixtures.

Responsibilities:
- Provide test settings backed by a file SQLite database per test.
- Provide in-memory doubles for the Redis-backed adapters (cache, bus, task queue).
- Provide a started app + httpx client wired to those doubles.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from user_service.api.app import create_app
from user_service.api.container import Container
from user_service.db.init_db import init_db
from user_service.db.session import create_engine
from user_service.settings import Settings


class FakeCache:
    def __init__(self) -> None:
        self.store: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_delete = False
        self.fail_ping = False

    async def get(self, key: str) -> bytes | None:
        return self.store.get(key)

    async def set(self, key: str, value: bytes, ttl: int | None = None) -> None:
        self.store[key] = value

    async def delete(self, key: str) -> None:
        if self.fail_delete:
            raise ConnectionError("cache unavailable")
        self.deleted.append(key)
        self.store.pop(key, None)

    async def ping(self) -> None:
        if self.fail_ping:
            raise ConnectionError("cache unavailable")

    async def close(self) -> None:
        return None


class FakeBus:
    def __init__(self) -> None:
        self.published: list[tuple[str, bytes, dict[str, str]]] = []
        self.error: Exception | None = None
        self.delay = 0.0

    async def publish(
        self, topic: str, data: bytes, attributes: dict[str, str] | None = None
    ) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.published.append((topic, data, dict(attributes or {})))
        return f"{len(self.published)}-0"

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None


class FakeEnqueuer:
    def __init__(self) -> None:
        self.enqueued: list[Any] = []
        self.error: Exception | None = None
        self.fail_ping = False
        self.closed = False

    async def enqueue(self, task: Any, *, queue: str | None = None) -> str:
        if self.error is not None:
            raise self.error
        self.enqueued.append(task)
        return f"job-{len(self.enqueued)}"

    async def ping(self) -> None:
        if self.fail_ping:
            raise ConnectionError("queue unavailable")

    async def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def fast_password_hash(monkeypatch: pytest.MonkeyPatch) -> None:
    # bcrypt at cost 12 takes ~250ms per hash; service tests only need a distinct string.
    async def _hash(password: str) -> str:
        return f"hashed:{password}"

    monkeypatch.setattr("user_service.services.user_service.hash_password_async", _hash)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        env="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'users.db'}",
        telegram_chat_id="chat-1",
        shutdown_grace_seconds=1.0,
    )


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncIterator[AsyncEngine]:
    eng = create_engine(settings)
    await init_db(eng)
    try:
        yield eng
    finally:
        await eng.dispose()


@pytest.fixture
def fake_cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def fake_bus() -> FakeBus:
    return FakeBus()


@pytest.fixture
def fake_enqueuer() -> FakeEnqueuer:
    return FakeEnqueuer()


@pytest.fixture
def container(
    settings: Settings,
    engine: AsyncEngine,
    fake_bus: FakeBus,
    fake_enqueuer: FakeEnqueuer,
    fake_cache: FakeCache,
) -> Container:
    return Container.assemble(
        settings,
        engine=engine,
        bus=fake_bus,  # type: ignore[arg-type]
        enqueuer=fake_enqueuer,  # type: ignore[arg-type]
        cache=fake_cache,  # type: ignore[arg-type]
    )


@pytest_asyncio.fixture
async def client(settings: Settings, container: Container) -> AsyncIterator[httpx.AsyncClient]:
    app = create_app(settings=settings, container=container)

    # httpx ASGITransport does not run the lifespan; enter it explicitly.
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            yield c
