"""
user_service.db.session

Async SQLAlchemy engine + session factory helpers.

Responsibilities:
- Create the async engine (bounded connection pool) from settings.
- Create the async sessionmaker with safe defaults.
- Provide a connectivity check for the health endpoint.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from user_service.settings import Settings


def create_engine(settings: Settings) -> AsyncEngine:
    url = make_url(settings.database_url)
    kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if url.get_backend_name() == "sqlite":
        # SQLite serializes writers; wait for the lock instead of failing fast.
        kwargs["connect_args"] = {"timeout": 30}
    else:
        # Shared pool across all requests: bounded size plus a small overflow.
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=settings.db_pool_recycle_seconds,
        )
    return create_async_engine(url, **kwargs)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps returned entities readable after the unit of work ends.
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
    )


async def ping(engine: AsyncEngine) -> None:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


# --- Module Notes -----------------------------------------------------------
# Sessions are handed out exclusively through `db.transaction.TransactionManager`.
