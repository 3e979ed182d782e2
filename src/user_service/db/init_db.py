"""
user_service.db.init_db

DB initialization helpers (dev/test convenience).

Responsibilities:
- Create tables for local development and tests.
- Keep production migration workflow separate (Alembic).
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine

from user_service.db.models import Base


async def init_db(engine: AsyncEngine) -> None:
    """
    Create tables if they don't exist. Production deployments run Alembic instead.
    """

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


