"""
user_service.db.models

Persistence schema for the user service.

Responsibilities:
- Provide the shared DeclarativeBase (with a constraint naming convention for Alembic).
- Define the `User` ORM model and its public projection.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, DateTime, Integer, MetaData, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Stable constraint names keep Alembic autogenerate diffs deterministic.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class User(Base):
    __tablename__ = "users"
    # Fetch server-generated id/timestamps right after INSERT/UPDATE (RETURNING).
    __mapper_args__ = {"eager_defaults": True}

    # BIGINT on Postgres, INTEGER on SQLite so rowid autoincrement still applies.
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    # The unique constraint is the real guard against duplicate emails; the
    # service-level pre-check only avoids a wasted hash + insert.
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    password: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def to_public(self) -> dict[str, Any]:
        # Password hash is never part of any outward representation.
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"User(id={self.id!r}, email={self.email!r})"


# --- Module Notes -----------------------------------------------------------
# Timestamps are assigned by the database (`now()`), not by the application, so
# every writer (API, migrations, ad-hoc SQL) agrees on the clock.
