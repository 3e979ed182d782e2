"""
user_service.db.repositories.users

Repository for `User` entities.

Responsibilities:
- Create, read, update, delete and count users.
- Run every statement on the executor the transaction coordinator assigns to
  the caller's scope.
- Enforce the filter and sort allow-lists at the query layer.
- Translate store-level failures into domain errors.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from sqlalchemy import ColumnElement, asc, delete, desc, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from user_service.db.models import User
from user_service.db.transaction import Scope, TransactionManager
from user_service.errors import ConflictError, InternalError, NotFoundError, SortValidationError
from user_service.pagination import Pagination, SortParam

# Filter key -> column; each is applied as a case-insensitive partial match.
FILTERABLE_COLUMNS = {
    "name": User.name,
    "email": User.email,
}

# Storage column -> mapped attribute. Sort params arrive already mapped from the
# public keys by `pagination.parse_sorts`.
SORTABLE_COLUMNS = {
    "id": User.id,
    "email": User.email,
    "name": User.name,
    "created_at": User.created_at,
    "updated_at": User.updated_at,
}

DEFAULT_SORT = [SortParam(field="created_at", direction="desc")]


def _filter_clauses(filters: Mapping[str, str]) -> list[ColumnElement[bool]]:
    # Unknown keys are skipped silently; the HTTP layer already rejected them.
    clauses: list[ColumnElement[bool]] = []
    for key, value in filters.items():
        column = FILTERABLE_COLUMNS.get(key)
        if column is None or not value:
            continue
        clauses.append(column.ilike(f"%{value}%"))
    return clauses


def _order_by(sorts: Sequence[SortParam]) -> list[ColumnElement]:
    invalid = [s.field for s in sorts if s.field not in SORTABLE_COLUMNS]
    if invalid:
        raise SortValidationError(invalid_fields=invalid)
    bad_dirs = [s.direction for s in sorts if s.direction not in ("asc", "desc")]
    if bad_dirs:
        raise SortValidationError(invalid_fields=[], invalid_directions=bad_dirs)

    order = [
        desc(SORTABLE_COLUMNS[s.field]) if s.direction == "desc" else asc(SORTABLE_COLUMNS[s.field])
        for s in (sorts or DEFAULT_SORT)
    ]
    # Tie-breaker keeps pages stable when the sort key has duplicates.
    if not any(s.field == "id" for s in sorts):
        order.append(asc(User.id))
    return order


class UserRepo:
    def __init__(self, tx: TransactionManager) -> None:
        self._tx = tx

    async def create(self, scope: Scope, *, email: str, name: str, password_hash: str) -> User:
        user = User(email=email, name=name, password=password_hash)
        try:
            async with self._tx.executor(scope) as session:
                session.add(user)
                await session.flush()
        except IntegrityError as e:
            raise ConflictError("email already exists") from e
        except SQLAlchemyError as e:
            raise InternalError(f"failed to create user: {e}") from e
        return user

    async def get_by_id(self, scope: Scope, user_id: int) -> User:
        return await self._get_one(scope, User.id == user_id)

    async def get_by_email(self, scope: Scope, email: str) -> User:
        return await self._get_one(scope, User.email == email)

    async def _get_one(self, scope: Scope, clause: ColumnElement[bool]) -> User:
        try:
            async with self._tx.executor(scope) as session:
                user = (await session.execute(select(User).where(clause))).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise InternalError(f"failed to get user: {e}") from e
        if user is None:
            raise NotFoundError("user not found")
        return user

    async def list_page(
        self,
        scope: Scope,
        *,
        pagination: Pagination,
        filters: Mapping[str, str],
        sorts: Sequence[SortParam],
    ) -> list[User]:
        stmt = (
            select(User)
            .where(*_filter_clauses(filters))
            .order_by(*_order_by(sorts))
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        try:
            async with self._tx.executor(scope) as session:
                return list((await session.execute(stmt)).scalars().all())
        except SQLAlchemyError as e:
            raise InternalError(f"failed to get users: {e}") from e

    async def count(self, scope: Scope, *, filters: Mapping[str, str]) -> int:
        stmt = select(func.count()).select_from(User).where(*_filter_clauses(filters))
        try:
            async with self._tx.executor(scope) as session:
                return int((await session.execute(stmt)).scalar_one())
        except SQLAlchemyError as e:
            raise InternalError(f"failed to count users: {e}") from e

    async def update(self, scope: Scope, user_id: int, *, email: str, name: str) -> User:
        # Only the mutable fields; password and created_at are never touched here.
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(email=email, name=name, updated_at=func.now())
            .returning(User)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        try:
            async with self._tx.executor(scope) as session:
                user = (await session.execute(stmt)).scalar_one_or_none()
        except IntegrityError as e:
            raise ConflictError("email already exists") from e
        except SQLAlchemyError as e:
            raise InternalError(f"failed to update user: {e}") from e
        if user is None:
            raise NotFoundError("user not found")
        return user

    async def delete(self, scope: Scope, user_id: int) -> None:
        stmt = delete(User).where(User.id == user_id).execution_options(
            synchronize_session=False
        )
        try:
            async with self._tx.executor(scope) as session:
                result = await session.execute(stmt)
        except SQLAlchemyError as e:
            raise InternalError(f"failed to delete user: {e}") from e
        if result.rowcount == 0:
            raise NotFoundError("user not found")


# --- Module Notes -----------------------------------------------------------
# Uniqueness of `email` is enforced by the table's unique constraint; any
# IntegrityError on insert/update surfaces as ConflictError even when the
# service's pre-check lost a race.
