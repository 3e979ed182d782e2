"""
user_service.db.transaction

Transaction coordinator and execution scopes.

Responsibilities:
- Run a unit of work inside one database transaction with commit/rollback semantics.
- Reuse an already-active transaction for nested calls (flat nesting, no savepoints).
- Hand repositories the right executor for a scope, so repository code never
  needs to know whether it runs inside a transaction.

A scope is passed explicitly through every repository call:

- `NO_SCOPE`: no transaction; each repository call gets its own pooled session
  that commits when the call finishes.
- `ActiveScope(session)`: every call runs on the transaction's session; commit or
  rollback happens once, in `TransactionManager.run_in_transaction`.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Final, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from user_service.errors import InternalError
from user_service.observability.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class NoScope:
    pass


@dataclass(frozen=True, slots=True)
class ActiveScope:
    session: AsyncSession


Scope = NoScope | ActiveScope

NO_SCOPE: Final[NoScope] = NoScope()


class TransactionManager:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def run_in_transaction(
        self,
        scope: Scope,
        fn: Callable[[ActiveScope], Awaitable[T]],
    ) -> T:
        """
        Await `fn` inside a transaction and return its result.

        - `scope` already active: `fn` joins it; the outermost call decides the outcome.
        - `fn` raises an `Exception`: rollback, then the original exception propagates.
          A failing rollback is reported as `InternalError` carrying both causes.
        - `fn` raises any other `BaseException` (cancellation, exit): rollback,
          then re-raise unchanged.
        - `fn` returns: commit; a failing commit is reported as `InternalError`.
        """

        if isinstance(scope, ActiveScope):
            return await fn(scope)

        async with self._session_factory() as session:
            try:
                await session.begin()
            except Exception as e:
                raise InternalError(f"failed to begin transaction: {e}") from e

            try:
                result = await fn(ActiveScope(session))
            except Exception as original:
                try:
                    await session.rollback()
                except Exception as rb_err:
                    log.error(
                        "transaction_rollback_failed",
                        error=str(rb_err),
                        original_error=str(original),
                    )
                    raise InternalError(
                        f"failed to rollback transaction: {rb_err} (original error: {original})"
                    ) from original
                raise
            except BaseException:
                # Never absorb control-flow signals; only undo the partial work.
                try:
                    await session.rollback()
                except Exception as rb_err:
                    log.error("transaction_rollback_failed", error=str(rb_err))
                raise

            try:
                await session.commit()
            except Exception as e:
                raise InternalError(f"failed to commit transaction: {e}") from e
            return result

    @asynccontextmanager
    async def executor(self, scope: Scope) -> AsyncIterator[AsyncSession]:
        """
        Yield the session statements must run on for `scope`.

        Inside an active scope this is the transaction's session and nothing is
        committed here. Otherwise a short-lived pooled session is opened and
        committed when the block exits cleanly (rolled back if it raises).
        """

        if isinstance(scope, ActiveScope):
            yield scope.session
            return

        async with self._session_factory() as session:
            async with session.begin():
                yield session


# --- Module Notes -----------------------------------------------------------
# Statement order inside a transaction is program order: repositories await each
# statement before issuing the next, and an `AsyncSession` must never be shared by
# concurrently running tasks.
