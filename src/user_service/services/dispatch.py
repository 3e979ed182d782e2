"""
user_service.services.dispatch

Detached background dispatch for best-effort side effects.

Responsibilities:
- Launch side effects (bus publish, task enqueue) as tasks the caller never awaits.
- Keep strong references until they finish and log any terminal error.
- Drain outstanding work within a grace period on shutdown.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

from user_service.observability.logging import get_logger

log = get_logger(__name__)


class BackgroundDispatcher:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        # The task copies the current contextvars (request_id) but is not bound to
        # the request: a client disconnect does not cancel it.
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            log.warning("dispatch_cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "dispatch_failed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=exc,
            )

    async def drain(self, timeout: float | None = None) -> None:
        """
        Wait for outstanding dispatches; whatever is still running after `timeout`
        is cancelled.
        """

        if not self._tasks:
            return
        pending = set(self._tasks)
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            log.warning("dispatch_drain_timeout", cancelled=len(still_running))


# --- Module Notes -----------------------------------------------------------
# Nothing spawned here can fail the request that spawned it: errors end in the
# done-callback log line and nowhere else.
