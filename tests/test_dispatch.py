from __future__ import annotations

import asyncio

import pytest

from user_service.services.dispatch import BackgroundDispatcher


@pytest.mark.asyncio
async def test_failed_dispatch_is_contained() -> None:
    dispatcher = BackgroundDispatcher()

    async def boom() -> None:
        raise RuntimeError("broker down")

    task = dispatcher.spawn(boom(), name="boom")
    await dispatcher.drain(1.0)

    assert task.done()
    assert isinstance(task.exception(), RuntimeError)
    assert dispatcher.pending == 0


@pytest.mark.asyncio
async def test_drain_cancels_stragglers_after_timeout() -> None:
    dispatcher = BackgroundDispatcher()
    finished: list[str] = []

    async def quick() -> None:
        finished.append("quick")

    async def slow() -> None:
        await asyncio.sleep(60)
        finished.append("slow")

    dispatcher.spawn(quick(), name="quick")
    slow_task = dispatcher.spawn(slow(), name="slow")
    await dispatcher.drain(0.05)

    assert finished == ["quick"]
    assert slow_task.cancelled()
    assert dispatcher.pending == 0
