from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock

import pytest
import structlog
from redis.exceptions import ResponseError

from user_service.messaging.bus import EventBus, Message, TopicConfig
from user_service.observability.tracing import REQUEST_ID_KEY


def _client() -> AsyncMock:
    client = AsyncMock()
    client.xadd.return_value = b"1700000000000-0"
    client.xautoclaim.return_value = [b"0-0", [], []]
    return client


@pytest.mark.asyncio
async def test_publish_returns_server_assigned_id() -> None:
    client = _client()
    bus = EventBus(client, stream_prefix="bus:")

    message_id = await bus.publish("user-created", b"payload", {"event": "user.created"})

    assert message_id == "1700000000000-0"
    stream, fields = client.xadd.await_args.args
    assert stream == "bus:user-created"
    assert fields[b"data"] == b"payload"
    assert fields[b"attr:event"] == b"user.created"


@pytest.mark.asyncio
async def test_publish_carries_request_id_in_attributes() -> None:
    client = _client()
    bus = EventBus(client)

    with structlog.contextvars.bound_contextvars(request_id="req-42"):
        await bus.publish("user-created", b"x")

    _, fields = client.xadd.await_args.args
    assert fields[b"attr:" + REQUEST_ID_KEY.encode()] == b"req-42"


@pytest.mark.asyncio
async def test_one_publisher_per_topic_under_concurrent_first_use() -> None:
    client = _client()
    bus = EventBus(client)

    await asyncio.gather(*(bus.publish("user-created", b"x") for _ in range(50)))

    assert client.xadd.await_count == 50
    handle = bus.publisher("user-created")
    assert bus.publisher("user-created") is handle
    assert bus.publisher("other") is not handle


@pytest.mark.asyncio
async def test_ensure_topics_tolerates_existing_group() -> None:
    client = _client()
    client.xgroup_create.side_effect = ResponseError("BUSYGROUP Consumer Group name already exists")
    bus = EventBus(client)

    await bus.ensure_topics([TopicConfig(topic="user-created", subscriptions=("sub",))])

    client.ping.assert_awaited()
    client.xgroup_create.assert_awaited_with("bus:user-created", "sub", id="$", mkstream=True)


@pytest.mark.asyncio
async def test_ensure_topics_fails_fast_on_other_errors() -> None:
    client = _client()
    client.xgroup_create.side_effect = ResponseError("WRONGTYPE")
    bus = EventBus(client)

    with pytest.raises(ResponseError):
        await bus.ensure_topics([TopicConfig(topic="user-created", subscriptions=("sub",))])


@pytest.mark.asyncio
async def test_subscribe_requires_known_subscription() -> None:
    bus = EventBus(_client())
    with pytest.raises(ValueError):
        await bus.subscribe("missing", AsyncMock())


async def _run_once(bus: EventBus, client: AsyncMock, handler: Any) -> None:
    delivered = asyncio.Event()
    calls = 0

    async def xreadgroup(*args: Any, **kwargs: Any) -> Any:
        nonlocal calls
        calls += 1
        if calls == 1:
            return [[b"bus:user-created", [(b"1-0", {b"data": b"hello", b"attr:k": b"v"})]]]
        delivered.set()
        await asyncio.sleep(3600)

    client.xreadgroup.side_effect = xreadgroup
    await bus.ensure_topics([TopicConfig(topic="user-created", subscriptions=("sub",))])

    task = asyncio.create_task(bus.subscribe("sub", handler, consumer="c1"))
    await asyncio.wait_for(delivered.wait(), timeout=2)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_handler_success_acks() -> None:
    client = _client()
    bus = EventBus(client)
    received: list[Message] = []

    async def handler(message: Message) -> None:
        received.append(message)

    await _run_once(bus, client, handler)

    assert received[0].id == "1-0"
    assert received[0].data == b"hello"
    assert received[0].attributes == {"k": "v"}
    client.xack.assert_awaited_once_with("bus:user-created", "sub", "1-0")


@pytest.mark.asyncio
async def test_handler_failure_leaves_message_pending() -> None:
    client = _client()
    bus = EventBus(client)

    async def handler(message: Message) -> None:
        raise RuntimeError("cannot process")

    await _run_once(bus, client, handler)

    client.xack.assert_not_awaited()


@pytest.mark.asyncio
async def test_pending_messages_are_redelivered_after_deadline() -> None:
    client = _client()
    client.xautoclaim.return_value = [b"0-0", [(b"7-0", {b"data": b"again"})], []]
    bus = EventBus(client, ack_deadline_seconds=30)
    received: list[Message] = []

    async def handler(message: Message) -> None:
        received.append(message)

    await _run_once(bus, client, handler)

    redelivered = [m for m in received if m.redelivered]
    assert [m.id for m in redelivered] == ["7-0"]
    assert client.xautoclaim.await_args.kwargs["min_idle_time"] == 30_000
