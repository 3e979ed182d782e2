"""
user_service.messaging.bus

Event bus on Redis Streams with consumer groups.

Responsibilities:
- Ensure topics (streams) and their subscriptions (consumer groups) exist at startup.
- Publish messages with trace metadata in their attributes and return the
  server-assigned entry id.
- Keep exactly one publishing handle per topic for the process lifetime.
- Run a blocking receive loop per subscription: ack on handler success, leave
  the entry pending (nack) on failure so it is reclaimed and redelivered.

Mapping onto Redis:
- topic            -> stream `<prefix><topic>`
- subscription     -> consumer group on that stream
- delivery id      -> stream entry id returned by XADD
- ack              -> XACK
- nack/redelivery  -> entry stays in the group's pending list; XAUTOCLAIM hands it
                      out again once idle longer than the ack deadline
"""

from __future__ import annotations

import asyncio
import os
import socket
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from user_service.observability.logging import get_logger
from user_service.observability.tracing import extracted_trace_context, inject_trace_context

log = get_logger(__name__)

TOPIC_REGISTRY_KEY = "topics"
DATA_FIELD = b"data"
ATTR_PREFIX = b"attr:"


@dataclass(frozen=True, slots=True)
class TopicConfig:
    topic: str
    subscriptions: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    data: bytes
    attributes: dict[str, str] = field(default_factory=dict)
    redelivered: bool = False

    @classmethod
    def from_entry(cls, entry_id: Any, fields: Mapping[Any, Any], *, redelivered: bool) -> Message:
        data = b""
        attributes: dict[str, str] = {}
        for raw_key, raw_value in fields.items():
            key = _as_bytes(raw_key)
            if key == DATA_FIELD:
                data = _as_bytes(raw_value)
            elif key.startswith(ATTR_PREFIX):
                attributes[key[len(ATTR_PREFIX):].decode()] = _as_bytes(raw_value).decode()
        return cls(id=_as_str(entry_id), data=data, attributes=attributes, redelivered=redelivered)


MessageHandler = Callable[[Message], Awaitable[None]]


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    return str(value).encode()


def _as_str(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


class TopicPublisher:
    """
    Publishing handle bound to one stream.
    """

    def __init__(self, client: redis.Redis, *, topic: str, stream: str, maxlen: int | None) -> None:
        self.topic = topic
        self.stream = stream
        self._client = client
        self._maxlen = maxlen
        self._stopped = False

    @retry(
        retry=retry_if_exception_type((RedisConnectionError, RedisTimeoutError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        reraise=True,
    )
    async def publish(self, data: bytes, attributes: Mapping[str, str]) -> str:
        if self._stopped:
            raise RuntimeError(f"publisher for topic {self.topic!r} is stopped")
        fields: dict[bytes, bytes] = {DATA_FIELD: data}
        for k, v in attributes.items():
            fields[ATTR_PREFIX + k.encode()] = v.encode()
        entry_id = await self._client.xadd(
            self.stream, fields, maxlen=self._maxlen, approximate=self._maxlen is not None
        )
        return _as_str(entry_id)

    def stop(self) -> None:
        self._stopped = True


class EventBus:
    def __init__(
        self,
        client: redis.Redis,
        *,
        stream_prefix: str = "bus:",
        ack_deadline_seconds: float = 30.0,
        block_ms: int = 1000,
        max_outstanding: int = 10,
        stream_maxlen: int | None = 100_000,
    ) -> None:
        self._client = client
        self._prefix = stream_prefix
        self._ack_deadline_ms = int(ack_deadline_seconds * 1000)
        self._block_ms = block_ms
        self._max_outstanding = max_outstanding
        self._stream_maxlen = stream_maxlen
        self._publishers: dict[str, TopicPublisher] = {}
        self._subscriptions: dict[str, str] = {}

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> EventBus:
        return cls(redis.from_url(url, decode_responses=False), **kwargs)

    def stream_name(self, topic: str) -> str:
        return f"{self._prefix}{topic}"

    async def ensure_topics(self, topics: Iterable[TopicConfig]) -> None:
        """
        Create missing topics and subscriptions. Called once at startup so a
        broken broker connection fails the process before it serves traffic.
        """

        await self._client.ping()
        for cfg in topics:
            await self.ensure_topic(cfg.topic)
            for sub in cfg.subscriptions:
                await self.ensure_subscription(sub, cfg.topic)

    async def ensure_topic(self, topic: str) -> None:
        await self._client.sadd(self._prefix + TOPIC_REGISTRY_KEY, topic)

    async def ensure_subscription(self, subscription: str, topic: str) -> None:
        try:
            await self._client.xgroup_create(
                self.stream_name(topic), subscription, id="$", mkstream=True
            )
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise
        self._subscriptions[subscription] = topic

    def publisher(self, topic: str) -> TopicPublisher:
        existing = self._publishers.get(topic)
        if existing is not None:
            return existing
        # Lookup and insert run in one event-loop step: whichever caller gets here
        # first stores its handle and every other caller receives that same one.
        return self._publishers.setdefault(
            topic,
            TopicPublisher(
                self._client,
                topic=topic,
                stream=self.stream_name(topic),
                maxlen=self._stream_maxlen,
            ),
        )

    async def publish(
        self,
        topic: str,
        data: bytes,
        attributes: Mapping[str, str] | None = None,
    ) -> str:
        """
        Publish to an existing topic and return the server-assigned message id.
        Returns as soon as the broker has assigned the id.
        """

        attrs = inject_trace_context(attributes)
        message_id = await self.publisher(topic).publish(data, attrs)
        log.debug("bus_published", topic=topic, message_id=message_id)
        return message_id

    async def subscribe(
        self,
        subscription: str,
        handler: MessageHandler,
        *,
        consumer: str | None = None,
        max_outstanding: int | None = None,
    ) -> None:
        """
        Receive messages for `subscription` until the calling task is cancelled.

        - handler returns -> message acked
        - handler raises  -> message left pending (nack); redelivered after the
          ack deadline. This covers unexpected exceptions as well: they are logged
          here and never escape the loop.
        """

        topic = self._subscriptions.get(subscription)
        if topic is None:
            raise ValueError(f"unknown subscription {subscription!r}; call ensure_topics first")
        stream = self.stream_name(topic)
        consumer = consumer or f"{socket.gethostname()}-{os.getpid()}"
        count = max_outstanding or self._max_outstanding

        log.info("subscription_started", subscription=subscription, topic=topic, consumer=consumer)
        loop = asyncio.get_running_loop()
        next_reclaim = loop.time()
        while True:
            try:
                if loop.time() >= next_reclaim:
                    next_reclaim = loop.time() + self._ack_deadline_ms / 1000
                    claimed = await self._reclaim(stream, subscription, consumer, count)
                    await self._dispatch_batch(
                        stream, subscription, claimed, handler, redelivered=True
                    )

                resp = await self._client.xreadgroup(
                    subscription, consumer, {stream: ">"}, count=count, block=self._block_ms
                )
                await self._dispatch_batch(
                    stream, subscription, _stream_entries(resp), handler, redelivered=False
                )
            except RedisError as e:
                log.error("subscription_receive_failed", subscription=subscription, error=str(e))
                await asyncio.sleep(1.0)

    async def _reclaim(
        self, stream: str, group: str, consumer: str, count: int
    ) -> list[tuple[Any, Mapping[Any, Any]]]:
        resp = await self._client.xautoclaim(
            stream,
            group,
            consumer,
            min_idle_time=self._ack_deadline_ms,
            start_id="0-0",
            count=count,
        )
        # [next_start_id, entries, (deleted_ids on Redis >= 7)]
        entries = resp[1] if resp and len(resp) > 1 else []
        # Entries trimmed from the stream come back without fields.
        return [(eid, fields) for eid, fields in entries if fields]

    async def _dispatch_batch(
        self,
        stream: str,
        group: str,
        entries: list[tuple[Any, Mapping[Any, Any]]],
        handler: MessageHandler,
        *,
        redelivered: bool,
    ) -> None:
        if not entries:
            return
        messages = [Message.from_entry(eid, f, redelivered=redelivered) for eid, f in entries]
        await asyncio.gather(*(self._handle_one(stream, group, m, handler) for m in messages))

    async def _handle_one(
        self, stream: str, group: str, message: Message, handler: MessageHandler
    ) -> None:
        with extracted_trace_context(message.attributes):
            try:
                await handler(message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.error(
                    "subscription_handler_failed",
                    subscription=group,
                    message_id=message.id,
                    redelivered=message.redelivered,
                    error=str(e),
                    exc_info=e,
                )
                return
            await self._client.xack(stream, group, message.id)

    async def ping(self) -> None:
        await self._client.ping()

    async def close(self) -> None:
        for p in self._publishers.values():
            p.stop()
        self._publishers.clear()
        await self._client.aclose()


def _stream_entries(resp: Any) -> list[tuple[Any, Mapping[Any, Any]]]:
    # RESP2: [[stream, [(id, fields), ...]], ...]; RESP3: {stream: [[(id, fields), ...]]}
    if not resp:
        return []
    out: list[tuple[Any, Mapping[Any, Any]]] = []
    if isinstance(resp, dict):
        for batches in resp.values():
            for batch in batches:
                out.extend((eid, fields) for eid, fields in batch)
        return out
    for _stream, entries in resp:
        out.extend((eid, fields) for eid, fields in entries)
    return out


def user_topics(*, topic_user_created: str, subscription_user_created: str) -> list[TopicConfig]:
    return [TopicConfig(topic=topic_user_created, subscriptions=(subscription_user_created,))]


# --- Module Notes -----------------------------------------------------------
# Ordering is per stream only; nothing orders a bus publish relative to a task
# enqueue issued for the same write.
