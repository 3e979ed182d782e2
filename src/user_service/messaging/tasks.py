"""
user_service.messaging.tasks

Task queue contract on top of arq (Redis).

Responsibilities:
- Define task payloads (type tag + serialized body with embedded trace context).
- Enqueue tasks onto named queues and return the queue-assigned job id.
- Wrap worker-side handlers with the retry policy: success acks the job, a
  failure is retried with exponential backoff up to `max_tries`, and
  `NonRetryableTaskError` fails the job at once.
- Build one arq worker per named queue, splitting total concurrency by weight.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

import orjson
from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.worker import Function, Retry, Worker, func

from user_service.observability.logging import get_logger
from user_service.observability.tracing import extracted_trace_context, inject_trace_context

log = get_logger(__name__)

QUEUE_KEY_PREFIX = "arq:queue:"
DEFAULT_QUEUE = "default"

TYPE_TELEGRAM_MESSAGE = "telegram:send_message"


class NonRetryableTaskError(Exception):
    """
    Raised by a handler (or payload decoding) when retrying cannot help.
    """


class TaskEnqueueError(Exception):
    pass


def queue_key(name: str) -> str:
    return f"{QUEUE_KEY_PREFIX}{name}"


@dataclass(frozen=True, slots=True)
class TelegramMessageTask:
    type_name: ClassVar[str] = TYPE_TELEGRAM_MESSAGE

    chat_id: str
    text: str
    trace_context: dict[str, str] = field(default_factory=dict)

    @classmethod
    def new(cls, *, chat_id: str, text: str) -> TelegramMessageTask:
        # The queue has no per-message headers, so trace context rides in the payload.
        return cls(chat_id=chat_id, text=text, trace_context=inject_trace_context())

    def to_payload(self) -> bytes:
        return orjson.dumps(
            {"chat_id": self.chat_id, "text": self.text, "trace_context": self.trace_context}
        )

    @classmethod
    def from_payload(cls, raw: bytes) -> TelegramMessageTask:
        try:
            body = orjson.loads(raw)
            return cls(
                chat_id=str(body["chat_id"]),
                text=str(body["text"]),
                trace_context=dict(body.get("trace_context") or {}),
            )
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise NonRetryableTaskError(f"invalid {cls.type_name} payload: {e}") from e


class TaskEnqueuer:
    def __init__(self, pool: ArqRedis, *, default_queue: str = DEFAULT_QUEUE) -> None:
        self._pool = pool
        self._default_queue = default_queue

    @classmethod
    async def connect(cls, redis_url: str, **kwargs: Any) -> TaskEnqueuer:
        pool = await create_pool(RedisSettings.from_dsn(redis_url))
        return cls(pool, **kwargs)

    async def enqueue(self, task: TelegramMessageTask, *, queue: str | None = None) -> str:
        queue_name = queue or self._default_queue
        job = await self._pool.enqueue_job(
            task.type_name, task.to_payload(), _queue_name=queue_key(queue_name)
        )
        if job is None:
            raise TaskEnqueueError(f"job for {task.type_name} was not enqueued (duplicate id)")
        log.info("task_enqueued", task_type=task.type_name, job_id=job.job_id, queue=queue_name)
        return job.job_id

    async def ping(self) -> None:
        await self._pool.ping()

    async def close(self) -> None:
        await self._pool.aclose()


TaskHandler = Callable[[bytes], Awaitable[None]]


def backoff_delay(job_try: int, *, base: float, cap: float) -> float:
    # 1st retry waits `base`, then doubles each attempt, never beyond `cap`.
    return min(base * (2 ** max(job_try - 1, 0)), cap)


def task_function(
    type_name: str,
    handler: TaskHandler,
    *,
    max_tries: int,
    backoff_base: float,
    backoff_max: float,
) -> Function:
    async def run(ctx: dict[str, Any], payload: bytes) -> None:
        job_id = ctx.get("job_id")
        job_try = int(ctx.get("job_try", 1))
        try:
            await handler(payload)
        except NonRetryableTaskError as e:
            log.error("task_failed_permanently", task_type=type_name, job_id=job_id, error=str(e))
            raise
        except Exception as e:
            if job_try >= max_tries:
                log.error(
                    "task_attempts_exhausted",
                    task_type=type_name,
                    job_id=job_id,
                    attempts=job_try,
                    error=str(e),
                )
                raise
            delay = backoff_delay(job_try, base=backoff_base, cap=backoff_max)
            log.warning(
                "task_failed_retrying",
                task_type=type_name,
                job_id=job_id,
                attempt=job_try,
                retry_in_s=delay,
                error=str(e),
            )
            raise Retry(defer=delay) from e
        log.info("task_completed", task_type=type_name, job_id=job_id, attempt=job_try)

    return func(run, name=type_name, max_tries=max_tries)


def queue_concurrency(weights: Mapping[str, int], total: int) -> dict[str, int]:
    """
    Split `total` worker slots across queues proportionally to their weights.
    Every queue gets at least one slot.
    """

    weight_sum = sum(w for w in weights.values() if w > 0)
    if weight_sum == 0:
        return {name: max(total, 1) for name in weights}
    return {
        name: max(1, round(total * weight / weight_sum))
        for name, weight in weights.items()
        if weight > 0
    }


def build_workers(
    *,
    redis_url: str,
    functions: list[Function],
    weights: Mapping[str, int],
    concurrency: int,
    max_tries: int,
) -> list[Worker]:
    redis_settings = RedisSettings.from_dsn(redis_url)
    return [
        Worker(
            functions=functions,
            queue_name=queue_key(name),
            redis_settings=redis_settings,
            max_jobs=slots,
            max_tries=max_tries,
            handle_signals=False,
        )
        for name, slots in queue_concurrency(weights, concurrency).items()
    ]


async def decode_and_run(
    raw: bytes, send: Callable[[TelegramMessageTask], Awaitable[None]]
) -> None:
    task = TelegramMessageTask.from_payload(raw)
    with extracted_trace_context(task.trace_context):
        await send(task)


# --- Module Notes -----------------------------------------------------------
# Acknowledgement is arq's job outcome: returning completes the job, `Retry`
# re-queues it with a delay, any other exception fails it for good.
