"""
user_service.worker.runner

Worker process lifecycle.

Responsibilities:
- Ensure bus topics/subscriptions exist (fail fast), then start one arq worker
  per weighted queue and one long-lived task per bus subscription.
- Wait for a shutdown signal, then cancel subscriptions, close queue workers
  (letting in-flight jobs finish) and release connections.
"""

from __future__ import annotations

import asyncio
import signal

from arq.worker import Worker

from user_service.messaging.bus import EventBus, user_topics
from user_service.messaging.tasks import TYPE_TELEGRAM_MESSAGE, build_workers, task_function
from user_service.notifications.telegram import TelegramClient
from user_service.observability.logging import get_logger
from user_service.settings import Settings
from user_service.worker.handlers import TelegramTaskHandler, UserCreatedHandler

log = get_logger(__name__)


class WorkerProcess:
    def __init__(
        self,
        settings: Settings,
        *,
        bus: EventBus | None = None,
        telegram: TelegramClient | None = None,
    ) -> None:
        self._settings = settings
        self._bus = bus
        self._telegram = telegram
        self.shutdown_event = asyncio.Event()
        self._workers: list[Worker] = []
        self._tasks: list[asyncio.Task[None]] = []

    def setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._on_signal, sig)

    def _on_signal(self, sig: signal.Signals) -> None:
        log.info("shutdown_signal_received", signal=sig.name)
        self.shutdown_event.set()

    async def start(self) -> None:
        s = self._settings
        bus = self._bus or EventBus.from_url(
            s.redis_url,
            stream_prefix=s.bus_stream_prefix,
            ack_deadline_seconds=s.bus_ack_deadline_seconds,
            block_ms=s.bus_block_ms,
            max_outstanding=s.bus_max_outstanding,
        )
        telegram = self._telegram or TelegramClient.from_settings(s)
        self._bus, self._telegram = bus, telegram

        await bus.ensure_topics(
            user_topics(
                topic_user_created=s.topic_user_created,
                subscription_user_created=s.subscription_user_created,
            )
        )

        functions = [
            task_function(
                TYPE_TELEGRAM_MESSAGE,
                TelegramTaskHandler(telegram).handle,
                max_tries=s.queue_max_tries,
                backoff_base=s.queue_backoff_base_seconds,
                backoff_max=s.queue_backoff_max_seconds,
            ),
        ]
        self._workers = build_workers(
            redis_url=s.redis_url,
            functions=functions,
            weights=s.queue_weights,
            concurrency=s.queue_concurrency,
            max_tries=s.queue_max_tries,
        )
        for w in self._workers:
            self._tasks.append(asyncio.create_task(w.main(), name=f"queue:{w.queue_name}"))

        self._tasks.append(
            asyncio.create_task(
                bus.subscribe(s.subscription_user_created, UserCreatedHandler()),
                name=f"subscription:{s.subscription_user_created}",
            )
        )
        log.info(
            "worker_started",
            queues=[w.queue_name for w in self._workers],
            subscriptions=[s.subscription_user_created],
        )

    async def run(self) -> None:
        await self.start()
        try:
            stop = asyncio.create_task(self.shutdown_event.wait())
            done, _ = await asyncio.wait(
                [stop, *self._tasks], return_when=asyncio.FIRST_COMPLETED
            )
            for t in done:
                if t is not stop and not t.cancelled() and t.exception() is not None:
                    log.error("worker_task_crashed", task=t.get_name(), error=str(t.exception()))
            stop.cancel()
        finally:
            await self.stop()

    async def stop(self) -> None:
        for t in self._tasks:
            t.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        for w in self._workers:
            try:
                await w.close()
            except Exception as e:
                log.error("queue_worker_close_failed", queue=w.queue_name, error=str(e))
        self._workers.clear()

        if self._bus is not None:
            await self._bus.close()
        if self._telegram is not None:
            await self._telegram.aclose()
        log.info("worker_stopped")


# --- Module Notes -----------------------------------------------------------
# A crashed queue or subscription task stops the whole process; the supervisor
# (systemd/k8s) restarts it.
