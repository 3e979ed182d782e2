"""
user_service.api.container

Composition root for process-wide infrastructure.

Responsibilities:
- Build the DB engine, transaction coordinator, repositories, Redis-backed
  adapters (cache, event bus, task enqueuer) and the user service once per process.
- Ensure bus topics and subscriptions exist before traffic is served (fail fast).
- Release every resource on shutdown, draining detached dispatches first.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from user_service.cache import ResponseCache
from user_service.db.repositories.users import UserRepo
from user_service.db.session import create_engine, create_sessionmaker
from user_service.db.transaction import TransactionManager
from user_service.messaging.bus import EventBus, user_topics
from user_service.messaging.tasks import TaskEnqueuer
from user_service.observability.logging import get_logger
from user_service.services.dispatch import BackgroundDispatcher
from user_service.services.user_service import UserService
from user_service.settings import Settings

log = get_logger(__name__)


@dataclass
class Container:
    settings: Settings
    engine: AsyncEngine
    sessionmaker: async_sessionmaker[AsyncSession]
    tx: TransactionManager
    users: UserRepo
    bus: EventBus
    enqueuer: TaskEnqueuer
    dispatcher: BackgroundDispatcher
    cache: ResponseCache | None
    service: UserService

    @classmethod
    def assemble(
        cls,
        settings: Settings,
        *,
        engine: AsyncEngine,
        bus: EventBus,
        enqueuer: TaskEnqueuer,
        cache: ResponseCache | None,
    ) -> Container:
        sessionmaker = create_sessionmaker(engine)
        tx = TransactionManager(sessionmaker)
        users = UserRepo(tx)
        dispatcher = BackgroundDispatcher()
        service = UserService(
            users=users,
            tx=tx,
            bus=bus,
            enqueuer=enqueuer,
            dispatcher=dispatcher,
            settings=settings,
            cache=cache,
        )
        return cls(
            settings=settings,
            engine=engine,
            sessionmaker=sessionmaker,
            tx=tx,
            users=users,
            bus=bus,
            enqueuer=enqueuer,
            dispatcher=dispatcher,
            cache=cache,
            service=service,
        )

    async def close(self) -> None:
        # Detached dispatches still need the bus and queue connections.
        await self.dispatcher.drain(self.settings.shutdown_grace_seconds)
        closers = [("enqueuer", self.enqueuer.close), ("bus", self.bus.close)]
        if self.cache is not None:
            closers.append(("cache", self.cache.close))
        closers.append(("engine", self.engine.dispose))
        for name, close in closers:
            try:
                await close()
            except Exception as e:
                log.error("shutdown_close_failed", resource=name, error=str(e))


async def build_container(settings: Settings) -> Container:
    engine = create_engine(settings)
    bus = EventBus.from_url(
        settings.redis_url,
        stream_prefix=settings.bus_stream_prefix,
        ack_deadline_seconds=settings.bus_ack_deadline_seconds,
        block_ms=settings.bus_block_ms,
        max_outstanding=settings.bus_max_outstanding,
    )
    await bus.ensure_topics(
        user_topics(
            topic_user_created=settings.topic_user_created,
            subscription_user_created=settings.subscription_user_created,
        )
    )
    enqueuer = await TaskEnqueuer.connect(settings.redis_url)
    cache = (
        ResponseCache.from_url(settings.redis_url, default_ttl=settings.cache_ttl_seconds)
        if settings.cache_enabled
        else None
    )
    return Container.assemble(settings, engine=engine, bus=bus, enqueuer=enqueuer, cache=cache)


# --- Module Notes -----------------------------------------------------------
# Tests call `Container.assemble` directly with a SQLite engine and in-memory
# doubles for the Redis-backed adapters.
