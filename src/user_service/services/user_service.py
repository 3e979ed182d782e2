"""
user_service.services.user_service

User lifecycle service (transaction + side-effect owner).

Responsibilities:
- Check invariants (email uniqueness) before mutating.
- Run every mutation inside one transaction through the coordinator.
- After commit, fan out best-effort side effects (event bus publish, task
  enqueue) without awaiting them; their failures are logged, never returned.
- Invalidate the cached GET-by-id response after update/delete.
- Serve reads, running list and count concurrently.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from typing import Any

from user_service.cache import ResponseCache, user_read_key
from user_service.db.models import User
from user_service.db.repositories.users import UserRepo
from user_service.db.transaction import NO_SCOPE, ActiveScope, TransactionManager
from user_service.errors import ConflictError, NotFoundError
from user_service.messaging.bus import EventBus
from user_service.messaging.events import UserEvent
from user_service.messaging.tasks import TaskEnqueuer, TelegramMessageTask
from user_service.observability.logging import get_logger
from user_service.pagination import Pagination, SortParam
from user_service.security import hash_password_async
from user_service.services.dispatch import BackgroundDispatcher
from user_service.settings import Settings

log = get_logger(__name__)


class UserService:
    def __init__(
        self,
        *,
        users: UserRepo,
        tx: TransactionManager,
        bus: EventBus,
        enqueuer: TaskEnqueuer,
        dispatcher: BackgroundDispatcher,
        settings: Settings,
        cache: ResponseCache | None = None,
    ) -> None:
        self._users = users
        self._tx = tx
        self._bus = bus
        self._enqueuer = enqueuer
        self._dispatcher = dispatcher
        self._settings = settings
        self._cache = cache

    async def create_user(self, *, email: str, name: str, password: str) -> User:
        # Fast path only: a concurrent insert can still win, and then the unique
        # constraint turns our insert into ConflictError.
        if await self._email_taken(email):
            raise ConflictError("email already exists")

        password_hash = await hash_password_async(password)

        async def _insert(scope: ActiveScope) -> User:
            return await self._users.create(
                scope, email=email, name=name, password_hash=password_hash
            )

        user = await self._tx.run_in_transaction(NO_SCOPE, _insert)
        log.info("user_created", user_id=user.id)

        public = user.to_public()
        self._dispatcher.spawn(
            self._publish_user_created(public), name=f"bus.publish:user.created:{user.id}"
        )
        self._dispatcher.spawn(
            self._enqueue_notification(f"New user created: {user.name} ({user.email})"),
            name=f"tasks.enqueue:telegram:{user.id}",
        )
        return user

    async def get_user(self, user_id: int) -> User:
        return await self._users.get_by_id(NO_SCOPE, user_id)

    async def list_users(
        self,
        *,
        pagination: Pagination,
        filters: Mapping[str, str],
        sorts: Sequence[SortParam],
    ) -> tuple[list[User], int]:
        """
        Fetch one page and the total row count concurrently.
        The first failure wins; the other query is cancelled and its result dropped.
        """

        page_task = asyncio.create_task(
            self._users.list_page(NO_SCOPE, pagination=pagination, filters=filters, sorts=sorts)
        )
        count_task = asyncio.create_task(self._users.count(NO_SCOPE, filters=filters))
        try:
            users, total = await asyncio.gather(page_task, count_task)
        except BaseException:
            for t in (page_task, count_task):
                t.cancel()
            await asyncio.gather(page_task, count_task, return_exceptions=True)
            raise
        return users, total

    async def update_user(
        self, user_id: int, *, email: str | None = None, name: str | None = None
    ) -> User:
        current = await self._users.get_by_id(NO_SCOPE, user_id)

        new_email = current.email
        if email and email != current.email:
            if await self._email_taken(email):
                raise ConflictError("email already exists")
            new_email = email
        new_name = name or current.name

        async def _update(scope: ActiveScope) -> User:
            return await self._users.update(scope, user_id, email=new_email, name=new_name)

        user = await self._tx.run_in_transaction(NO_SCOPE, _update)
        log.info("user_updated", user_id=user.id)

        await self._invalidate(user_id)
        self._dispatcher.spawn(
            self._enqueue_notification(f"User updated: {user.name} ({user.email})"),
            name=f"tasks.enqueue:telegram:{user.id}",
        )
        return user

    async def delete_user(self, user_id: int) -> None:
        async def _delete(scope: ActiveScope) -> None:
            await self._users.delete(scope, user_id)

        await self._tx.run_in_transaction(NO_SCOPE, _delete)
        log.info("user_deleted", user_id=user_id)
        await self._invalidate(user_id)

    async def _email_taken(self, email: str) -> bool:
        try:
            await self._users.get_by_email(NO_SCOPE, email)
        except NotFoundError:
            return False
        return True

    async def _invalidate(self, user_id: int) -> None:
        if self._cache is None:
            return
        key = user_read_key(user_id)
        try:
            await self._cache.delete(key)
        except Exception as e:
            # Stale entry expires on its TTL; the write itself already committed.
            log.error("cache_invalidate_failed", key=key, error=str(e))

    async def _publish_user_created(self, user: dict[str, Any]) -> None:
        event = UserEvent.created(user)
        message_id = await self._bus.publish(
            self._settings.topic_user_created, event.to_bytes(), {"event": event.event}
        )
        log.info(
            "user_event_published",
            topic=self._settings.topic_user_created,
            message_id=message_id,
            user_id=event.user_id,
        )

    async def _enqueue_notification(self, text: str) -> None:
        task = TelegramMessageTask.new(chat_id=self._settings.telegram_chat_id, text=text)
        await self._enqueuer.enqueue(task)


# --- Module Notes -----------------------------------------------------------
# Dispatch coroutines raise on failure; `BackgroundDispatcher` logs the error
# with the task name, and the HTTP response has already been decided by then.
