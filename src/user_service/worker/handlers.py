"""
user_service.worker.handlers

Consumer-side handlers for queued tasks and bus messages.

Responsibilities:
- Decode task payloads (undecodable payloads are never retried).
- Send Telegram notifications under the producer's trace context.
- Process `user.created` events delivered through the bus subscription.
"""

from __future__ import annotations

from user_service.messaging.bus import Message
from user_service.messaging.events import UserEvent
from user_service.messaging.tasks import TelegramMessageTask, decode_and_run
from user_service.notifications.telegram import TelegramClient
from user_service.observability.logging import get_logger

log = get_logger(__name__)


class TelegramTaskHandler:
    def __init__(self, client: TelegramClient) -> None:
        self._client = client

    async def handle(self, payload: bytes) -> None:
        await decode_and_run(payload, self._send)

    async def _send(self, task: TelegramMessageTask) -> None:
        log.info("telegram_send_started", chat_id=task.chat_id)
        await self._client.send_message(chat_id=task.chat_id, text=task.text)


class UserCreatedHandler:
    """
    Subscription handler for `user.created`. Returning acks the message; raising
    leaves it pending for redelivery.
    """

    async def __call__(self, message: Message) -> None:
        event = UserEvent.from_bytes(message.data)
        log.info(
            "user_created_received",
            message_id=message.id,
            user_id=event.user_id,
            redelivered=message.redelivered,
            summary=event.describe(),
        )
