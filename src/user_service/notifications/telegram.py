"""
user_service.notifications.telegram

HTTP client boundary for the Telegram Bot API.

Responsibilities:
- Send a text message to a chat via `POST {base}/bot{token}/sendMessage`.
- Turn any non-200 answer into `TelegramError` so the task is retried.
"""

from __future__ import annotations

import httpx

from user_service.observability.logging import get_logger
from user_service.settings import Settings

log = get_logger(__name__)


class TelegramError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TelegramClient:
    def __init__(self, *, http: httpx.AsyncClient, token: str) -> None:
        self._http = http
        self._token = token

    @classmethod
    def from_settings(cls, settings: Settings) -> TelegramClient:
        http = httpx.AsyncClient(
            base_url=settings.telegram_base_url,
            timeout=settings.telegram_timeout_seconds,
        )
        return cls(http=http, token=settings.telegram_token)

    async def send_message(self, *, chat_id: str, text: str) -> None:
        # Token is part of the path; never log the URL.
        try:
            r = await self._http.post(
                f"/bot{self._token}/sendMessage",
                data={"chat_id": chat_id, "text": text},
            )
        except httpx.HTTPError as e:
            raise TelegramError(f"failed to send telegram request: {type(e).__name__}") from e

        if r.status_code != 200:
            raise TelegramError(
                f"telegram api returned status {r.status_code}: {r.text}",
                status_code=r.status_code,
            )
        log.info("telegram_message_sent", chat_id=chat_id)

    async def aclose(self) -> None:
        await self._http.aclose()


# --- Module Notes -----------------------------------------------------------
# sendMessage is called with a form-encoded body (`chat_id`, `text`).
