"""
user_service.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for the API and worker processes.
- Hide secrets from repr/logging (e.g., Telegram bot token).
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    - Strict env-driven configuration (`USERSVC_*`, optional `.env` file)
    - Defaults safe for local dev
    - Single settings object injected across layers
    """

    model_config = SettingsConfigDict(
        env_prefix="USERSVC_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment controls toggle behavior like auto-init DB tables.
    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "user-service"
    worker_name: str = "user-service-worker"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8080
    # Window given to in-flight requests and detached dispatches on shutdown.
    shutdown_grace_seconds: float = 5.0

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./users.db"
    db_pool_size: int = 5
    db_max_overflow: int = 20
    db_pool_recycle_seconds: int = 300

    # Redis backs the response cache, the event bus and the task queue.
    redis_url: str = "redis://localhost:6379/0"
    cache_enabled: bool = True
    cache_ttl_seconds: int = 60

    # Event bus (Redis Streams)
    bus_stream_prefix: str = "bus:"
    topic_user_created: str = "user-created"
    subscription_user_created: str = "user-created-sub"
    bus_ack_deadline_seconds: float = 30.0
    bus_block_ms: int = 1000
    bus_max_outstanding: int = 10

    # Task queue (arq)
    queue_concurrency: int = 10
    queue_weights: dict[str, int] = Field(
        default_factory=lambda: {"critical": 6, "default": 3, "low": 1}
    )
    queue_max_tries: int = 25
    queue_backoff_base_seconds: float = 2.0
    queue_backoff_max_seconds: float = 600.0

    # Notification channel
    telegram_base_url: str = "https://api.telegram.org"
    telegram_token: str = Field(default="", repr=False)
    telegram_chat_id: str = ""
    telegram_timeout_seconds: float = 10.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Both entrypoints (`user_service.api` and `user_service.worker`) read the same
# settings so topic and queue names always agree between producer and consumer.
