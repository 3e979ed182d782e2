"""
user_service.cache

Redis-backed response cache.

Responsibilities:
- Get/set/delete cached response bodies by key with a TTL.
- Derive keys deterministically from method + path + query.
- Name the key of a user's GET-by-id read path so writes can invalidate it.
"""

from __future__ import annotations

import redis.asyncio as redis

from user_service.observability.logging import get_logger

log = get_logger(__name__)

CACHE_KEY_PREFIX = "cache:"
USERS_PATH = "/api/v1/users"


def cache_key(method: str, path: str, query: str = "") -> str:
    uri = f"{path}?{query}" if query else path
    return f"{CACHE_KEY_PREFIX}{method.upper()}:{uri}"


def user_read_key(user_id: int) -> str:
    return cache_key("GET", f"{USERS_PATH}/{user_id}")


class ResponseCache:
    def __init__(self, client: redis.Redis, *, default_ttl: int = 60) -> None:
        self._client = client
        self._default_ttl = default_ttl

    @classmethod
    def from_url(cls, url: str, *, default_ttl: int = 60) -> ResponseCache:
        return cls(redis.from_url(url, decode_responses=False), default_ttl=default_ttl)

    async def get(self, key: str) -> bytes | None:
        return await self._client.get(key)

    async def set(self, key: str, value: bytes, ttl: int | None = None) -> None:
        await self._client.set(key, value, ex=ttl or self._default_ttl)

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def ping(self) -> None:
        await self._client.ping()

    async def close(self) -> None:
        await self._client.aclose()


# --- Module Notes -----------------------------------------------------------
# Only the bare GET-by-id URI is invalidated on writes; variants of that URI with
# a query string expire on their TTL.
