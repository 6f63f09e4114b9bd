"""
Distributed cache abstraction.

The authorization engine only needs a key-value store with per-key TTL
over opaque byte payloads, so the contract is deliberately small:
`get` / `set` / `remove`.  Any backend honouring it can be plugged in.

Backends:
- `RedisCache`  — production; shared across every worker process.
- `MemoryCache` — local development & tests; process-local only.
"""

import logging
import time
from typing import Protocol

import redis.asyncio as redis

from app.core.config import Settings

logger = logging.getLogger(__name__)


class DistributedCache(Protocol):
    async def get(self, key: str) -> bytes | None: ...

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def close(self) -> None: ...


class RedisCache:
    """`DistributedCache` backed by a redis.asyncio connection pool."""

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        # Connections are opened lazily on first command.
        return cls(redis.from_url(url, decode_responses=False))

    async def get(self, key: str) -> bytes | None:
        return await self._client.get(key)

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        await self._client.set(key, value, ex=ttl_seconds)

    async def remove(self, key: str) -> None:
        await self._client.delete(key)

    async def close(self) -> None:
        await self._client.aclose()


class MemoryCache:
    """In-process `DistributedCache` with monotonic-clock expiry."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[bytes, float]] = {}

    async def get(self, key: str) -> bytes | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= time.monotonic():
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        self._entries[key] = (value, time.monotonic() + ttl_seconds)

    async def remove(self, key: str) -> None:
        self._entries.pop(key, None)

    async def close(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry[1] > time.monotonic()


def build_cache(config: Settings) -> DistributedCache:
    """Pick the cache backend named by `CACHE_BACKEND`."""
    if config.CACHE_BACKEND == "memory":
        logger.info("Using in-process permission cache")
        return MemoryCache()
    logger.info("Using Redis permission cache at %s", config.REDIS_URL)
    return RedisCache.from_url(config.REDIS_URL)
