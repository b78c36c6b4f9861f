"""Factory functions for the shared counter store.

Returns the implementation matching the configured backend (memory|redis).

Usage:
    from resumegate.core.limits.factory import get_counter_store

    store = get_counter_store(settings)
"""

from __future__ import annotations

import asyncio

import redis.asyncio as redis
from redis.exceptions import RedisError

from resumegate.config.settings import Settings
from resumegate.core.limits import CounterStore, CounterStoreError
from resumegate.core.limits.memory import InMemoryCounterStore


def create_counter_store(
    backend: str = "memory",
    *,
    redis_url: str = "",
    socket_timeout: float = 0.5,
) -> CounterStore:
    """Get a counter store implementation.

    Args:
        backend: Backend type ("memory" or "redis")
        redis_url: Redis connection URL (required for redis backend)
        socket_timeout: Per-command timeout for the redis backend

    Raises:
        ValueError: If redis backend selected but redis_url not provided
    """
    if backend == "memory":
        return InMemoryCounterStore()

    if backend == "redis":
        if not redis_url:
            raise ValueError("redis_url is required when limits_backend=redis")
        return _RedisCounterStore(redis_url=redis_url, socket_timeout=socket_timeout)

    raise ValueError(f"Unknown limits_backend: {backend}. Use 'memory' or 'redis'")


def get_counter_store(settings: Settings) -> CounterStore:
    """Build the counter store described by settings (app startup helper)."""
    return create_counter_store(
        settings.limits_backend,
        redis_url=settings.redis_url,
        socket_timeout=settings.redis_socket_timeout_seconds,
    )


class _RedisCounterStore(CounterStore):
    """Redis-backed counter store.

    Every command is a single round-trip, so each call inherits Redis'
    per-command atomicity. Redis and timeout failures surface as
    CounterStoreError.
    """

    def __init__(self, redis_url: str, socket_timeout: float = 0.5):
        self._redis_url = redis_url
        self._socket_timeout = socket_timeout
        self._client: redis.Redis | None = None

    def _get_client(self) -> redis.Redis:
        """Get or create Redis client (lazy initialization)."""
        if self._client is None:
            self._client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
            )
        return self._client

    async def _run(self, command: str, *args):
        client = self._get_client()
        try:
            return await getattr(client, command)(*args)
        except (RedisError, asyncio.TimeoutError, OSError) as exc:
            raise CounterStoreError(f"redis {command} failed: {exc}") from exc

    async def increment(self, key: str) -> int:
        return int(await self._run("incr", key))

    async def expire(self, key: str, seconds: int) -> bool:
        return bool(await self._run("expire", key, seconds))

    async def get_ttl(self, key: str) -> int:
        return int(await self._run("ttl", key))

    async def get(self, key: str) -> str | None:
        return await self._run("get", key)

    async def set_with_ttl(self, key: str, value: str, seconds: int) -> None:
        await self._run("set", key, value, seconds)

    async def push_front(self, key: str, value: str) -> int:
        return int(await self._run("lpush", key, value))

    async def trim_list(self, key: str, start: int, stop: int) -> None:
        await self._run("ltrim", key, start, stop)

    async def read_list(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        return list(await self._run("lrange", key, start, stop))

    async def delete(self, key: str) -> int:
        return int(await self._run("delete", key))

    async def exists(self, key: str) -> bool:
        return bool(await self._run("exists", key))

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
