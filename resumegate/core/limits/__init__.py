"""Shared counter store abstractions.

Every piece of cross-request state (rate-limit windows, suspicious flags,
daily AI counters, cached permission snapshots, the premium access log) lives
in a counter store. Two backends exist: an in-process store for tests and
single-worker development, and Redis for real deployments.

Usage:
    from resumegate.core.limits.factory import get_counter_store

    # In app lifespan:
    store = get_counter_store(settings)

    # In services:
    count = await store.increment("rate-limit:ai:123:count")
    if count == 1:
        await store.expire("rate-limit:ai:123:count", 86400)
"""

from __future__ import annotations

from typing import Protocol

__all__ = [
    "CounterStore",
    "CounterStoreError",
]


class CounterStoreError(Exception):
    """Raised by any backend when a store operation cannot be completed.

    Timeouts and connection failures are reported the same way; callers
    decide whether to fail open (rate limiting) or closed (quotas).
    """


class CounterStore(Protocol):
    """Protocol for counter store backends.

    Mirrors the subset of Redis semantics the services rely on. Each call is
    atomic on its own key; nothing is atomic across keys.
    """

    async def increment(self, key: str) -> int:
        """Atomically add one to ``key`` (created at 0) and return the new value.

        Does not touch an existing TTL.
        """
        ...

    async def expire(self, key: str, seconds: int) -> bool:
        """Set the TTL of an existing key. Returns False if the key is missing."""
        ...

    async def get_ttl(self, key: str) -> int:
        """Remaining TTL in seconds; -2 if missing, -1 if the key never expires."""
        ...

    async def get(self, key: str) -> str | None:
        ...

    async def set_with_ttl(self, key: str, value: str, seconds: int) -> None:
        ...

    async def push_front(self, key: str, value: str) -> int:
        """Prepend to the list at ``key`` and return the new length."""
        ...

    async def trim_list(self, key: str, start: int, stop: int) -> None:
        """Keep only elements ``start..stop`` (inclusive, negative from the end)."""
        ...

    async def read_list(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        ...

    async def delete(self, key: str) -> int:
        ...

    async def exists(self, key: str) -> bool:
        ...

    async def aclose(self) -> None:
        ...
