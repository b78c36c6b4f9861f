"""In-memory counter store implementation.

Per-process only: use it for tests and single-worker development. For
multi-worker deployments use the Redis store from the factory.
"""

from __future__ import annotations

import math
import time
from asyncio import Lock
from typing import Callable

from resumegate.core.limits import CounterStore, CounterStoreError


class InMemoryCounterStore(CounterStore):
    """Dictionary-backed store with Redis-like TTL semantics.

    Expired keys are dropped lazily on access. The lock only emulates the
    per-command atomicity Redis provides.
    """

    def __init__(self, clock: Callable[[], float] | None = None):
        """Initialize the store.

        Args:
            clock: Returns the current time in epoch seconds. Tests pass a
                controllable clock so windows can be advanced deterministically.
        """
        self._clock = clock or time.time
        self._values: dict[str, str | list[str]] = {}
        self._expires_at: dict[str, float] = {}
        self._lock = Lock()

    def _purge(self, key: str) -> None:
        deadline = self._expires_at.get(key)
        if deadline is not None and deadline <= self._clock():
            self._values.pop(key, None)
            self._expires_at.pop(key, None)

    def _list(self, key: str) -> list[str]:
        value = self._values.get(key)
        if value is None:
            return []
        if not isinstance(value, list):
            raise CounterStoreError(f"WRONGTYPE key {key} does not hold a list")
        return value

    async def increment(self, key: str) -> int:
        async with self._lock:
            self._purge(key)
            raw = self._values.get(key, "0")
            if isinstance(raw, list):
                raise CounterStoreError(f"WRONGTYPE key {key} holds a list")
            try:
                value = int(raw) + 1
            except ValueError as exc:
                raise CounterStoreError(f"value at {key} is not an integer") from exc
            self._values[key] = str(value)
            return value

    async def expire(self, key: str, seconds: int) -> bool:
        async with self._lock:
            self._purge(key)
            if key not in self._values:
                return False
            self._expires_at[key] = self._clock() + seconds
            return True

    async def get_ttl(self, key: str) -> int:
        async with self._lock:
            self._purge(key)
            if key not in self._values:
                return -2
            deadline = self._expires_at.get(key)
            if deadline is None:
                return -1
            return max(0, math.ceil(deadline - self._clock()))

    async def get(self, key: str) -> str | None:
        async with self._lock:
            self._purge(key)
            value = self._values.get(key)
            if isinstance(value, list):
                raise CounterStoreError(f"WRONGTYPE key {key} holds a list")
            return value

    async def set_with_ttl(self, key: str, value: str, seconds: int) -> None:
        async with self._lock:
            self._values[key] = str(value)
            self._expires_at[key] = self._clock() + seconds

    async def push_front(self, key: str, value: str) -> int:
        async with self._lock:
            self._purge(key)
            items = self._list(key)
            items.insert(0, str(value))
            self._values[key] = items
            return len(items)

    async def trim_list(self, key: str, start: int, stop: int) -> None:
        async with self._lock:
            self._purge(key)
            if key not in self._values:
                return
            items = self._list(key)
            size = len(items)
            lo = start if start >= 0 else max(0, size + start)
            hi = stop if stop >= 0 else size + stop
            kept = items[lo:hi + 1]
            if kept:
                self._values[key] = kept
            else:
                self._values.pop(key, None)
                self._expires_at.pop(key, None)

    async def read_list(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        async with self._lock:
            self._purge(key)
            items = self._list(key)
            size = len(items)
            lo = start if start >= 0 else max(0, size + start)
            hi = stop if stop >= 0 else size + stop
            return list(items[lo:hi + 1])

    async def delete(self, key: str) -> int:
        async with self._lock:
            self._purge(key)
            self._expires_at.pop(key, None)
            return 1 if self._values.pop(key, None) is not None else 0

    async def exists(self, key: str) -> bool:
        async with self._lock:
            self._purge(key)
            return key in self._values

    async def aclose(self) -> None:
        async with self._lock:
            self._values.clear()
            self._expires_at.clear()
