"""Unit tests for the in-memory counter store."""

import asyncio

import pytest

from resumegate.core.limits import CounterStoreError
from resumegate.core.limits.memory import InMemoryCounterStore


class TestCounters:
    @pytest.mark.asyncio
    async def test_increment_creates_at_zero(self, store):
        assert await store.increment("k") == 1
        assert await store.increment("k") == 2
        assert await store.get("k") == "2"

    @pytest.mark.asyncio
    async def test_ttl_sentinels(self, store):
        assert await store.get_ttl("missing") == -2
        await store.increment("forever")
        assert await store.get_ttl("forever") == -1

    @pytest.mark.asyncio
    async def test_increment_keeps_existing_ttl(self, store, clock):
        await store.increment("k")
        assert await store.expire("k", 60)
        clock.advance(seconds=15)
        await store.increment("k")

        assert await store.get_ttl("k") == 45

    @pytest.mark.asyncio
    async def test_key_expires(self, store, clock):
        await store.set_with_ttl("flag", "1", 10)
        clock.advance(seconds=10)

        assert not await store.exists("flag")
        assert await store.get("flag") is None
        assert await store.increment("flag") == 1

    @pytest.mark.asyncio
    async def test_expire_missing_key(self, store):
        assert await store.expire("missing", 60) is False

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.set_with_ttl("k", "v", 60)
        assert await store.delete("k") == 1
        assert await store.delete("k") == 0

    @pytest.mark.asyncio
    async def test_non_integer_value_rejected(self, store):
        await store.set_with_ttl("k", "abc", 60)
        with pytest.raises(CounterStoreError):
            await store.increment("k")

    @pytest.mark.asyncio
    async def test_concurrent_increments(self):
        store = InMemoryCounterStore()
        results = await asyncio.gather(*(store.increment("k") for _ in range(50)))

        assert sorted(results) == list(range(1, 51))


class TestLists:
    @pytest.mark.asyncio
    async def test_push_front_is_most_recent_first(self, store):
        for value in ("a", "b", "c"):
            await store.push_front("l", value)

        assert await store.read_list("l") == ["c", "b", "a"]
        assert await store.read_list("l", 0, 1) == ["c", "b"]

    @pytest.mark.asyncio
    async def test_trim_is_inclusive(self, store):
        for i in range(12):
            await store.push_front("l", str(i))
        await store.trim_list("l", 0, 9)

        items = await store.read_list("l")
        assert len(items) == 10
        assert items[0] == "11"
        assert items[-1] == "2"

    @pytest.mark.asyncio
    async def test_trim_to_nothing_removes_key(self, store):
        await store.push_front("l", "x")
        await store.trim_list("l", 5, 9)

        assert not await store.exists("l")

    @pytest.mark.asyncio
    async def test_wrong_type(self, store):
        await store.push_front("l", "x")
        with pytest.raises(CounterStoreError):
            await store.increment("l")
        with pytest.raises(CounterStoreError):
            await store.get("l")

    @pytest.mark.asyncio
    async def test_read_missing_list(self, store):
        assert await store.read_list("missing") == []
