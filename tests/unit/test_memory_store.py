"""
Unit Tests for InMemoryCacheStore

Run with:
    pytest tests/unit/test_memory_store.py -v
"""

import pytest

from core.errors import CacheUnavailableError
from storage.keys import CacheKeys
from storage.memory_store import InMemoryCacheStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryCacheStore(clock=clock)


class TestBasicOperations:
    """Tests for get/set/get_all"""

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        """Verify absent keys read as None"""
        assert await store.get("nope") is None

    @pytest.mark.asyncio
    async def test_set_without_ttl_never_expires(self, store, clock):
        """Verify plain set has no expiry"""
        await store.set("k", "v")
        clock.advance(10_000)
        assert await store.get("k") == "v"

    @pytest.mark.asyncio
    async def test_get_all_filters_by_prefix_in_insertion_order(self, store):
        """Verify get_all returns only matching keys, oldest first"""
        await store.set("drift:market:A", "a")
        await store.set("drift:last_update", "1")
        await store.set("drift:market:B", "b")
        assert await store.get_all("drift:market:") == ["a", "b"]


class TestExpiry:
    """Tests for TTL handling"""

    @pytest.mark.asyncio
    async def test_key_expires_after_ttl(self, store, clock):
        """Verify a TTL'd key disappears once its TTL elapses"""
        await store.set_with_ttl("k", "v", 90)
        clock.advance(89)
        assert await store.get("k") == "v"
        clock.advance(1)
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_get_all_skips_expired(self, store, clock):
        """Verify expired keys are not returned by prefix reads"""
        await store.set_with_ttl("p:old", "old", 10)
        clock.advance(5)
        await store.set_with_ttl("p:new", "new", 10)
        clock.advance(6)
        assert await store.get_all("p:") == ["new"]

    @pytest.mark.asyncio
    async def test_ttl_reports_remaining_seconds(self, store, clock):
        """Verify ttl() reports remaining lifetime"""
        await store.set_with_ttl("k", "v", 30)
        clock.advance(10)
        assert store.ttl("k") == pytest.approx(20)
        await store.set("plain", "v")
        assert store.ttl("plain") is None


class TestPipeline:
    """Tests for pipelines"""

    @pytest.mark.asyncio
    async def test_pipeline_buffers_until_execute(self, store):
        """Verify nothing is visible before execute()"""
        pipe = store.pipeline().set_with_ttl("a", "1", 60).set("b", "2")
        assert len(pipe) == 2
        assert await store.get("a") is None

        await pipe.execute()
        assert await store.get("a") == "1"
        assert await store.get("b") == "2"
        assert store.ttl("b") is None

    @pytest.mark.asyncio
    async def test_pipeline_on_closed_store_writes_nothing(self, store):
        """Verify a failed pipeline leaves no partial writes"""
        pipe = store.pipeline().set("a", "1").set("b", "2")
        await store.close()
        with pytest.raises(CacheUnavailableError):
            await pipe.execute()
        assert store._data == {}


class TestLockPrimitives:
    """Tests for set_if_absent and release_lock"""

    @pytest.mark.asyncio
    async def test_set_if_absent_only_first_wins(self, store):
        """Verify only the first caller acquires the key"""
        assert await store.set_if_absent("lock", "t1", 30) is True
        assert await store.set_if_absent("lock", "t2", 30) is False
        assert await store.get("lock") == "t1"

    @pytest.mark.asyncio
    async def test_set_if_absent_after_expiry(self, store, clock):
        """Verify an expired lock can be taken again"""
        await store.set_if_absent("lock", "t1", 30)
        clock.advance(31)
        assert await store.set_if_absent("lock", "t2", 30) is True

    @pytest.mark.asyncio
    async def test_release_requires_matching_token(self, store):
        """Verify release only deletes our own lock"""
        await store.set_if_absent("lock", "mine", 30)
        assert await store.release_lock("lock", "theirs") is False
        assert await store.get("lock") == "mine"
        assert await store.release_lock("lock", "mine") is True
        assert await store.get("lock") is None

    @pytest.mark.asyncio
    async def test_extend_lock_resets_expiry(self, store, clock):
        """Verify the holder can keep its lock alive past the original TTL"""
        await store.set_if_absent("lock", "mine", 30)
        clock.advance(25)
        assert await store.extend_lock("lock", "mine", 30) is True
        clock.advance(25)
        assert await store.get("lock") == "mine"
        assert store.ttl("lock") == pytest.approx(5)

    @pytest.mark.asyncio
    async def test_extend_lock_requires_matching_token(self, store, clock):
        """Verify another caller's lock and an expired lock are left alone"""
        await store.set_if_absent("lock", "theirs", 30)
        assert await store.extend_lock("lock", "mine", 30) is False
        clock.advance(31)
        assert await store.extend_lock("lock", "theirs", 30) is False
        assert await store.get("lock") is None


class TestAdministration:
    """Tests for delete_prefix, health_check and close"""

    @pytest.mark.asyncio
    async def test_delete_prefix_counts_deleted_keys(self, store):
        """Verify delete_prefix removes only matching keys"""
        keys = CacheKeys("drift")
        await store.set(keys.market("A"), "a")
        await store.set(keys.market("B"), "b")
        await store.set(keys.update_status, "{}")

        assert await store.delete_prefix(keys.market_prefix) == 2
        assert await store.get_all(keys.market_prefix) == []
        assert await store.get(keys.update_status) == "{}"

    @pytest.mark.asyncio
    async def test_closed_store_is_unhealthy(self, store):
        """Verify close() flips health and rejects further calls"""
        assert await store.health_check() is True
        await store.close()
        assert await store.health_check() is False
        with pytest.raises(CacheUnavailableError):
            await store.get("k")


class TestCacheKeys:
    """Tests for the key layout"""

    def test_key_layout(self):
        """Verify every key lives under the prefix"""
        keys = CacheKeys("drift")
        assert keys.market("SOL-PERP") == "drift:market:SOL-PERP"
        assert keys.market("SOL-PERP").startswith(keys.market_prefix)
        assert keys.last_update == "drift:last_update"
        assert keys.markets_count == "drift:markets_count"
        assert keys.update_status == "drift:update_status"
        assert keys.refresh_lock == "drift:refresh_lock"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
