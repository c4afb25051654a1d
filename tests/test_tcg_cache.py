"""Tests for the two-tier TTL cache."""

import asyncio
import json
import time

import pytest

from cardbinder.models.failure import PersistedStoreError
from cardbinder.services.kv_store import MemoryKeyValueStore, create_kv_store
from cardbinder.services.tcg_cache import (
    CacheEntry,
    CacheSweeper,
    TTLCache,
    generate_key,
)


class ReadOnlyStore(MemoryKeyValueStore):
    """Store whose writes fail once `read_only` is set."""

    read_only = False

    def set_item(self, key: str, value: str) -> None:
        if self.read_only:
            raise PersistedStoreError("storage is read-only")
        super().set_item(key, value)


class FailingStore(MemoryKeyValueStore):
    """Store whose every operation fails."""

    def get_item(self, key: str) -> str | None:
        raise PersistedStoreError("storage unavailable")

    def set_item(self, key: str, value: str) -> None:
        raise PersistedStoreError("storage unavailable")

    def remove_item(self, key: str) -> None:
        raise PersistedStoreError("storage unavailable")

    def keys(self) -> list[str]:
        raise PersistedStoreError("storage unavailable")


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def cache(kv: MemoryKeyValueStore, clock) -> TTLCache:
    return TTLCache(kv, capacity=3, default_ttl=300.0, clock=clock)


class TestGenerateKey:
    def test_without_params(self) -> None:
        """No query suffix when there are no params."""
        assert generate_key("sets", "en") == "en:sets"
        assert generate_key("sets", "en", {}) == "en:sets"

    def test_params_sorted(self) -> None:
        """Params are sorted by name."""
        key = generate_key("cards", "it", {"set": "base1", "page": 2})

        assert key == "it:cards?page=2&set=base1"

    def test_insertion_order_irrelevant(self) -> None:
        """Equal param maps produce equal keys."""
        first = generate_key("cards", "en", {"a": 1, "b": "x", "c": True})
        second = generate_key("cards", "en", {"c": True, "a": 1, "b": "x"})

        assert first == second

    def test_language_distinguishes(self) -> None:
        """Same query in another language is another key."""
        assert generate_key("sets", "en") != generate_key("sets", "fr")


class TestCacheEntry:
    def test_validity_boundary(self) -> None:
        """Valid strictly before stored_at + ttl."""
        entry = CacheEntry(value=1, stored_at=100.0, ttl=10.0)

        assert entry.is_valid(109.9)
        assert not entry.is_valid(110.0)

    def test_json_fields(self) -> None:
        """Persisted form uses data/timestamp/ttl."""
        entry = CacheEntry(value={"a": 1}, stored_at=5.0, ttl=60.0)

        assert json.loads(entry.to_json()) == {"data": {"a": 1}, "timestamp": 5.0, "ttl": 60.0}

    def test_zero_ttl_survives_round_trip(self) -> None:
        """A stored ttl of 0 stays 0 instead of falling back to the default."""
        entry = CacheEntry.from_json(CacheEntry(value=1, stored_at=5.0, ttl=0.0).to_json())

        assert entry.ttl == 0.0
        assert not entry.is_valid(5.0)

    def test_missing_ttl_uses_default(self) -> None:
        entry = CacheEntry.from_json('{"data": 1, "timestamp": 5.0}')

        assert entry.ttl == 300.0

    def test_from_json_rejects_garbage(self) -> None:
        """Malformed payloads raise ValueError."""
        with pytest.raises(ValueError):
            CacheEntry.from_json("not json")
        with pytest.raises(ValueError):
            CacheEntry.from_json('{"data": 1}')
        with pytest.raises(ValueError):
            CacheEntry.from_json('{"data": 1, "timestamp": "yesterday"}')


class TestGetSet:
    def test_miss_returns_none(self, cache: TTLCache) -> None:
        """Unknown keys are a miss, not an error."""
        assert cache.get("en:sets") is None

    def test_hit_returns_value(self, cache: TTLCache) -> None:
        """Stored values come back unchanged."""
        cache.set("en:sets", [{"id": "base1"}])

        assert cache.get("en:sets") == [{"id": "base1"}]

    def test_set_writes_both_tiers(self, cache: TTLCache, kv: MemoryKeyValueStore) -> None:
        """Values land in memory and in the prefixed persisted store."""
        cache.set("en:sets", [1, 2])

        assert cache.memory_keys() == ["en:sets"]
        assert json.loads(kv.get_item("tcg_cache_en:sets"))["data"] == [1, 2]

    def test_set_replaces(self, cache: TTLCache) -> None:
        """A second set overwrites the first."""
        cache.set("k", "old")
        cache.set("k", "new")

        assert cache.get("k") == "new"
        assert cache.stats().memory_count == 1

    def test_expires_after_ttl(self, cache: TTLCache, clock) -> None:
        """Entries vanish once their TTL has elapsed, without cleanup()."""
        cache.set("k", "v", ttl=0.1)
        assert cache.get("k") == "v"

        clock.advance(0.1)

        assert cache.get("k") is None

    def test_zero_ttl_never_served(self, cache: TTLCache) -> None:
        """An entry stored with ttl=0 is expired in both tiers."""
        cache.set("k", "v", ttl=0)

        assert cache.get("k") is None
        assert cache.memory_keys() == []

    def test_expires_in_real_time(self, kv: MemoryKeyValueStore) -> None:
        """Default wall clock honours short TTLs."""
        cache = TTLCache(kv)
        cache.set("k", "v", ttl=0.1)
        assert cache.get("k") == "v"

        time.sleep(0.15)

        assert cache.get("k") is None

    def test_expired_entry_removed_from_both_tiers(
        self, cache: TTLCache, kv: MemoryKeyValueStore, clock
    ) -> None:
        """Expired entries are dropped eagerly when found."""
        cache.set("k", "v", ttl=1.0)
        clock.advance(2.0)

        assert cache.get("k") is None
        assert cache.memory_keys() == []
        assert kv.get_item("tcg_cache_k") is None

    def test_default_ttl_applies(self, cache: TTLCache, clock) -> None:
        """Without an explicit ttl the default of the cache is used."""
        cache.set("k", "v")

        clock.advance(299.0)
        assert cache.get("k") == "v"

        clock.advance(1.0)
        assert cache.get("k") is None


class TestTierPromotion:
    def test_persisted_entry_promoted(self, cache: TTLCache) -> None:
        """After a memory wipe the value is served from tier 2 and re-promoted."""
        cache.set("k", {"cards": 102})
        cache.evict_memory()
        assert "k" not in cache.memory_keys()

        assert cache.get("k") == {"cards": 102}
        assert "k" in cache.memory_keys()

    def test_promotion_survives_new_instance(self, kv: MemoryKeyValueStore, clock) -> None:
        """A fresh cache over the same store sees earlier entries."""
        TTLCache(kv, clock=clock).set("k", "v")

        restarted = TTLCache(kv, clock=clock)

        assert restarted.get("k") == "v"
        assert restarted.memory_keys() == ["k"]

    def test_promoted_entry_keeps_original_age(self, cache: TTLCache, clock) -> None:
        """Promotion does not reset the entry's TTL."""
        cache.set("k", "v", ttl=10.0)
        cache.evict_memory()
        clock.advance(5.0)
        assert cache.get("k") == "v"

        clock.advance(5.0)

        assert cache.get("k") is None

    def test_corrupt_persisted_entry_is_miss(
        self, cache: TTLCache, kv: MemoryKeyValueStore
    ) -> None:
        """Unparseable persisted data is removed and treated as absent."""
        kv.set_item("tcg_cache_k", "{broken")

        assert cache.get("k") is None
        assert kv.get_item("tcg_cache_k") is None


class TestCapacity:
    def test_oldest_insertion_evicted(self, cache: TTLCache) -> None:
        """Inserting capacity + 1 keys evicts the first from memory."""
        for key in ["a", "b", "c", "d"]:
            cache.set(key, key.upper())

        assert cache.memory_keys() == ["b", "c", "d"]

    def test_evicted_entry_still_reachable_via_tier_two(self, cache: TTLCache) -> None:
        """Eviction from memory does not lose the value."""
        for key in ["a", "b", "c", "d"]:
            cache.set(key, key.upper())

        assert cache.get("a") == "A"
        assert "a" in cache.memory_keys()

    def test_eviction_is_insertion_order_not_lru(self, cache: TTLCache) -> None:
        """Reading an entry does not protect it from eviction."""
        for key in ["a", "b", "c"]:
            cache.set(key, key)
        cache.get("a")

        cache.set("d", "d")

        assert "a" not in cache.memory_keys()

    def test_overwrite_does_not_evict(self, cache: TTLCache) -> None:
        """Replacing an existing key at capacity keeps the others."""
        for key in ["a", "b", "c"]:
            cache.set(key, key)

        cache.set("b", "B")

        assert sorted(cache.memory_keys()) == ["a", "b", "c"]

    def test_capacity_must_be_positive(self, kv: MemoryKeyValueStore) -> None:
        with pytest.raises(ValueError):
            TTLCache(kv, capacity=0)


class TestPersistenceFailures:
    def test_quota_exceeded_degrades_to_memory(self, clock) -> None:
        """A full persisted store never breaks set/get."""
        kv = MemoryKeyValueStore(quota_bytes=64)
        cache = TTLCache(kv, clock=clock)

        cache.set("k", "x" * 500)

        assert cache.get("k") == "x" * 500
        assert kv.keys() == []

    def test_failing_store_never_raises(self, clock) -> None:
        """Every operation survives a broken persisted tier."""
        cache = TTLCache(FailingStore(), clock=clock)

        cache.set("k", "v")
        assert cache.get("k") == "v"
        assert cache.get("missing") is None
        assert cache.cleanup() == 0
        assert cache.stats().persisted_count == 0
        cache.clear()
        assert cache.get("k") is None

    def test_failed_write_never_resurrects_old_value(self, clock) -> None:
        """After a failed persisted write, eviction does not expose the previous value."""
        store = ReadOnlyStore()
        cache = TTLCache(store, capacity=1, clock=clock)
        cache.set("k", "old")

        store.read_only = True
        cache.set("k", "new")
        assert cache.get("k") == "new"

        cache.set("other", "x")

        assert cache.get("k") is None
        assert store.get_item("tcg_cache_k") is None

    def test_quota_exceeded_replacement_drops_old_value(self, clock) -> None:
        """A replacement too large for the quota removes the smaller persisted original."""
        kv = MemoryKeyValueStore(quota_bytes=200)
        cache = TTLCache(kv, capacity=1, clock=clock)
        cache.set("k", "small")

        cache.set("k", "x" * 500)
        cache.set("other", 1)

        assert cache.get("k") is None

    def test_unserializable_replacement_drops_old_value(
        self, cache: TTLCache, kv: MemoryKeyValueStore
    ) -> None:
        cache.set("k", [1, 2])

        cache.set("k", {1, 2})
        cache.evict_memory()

        assert cache.get("k") is None
        assert kv.keys() == []

    def test_unserializable_value_kept_in_memory(
        self, cache: TTLCache, kv: MemoryKeyValueStore
    ) -> None:
        """Values that cannot be persisted are still cached in memory."""
        value = {1, 2, 3}

        cache.set("k", value)

        assert cache.get("k") == value
        assert kv.keys() == []


class TestClear:
    def test_clear_removes_namespaced_entries_only(
        self, cache: TTLCache, kv: MemoryKeyValueStore
    ) -> None:
        """Unrelated persisted keys survive clear()."""
        kv.set_item("user_prefs", "dark")
        cache.set("a", 1)
        cache.set("b", 2)

        cache.clear()

        assert cache.get("a") is None
        assert cache.stats().memory_count == 0
        assert kv.keys() == ["user_prefs"]


class TestCleanup:
    def test_removes_expired_from_both_tiers(
        self, cache: TTLCache, kv: MemoryKeyValueStore, clock
    ) -> None:
        """Expired entries go, fresh ones stay."""
        cache.set("short", 1, ttl=10.0)
        cache.set("long", 2, ttl=1000.0)
        clock.advance(20.0)

        removed = cache.cleanup()

        # one from memory, one from the persisted tier
        assert removed == 2
        assert cache.memory_keys() == ["long"]
        assert kv.keys() == ["tcg_cache_long"]

    def test_removes_corrupt_persisted_entries(
        self, cache: TTLCache, kv: MemoryKeyValueStore
    ) -> None:
        """Corrupt entries under the prefix are swept."""
        kv.set_item("tcg_cache_bad", "???")
        kv.set_item("other", "???")

        cache.cleanup()

        assert kv.keys() == ["other"]

    def test_idempotent(self, cache: TTLCache, clock) -> None:
        """A second sweep finds nothing."""
        cache.set("k", 1, ttl=1.0)
        clock.advance(5.0)

        cache.cleanup()

        assert cache.cleanup() == 0


class TestStats:
    def test_counts_tiers(self, cache: TTLCache, kv: MemoryKeyValueStore) -> None:
        """Stats reflect each tier separately."""
        for key in ["a", "b", "c", "d"]:
            cache.set(key, key)
        kv.set_item("unrelated", "1")

        stats = cache.stats()

        assert stats.memory_count == 3
        assert stats.persisted_count == 4
        assert stats.capacity == 3


class TestSqlBackedCache:
    def test_round_trip_through_sqlite(self, clock) -> None:
        """The SQL store works as the persisted tier."""
        cache = TTLCache(create_kv_store("sqlite://"), clock=clock)
        cache.set("en:sets", [{"id": "base1"}])
        cache.evict_memory()

        assert cache.get("en:sets") == [{"id": "base1"}]
        assert cache.stats().persisted_count == 1


class TestCacheSweeper:
    async def test_sweeps_periodically(self, cache: TTLCache, clock) -> None:
        """The background task removes expired entries on its interval."""
        cache.set("k", 1, ttl=1.0)
        clock.advance(5.0)
        sweeper = CacheSweeper(cache, interval=0.01)

        sweeper.start()
        await asyncio.sleep(0.05)
        await sweeper.stop()

        assert cache.stats().memory_count == 0
        assert cache.stats().persisted_count == 0

    async def test_start_and_stop_idempotent(self, cache: TTLCache) -> None:
        """Repeated start/stop calls are harmless."""
        sweeper = CacheSweeper(cache, interval=60.0)

        sweeper.start()
        sweeper.start()
        assert sweeper.running

        await sweeper.stop()
        await sweeper.stop()
        assert not sweeper.running

    def test_interval_must_be_positive(self, cache: TTLCache) -> None:
        with pytest.raises(ValueError):
            CacheSweeper(cache, interval=0)
