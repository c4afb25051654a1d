"""
Two-tier TTL cache for card-catalog responses.

Tier 1 is an in-process dict bounded by capacity (oldest insertion evicted).
Tier 2 is a persisted key/value store, namespaced by a fixed prefix.

INVARIANT: An entry is valid iff now - stored_at < ttl.
INVARIANT: Correctness never depends on the memory tier; a valid entry found
only in the persisted tier is promoted back into memory on read.

The persisted tier is best-effort: its failures are logged, never raised.
"""

import asyncio
import contextlib
import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from cardbinder.models.failure import PersistedStoreError
from cardbinder.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100
DEFAULT_TTL_SECONDS = 5 * 60.0
DEFAULT_SWEEP_INTERVAL_SECONDS = 10 * 60.0
DEFAULT_KEY_PREFIX = "tcg_cache_"


def generate_key(namespace: str, language: str, params: Mapping[str, Any] | None = None) -> str:
    """
    Build a deterministic cache key.

    Parameter keys are sorted so the same logical query always maps to the
    same key regardless of call-site ordering.

    Example:
        generate_key("cards", "en", {"set": "base1", "page": 2})
        -> "en:cards?page=2&set=base1"
    """
    if not params:
        return f"{language}:{namespace}"

    query = "&".join(f"{name}={params[name]}" for name in sorted(params))
    return f"{language}:{namespace}?{query}"


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """
    An immutable cached value with its insertion time.

    Attributes:
        value: JSON-serializable payload
        stored_at: Insertion time in epoch seconds
        ttl: Seconds after insertion during which the entry is valid
    """

    value: Any
    stored_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.stored_at < self.ttl

    def to_json(self) -> str:
        return json.dumps({"data": self.value, "timestamp": self.stored_at, "ttl": self.ttl})

    @classmethod
    def from_json(cls, raw: str) -> "CacheEntry":
        """
        Parse a persisted entry.

        Raises:
            ValueError: If the payload is not a well-formed entry
        """
        payload = json.loads(raw)
        if not isinstance(payload, dict) or "timestamp" not in payload:
            raise ValueError("Cache entry is missing its timestamp")
        try:
            stored_at = float(payload["timestamp"])
            raw_ttl = payload.get("ttl")
            ttl = DEFAULT_TTL_SECONDS if raw_ttl is None else float(raw_ttl)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Cache entry has invalid timing fields: {e}") from e
        return cls(value=payload.get("data"), stored_at=stored_at, ttl=ttl)


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Read-only snapshot of cache occupancy."""

    memory_count: int
    persisted_count: int
    capacity: int


class TTLCache:
    """
    Memory + persisted cache with per-entry expiry.

    Constructed once at the composition root and passed to the services
    that need it.

    Usage:
        cache = TTLCache(MemoryKeyValueStore())
        key = generate_key("sets", "en")
        sets = cache.get(key)
        if sets is None:
            sets = await fetch_sets()
            cache.set(key, sets)
    """

    def __init__(
        self,
        store: KeyValueStore,
        capacity: int = DEFAULT_CAPACITY,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        prefix: str = DEFAULT_KEY_PREFIX,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"Cache capacity must be at least 1, got {capacity}")
        self.store = store
        self.capacity = capacity
        self.default_ttl = default_ttl
        self.prefix = prefix
        self._clock = clock
        self._memory: dict[str, CacheEntry] = {}

    def _storage_key(self, key: str) -> str:
        return self.prefix + key

    def _remember(self, key: str, entry: CacheEntry) -> None:
        """Insert into the memory tier, evicting the oldest insertion if full."""
        if key in self._memory:
            del self._memory[key]
        elif len(self._memory) >= self.capacity:
            oldest = next(iter(self._memory))
            del self._memory[oldest]
            logger.debug("cache_memory_evicted: %s", oldest)
        self._memory[key] = entry

    def _read_persisted(self, key: str) -> CacheEntry | None:
        storage_key = self._storage_key(key)
        try:
            raw = self.store.get_item(storage_key)
            if raw is None:
                return None
            return CacheEntry.from_json(raw)
        except ValueError:
            logger.warning("CACHE_ENTRY_CORRUPT", extra={"key": key})
            self._remove_persisted(storage_key)
            return None
        except PersistedStoreError as e:
            logger.warning("CACHE_PERSIST_READ_FAILED", extra={"key": key, "error": str(e)})
            return None

    def _remove_persisted(self, storage_key: str) -> None:
        try:
            self.store.remove_item(storage_key)
        except PersistedStoreError as e:
            logger.warning(
                "CACHE_PERSIST_REMOVE_FAILED", extra={"key": storage_key, "error": str(e)}
            )

    def _persisted_keys(self) -> list[str]:
        try:
            return [k for k in self.store.keys() if k.startswith(self.prefix)]
        except PersistedStoreError as e:
            logger.warning("CACHE_PERSIST_LIST_FAILED", extra={"error": str(e)})
            return []

    def get(self, key: str) -> Any | None:
        """
        Look up a value.

        Checks memory first, then the persisted tier. Expired entries are
        removed from whichever tier they were found in.

        Returns:
            The cached value, or None on miss.
        """
        now = self._clock()

        entry = self._memory.get(key)
        if entry is not None:
            if entry.is_valid(now):
                return entry.value
            del self._memory[key]

        persisted = self._read_persisted(key)
        if persisted is None:
            return None
        if not persisted.is_valid(now):
            self._remove_persisted(self._storage_key(key))
            return None

        self._remember(key, persisted)
        return persisted.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """
        Store a value in both tiers, replacing any previous entry.

        A persisted-tier failure (quota, I/O) is logged and the value stays
        available from memory. Any older persisted entry for the key is
        removed so it can never be promoted over the new value.
        """
        entry = CacheEntry(
            value=value,
            stored_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )
        self._remember(key, entry)

        try:
            self.store.set_item(self._storage_key(key), entry.to_json())
        except PersistedStoreError as e:
            logger.warning("CACHE_PERSIST_FAILED", extra={"key": key, "error": str(e)})
            self._remove_persisted(self._storage_key(key))
        except TypeError as e:
            # Value is not JSON-serializable; keep it memory-only
            logger.warning("CACHE_PERSIST_UNSERIALIZABLE", extra={"key": key, "error": str(e)})
            self._remove_persisted(self._storage_key(key))

    def clear(self) -> None:
        """Empty the memory tier and every persisted key under the prefix."""
        self._memory.clear()
        for storage_key in self._persisted_keys():
            self._remove_persisted(storage_key)

    def cleanup(self) -> int:
        """
        Remove expired entries from both tiers.

        Corrupt persisted entries are removed as well.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        removed = 0

        for key, entry in list(self._memory.items()):
            if not entry.is_valid(now):
                self._memory.pop(key, None)
                removed += 1

        for storage_key in self._persisted_keys():
            try:
                raw = self.store.get_item(storage_key)
            except PersistedStoreError as e:
                logger.warning(
                    "CACHE_PERSIST_READ_FAILED", extra={"key": storage_key, "error": str(e)}
                )
                continue
            if raw is None:
                continue
            try:
                expired = not CacheEntry.from_json(raw).is_valid(now)
            except ValueError:
                expired = True
            if expired:
                self._remove_persisted(storage_key)
                removed += 1

        return removed

    def stats(self) -> CacheStats:
        return CacheStats(
            memory_count=len(self._memory),
            persisted_count=len(self._persisted_keys()),
            capacity=self.capacity,
        )

    def memory_keys(self) -> list[str]:
        """Keys currently held in the memory tier, oldest insertion first."""
        return list(self._memory)

    def evict_memory(self) -> None:
        """Drop the memory tier only, as after a process restart."""
        self._memory.clear()


class CacheSweeper:
    """
    Background task that periodically removes expired cache entries.

    Usage:
        sweeper = CacheSweeper(cache, interval=600)
        sweeper.start()
        ...
        await sweeper.stop()
    """

    def __init__(
        self, cache: TTLCache, interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS
    ) -> None:
        if interval <= 0:
            raise ValueError(f"Sweep interval must be positive, got {interval}")
        self.cache = cache
        self.interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start sweeping. Requires a running event loop; no-op if already running."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        """Stop sweeping. Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            removed = self.cache.cleanup()
            logger.info("CACHE_SWEEP_COMPLETE", extra={"removed": removed})
