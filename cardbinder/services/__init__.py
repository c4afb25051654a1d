"""
CardBinder services.

Catalog caching, card lookup, and ownership tracking.
"""

from cardbinder.services.card_filters import (
    SetBreakdown,
    filter_cards,
    set_breakdown,
    sort_cards,
)
from cardbinder.services.catalog import CatalogClient, SetCards
from cardbinder.services.collections import CollectionService
from cardbinder.services.kv_store import (
    KeyValueStore,
    MemoryKeyValueStore,
    SqlKeyValueStore,
    create_kv_store,
)
from cardbinder.services.ownership import ObservableSet, OwnedCardsFeed, OwnershipReadModel
from cardbinder.services.tcg_cache import (
    CacheEntry,
    CacheStats,
    CacheSweeper,
    TTLCache,
    generate_key,
)

__all__ = [
    "CacheEntry",
    "CacheStats",
    "CacheSweeper",
    "CatalogClient",
    "CollectionService",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "ObservableSet",
    "OwnedCardsFeed",
    "OwnershipReadModel",
    "SetBreakdown",
    "SetCards",
    "SqlKeyValueStore",
    "TTLCache",
    "create_kv_store",
    "filter_cards",
    "generate_key",
    "set_breakdown",
    "sort_cards",
]
