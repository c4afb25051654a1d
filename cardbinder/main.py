"""
Composition root.

Builds every long-lived component once per application run and ties their
lifetimes together: the cache and its sweeper, the catalog client, and the
ownership services.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from cardbinder.config import Settings, settings
from cardbinder.db.database import build_engine, build_session_factory, init_db
from cardbinder.db.ownership_store import OwnershipStore
from cardbinder.services.catalog import CatalogClient
from cardbinder.services.collections import CollectionService
from cardbinder.services.kv_store import KeyValueStore, create_kv_store
from cardbinder.services.ownership import OwnershipReadModel
from cardbinder.services.tcg_cache import CacheSweeper, TTLCache

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything a caller needs, constructed once per run."""

    settings: Settings
    engine: AsyncEngine
    cache: TTLCache
    sweeper: CacheSweeper
    catalog: CatalogClient
    ownership_store: OwnershipStore
    ownership: OwnershipReadModel
    collections: CollectionService


def build_cache(app_settings: Settings, store: KeyValueStore | None = None) -> TTLCache:
    """Create the two-tier cache, using the configured persisted store by default."""
    return TTLCache(
        (
            store
            if store is not None
            else create_kv_store(app_settings.cache_store_url, app_settings.cache_quota_bytes)
        ),
        capacity=app_settings.cache_capacity,
        default_ttl=app_settings.cache_ttl_seconds,
        prefix=app_settings.cache_key_prefix,
    )


@asynccontextmanager
async def lifespan(
    app_settings: Settings = settings,
    cache_store: KeyValueStore | None = None,
    engine: AsyncEngine | None = None,
) -> AsyncGenerator[AppContext, None]:
    """
    Application lifespan: build components on entry, release them on exit.

    Usage:
        async with lifespan() as app:
            sets = await app.catalog.list_sets("en")
    """
    db_engine = engine or build_engine(app_settings)
    await init_db(db_engine)
    session_factory = build_session_factory(db_engine)

    cache = build_cache(app_settings, cache_store)
    sweeper = CacheSweeper(cache, interval=app_settings.cache_sweep_interval_seconds)
    catalog = CatalogClient(
        cache,
        base_url=app_settings.catalog_base_url,
        timeout=app_settings.catalog_timeout_seconds,
        fallback_language=app_settings.fallback_language,
    )
    store = OwnershipStore(session_factory)

    context = AppContext(
        settings=app_settings,
        engine=db_engine,
        cache=cache,
        sweeper=sweeper,
        catalog=catalog,
        ownership_store=store,
        ownership=OwnershipReadModel(store),
        collections=CollectionService(
            session_factory, store, catalog, default_language=app_settings.default_language
        ),
    )

    sweeper.start()
    logger.info("%s started", app_settings.app_name)
    try:
        yield context
    finally:
        await sweeper.stop()
        await catalog.aclose()
        if engine is None:
            await db_engine.dispose()
        logger.info("%s stopped", app_settings.app_name)
