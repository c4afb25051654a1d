"""
Catalog cache maintenance.

Inspect, sweep, clear, or warm the persisted cache tier. Can be run as a
standalone script or called from a scheduler.
"""

import argparse
import asyncio
import logging

from cardbinder.config import SUPPORTED_LANGUAGES, Settings, settings
from cardbinder.main import build_cache
from cardbinder.models.failure import CatalogError
from cardbinder.services.catalog import CatalogClient
from cardbinder.services.tcg_cache import TTLCache

logger = logging.getLogger(__name__)


def show_stats(cache: TTLCache) -> None:
    """Log cache occupancy."""
    stats = cache.stats()
    logger.info(
        "Cache: %d in memory, %d persisted, capacity %d",
        stats.memory_count,
        stats.persisted_count,
        stats.capacity,
    )


def run_cleanup(cache: TTLCache) -> int:
    """Remove expired entries. Returns the number removed."""
    removed = cache.cleanup()
    logger.info("Removed %d expired cache entries", removed)
    return removed


def run_clear(cache: TTLCache) -> None:
    """Remove every cache entry under the configured prefix."""
    cache.clear()
    logger.info("Cleared catalog cache")


async def warm_language(
    cache: TTLCache,
    language: str,
    set_ids: list[str] | None = None,
    app_settings: Settings = settings,
) -> int:
    """
    Prefetch the set list and set card lists for a language.

    Args:
        cache: Cache to populate
        language: Catalog language
        set_ids: Sets to prefetch. If None, only the set list is fetched.
        app_settings: Catalog endpoint configuration

    Returns:
        Number of sets whose cards were cached
    """
    logger.info("Warming catalog cache for %s...", language)
    warmed = 0

    async with CatalogClient(
        cache,
        base_url=app_settings.catalog_base_url,
        timeout=app_settings.catalog_timeout_seconds,
        fallback_language=app_settings.fallback_language,
    ) as catalog:
        try:
            sets = await catalog.list_sets(language)
        except CatalogError as e:
            logger.error("Failed to list sets for %s: %s", language, e.message)
            return 0
        logger.info("Cached %d sets for %s", len(sets), language)

        for set_id in set_ids or []:
            try:
                card_set = await catalog.get_set(set_id, language)
            except CatalogError as e:
                logger.warning("Skipping set %s: %s", set_id, e.message)
                continue
            logger.info("Cached %d cards for %s", len(card_set.cards), set_id)
            warmed += 1

    return warmed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Catalog cache maintenance")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("stats", help="Show cache occupancy")
    commands.add_parser("cleanup", help="Remove expired entries")
    commands.add_parser("clear", help="Remove every cache entry")

    warm = commands.add_parser("warm", help="Prefetch catalog data")
    warm.add_argument("--language", default=settings.default_language, choices=SUPPORTED_LANGUAGES)
    warm.add_argument("--set", dest="set_ids", action="append", default=[], help="Set ID")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = build_parser().parse_args(argv)
    cache = build_cache(settings)

    if args.command == "stats":
        show_stats(cache)
    elif args.command == "cleanup":
        run_cleanup(cache)
    elif args.command == "clear":
        run_clear(cache)
    elif args.command == "warm":
        asyncio.run(warm_language(cache, args.language, args.set_ids))


if __name__ == "__main__":
    main()
