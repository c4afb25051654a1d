"""
Card-catalog client.

Fetches sets and cards per language from the catalog service, normalizes
them into canonical records, and caches the normalized form.

Failures are never cached: a failed fetch leaves the cache unchanged and
raises CatalogError carrying the original message.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from types import TracebackType
from typing import Any, TypeVar

import httpx

from cardbinder.config import SUPPORTED_LANGUAGES
from cardbinder.models.card import Card, CardSet, normalize_card, normalize_set
from cardbinder.models.failure import CatalogError, FailureKind
from cardbinder.services.tcg_cache import TTLCache, generate_key

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_URL = "https://api.tcgdex.net/v2"

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class SetCards:
    """
    Cards of a set, with the language they were actually loaded in.

    is_fallback is True when the requested language had no such set and
    the fallback language was used instead.
    """

    card_set: CardSet
    language: str
    requested_language: str
    is_fallback: bool = False

    @property
    def cards(self) -> tuple[Card, ...]:
        return self.card_set.cards


class CatalogClient:
    """
    Cached access to the card-catalog service.

    Usage:
        async with CatalogClient(cache) as catalog:
            sets = await catalog.list_sets("en")
            base = await catalog.get_set("base1", "en")
    """

    def __init__(
        self,
        cache: TTLCache,
        base_url: str = DEFAULT_CATALOG_URL,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        fallback_language: str = "en",
    ) -> None:
        self.cache = cache
        self.base_url = base_url.rstrip("/")
        self.fallback_language = fallback_language
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": "CardBinder/1.0"},
            follow_redirects=True,
        )

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this catalog created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _fetch_json(self, path: str) -> Any:
        url = f"{self.base_url}/{path}"
        try:
            response = await self._client.get(url)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            kind = FailureKind.NOT_FOUND if status == 404 else FailureKind.CATALOG_UNAVAILABLE
            raise CatalogError(
                f"Catalog request {path} failed: HTTP {status}",
                kind=kind,
                status_code=status,
            ) from e
        except httpx.RequestError as e:
            raise CatalogError(f"Catalog request {path} failed: {e}") from e
        except ValueError as e:
            raise CatalogError(f"Catalog request {path} returned invalid JSON: {e}") from e

    async def _cached(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        decode: Callable[[Any], T],
    ) -> T:
        cached = self.cache.get(key)
        if cached is not None:
            return decode(cached)

        logger.debug("catalog_cache_miss: %s", key)
        encoded = await fetch()
        self.cache.set(key, encoded)
        return decode(encoded)

    def _check_language(self, language: str) -> None:
        if language not in SUPPORTED_LANGUAGES:
            raise CatalogError(
                f"Unsupported language '{language}'",
                kind=FailureKind.INVALID_INPUT,
            )

    async def list_sets(self, language: str) -> list[CardSet]:
        """
        List every set available in a language, without cards.

        Raises:
            CatalogError: If the catalog cannot be reached or answers with an error
        """
        self._check_language(language)

        async def fetch() -> list[dict[str, Any]]:
            payload = await self._fetch_json(f"{language}/sets")
            items = payload.get("data", payload) if isinstance(payload, dict) else payload
            try:
                return [normalize_set({**item, "cards": []}).to_dict() for item in items or []]
            except ValueError as e:
                raise CatalogError(f"Catalog returned a malformed set list: {e}") from e

        return await self._cached(
            generate_key("sets", language),
            fetch,
            lambda data: [CardSet.from_dict(item) for item in data],
        )

    async def get_set(self, set_id: str, language: str) -> CardSet:
        """
        Fetch one set with its full card list.

        Raises:
            CatalogError: If the set does not exist or the catalog fails
        """
        self._check_language(language)

        async def fetch() -> dict[str, Any]:
            payload = await self._fetch_json(f"{language}/sets/{set_id}")
            if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
                payload = payload["data"]
            try:
                return normalize_set(payload).to_dict()
            except (TypeError, ValueError) as e:
                raise CatalogError(f"Catalog returned a malformed set {set_id}: {e}") from e

        return await self._cached(
            generate_key("set", language, {"id": set_id}),
            fetch,
            CardSet.from_dict,
        )

    async def list_cards(self, language: str) -> list[Card]:
        """
        Fetch every card available in a language (for search and random picks).

        Raises:
            CatalogError: If the catalog cannot be reached or answers with an error
        """
        self._check_language(language)

        async def fetch() -> list[dict[str, Any]]:
            payload = await self._fetch_json(f"{language}/cards")
            items = payload.get("data", payload) if isinstance(payload, dict) else payload
            cards: list[dict[str, Any]] = []
            for item in items or []:
                try:
                    cards.append(normalize_card(item).to_dict())
                except ValueError as e:
                    logger.warning("Skipping malformed card payload: %s", e)
            return cards

        return await self._cached(
            generate_key("cards", language),
            fetch,
            lambda data: [Card.from_dict(item) for item in data],
        )

    async def get_set_cards(self, set_id: str, language: str) -> SetCards:
        """
        Load a set's cards, falling back to another language if needed.

        When the set is missing (or empty) in the requested language, the
        fallback language is tried and the result is marked as a fallback.

        Raises:
            CatalogError: If neither language has the set, or the catalog fails
        """
        try:
            card_set = await self.get_set(set_id, language)
            if card_set.cards or language == self.fallback_language:
                return SetCards(card_set, language, language)
        except CatalogError as e:
            if not e.not_found or language == self.fallback_language:
                raise

        logger.info(
            "Set %s not available in %s, falling back to %s",
            set_id,
            language,
            self.fallback_language,
        )
        card_set = await self.get_set(set_id, self.fallback_language)
        return SetCards(card_set, self.fallback_language, language, is_fallback=True)
