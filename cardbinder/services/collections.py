"""
Collection creation and listing.

Creating a collection for a catalog set writes the collection, its counters,
and (when pre-filled) every ownership record in one transaction, so
total_cards and owned_cards always match what was written.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardbinder.config import SUPPORTED_LANGUAGES, settings
from cardbinder.db.operations import (
    CollectionSummary,
    collection_to_summary,
    create_collection,
    get_user_collections,
)
from cardbinder.db.ownership_store import OwnershipStore
from cardbinder.models.failure import CatalogError, FailureKind, OperationResult
from cardbinder.models.ownership import OwnershipRecord
from cardbinder.services.catalog import CatalogClient

logger = logging.getLogger(__name__)


class CollectionService:
    """Creates and lists collections on top of the catalog and ownership store."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: OwnershipStore,
        catalog: CatalogClient,
        default_language: str = settings.default_language,
    ) -> None:
        self.session_factory = session_factory
        self.store = store
        self.catalog = catalog
        self.default_language = default_language

    async def create_collection(
        self,
        owner_id: str,
        name: str,
        language: str | None = None,
        description: str = "",
        game_id: str = "pokemon",
    ) -> OperationResult[str]:
        """Create an empty collection owned by `owner_id`; language defaults per service."""
        language = language or self.default_language
        if not name.strip():
            return OperationResult.failed(FailureKind.INVALID_INPUT, "Collection name is required")
        if language not in SUPPORTED_LANGUAGES:
            return OperationResult.failed(
                FailureKind.INVALID_INPUT, f"Unsupported language '{language}'"
            )

        try:
            async with self.session_factory() as session, session.begin():
                collection = await create_collection(
                    session,
                    owner_id=owner_id,
                    name=name.strip(),
                    language=language,
                    description=description,
                    game_id=game_id,
                )
                collection_id = collection.id
        except SQLAlchemyError as e:
            logger.error("Failed to create collection %r: %s", name, e)
            return OperationResult.failed(FailureKind.STORAGE_WRITE_FAILED, str(e))

        logger.info("Created collection %s for %s", collection_id, owner_id)
        return OperationResult.success(collection_id)

    async def create_set_collection(
        self,
        owner_id: str,
        name: str,
        set_id: str,
        language: str,
        prefill_owned: bool,
        description: str = "",
        game_id: str = "pokemon",
    ) -> OperationResult[str]:
        """
        Create a collection tracking one catalog set.

        The set is loaded in `language`, falling back to the catalog's
        fallback language when unavailable. When `prefill_owned` is set,
        every card in the set is recorded as owned in the same transaction.

        Returns:
            On success, the new collection's id.
        """
        if not name.strip():
            return OperationResult.failed(FailureKind.INVALID_INPUT, "Collection name is required")

        try:
            set_cards = await self.catalog.get_set_cards(set_id, language)
        except CatalogError as e:
            logger.warning("Cannot load set %s for new collection: %s", set_id, e.message)
            return e.to_result()

        if set_cards.is_fallback:
            logger.info(
                "Set %s not available in %s; collection uses %s",
                set_id,
                language,
                set_cards.language,
            )

        cards = set_cards.cards
        try:
            async with self.session_factory() as session, session.begin():
                collection = await create_collection(
                    session,
                    owner_id=owner_id,
                    name=name.strip(),
                    language=set_cards.language,
                    description=description,
                    game_id=game_id,
                    set_id=set_cards.card_set.id,
                    requested_language=language,
                    is_fallback=set_cards.is_fallback,
                )
                collection.total_cards = len(cards)
                collection_id = collection.id

                if prefill_owned:
                    records = [
                        OwnershipRecord.for_card(owner_id, collection_id, card, set_cards.language)
                        for card in cards
                    ]
                    await self.store.write_in_session(
                        session, owner_id, collection_id, puts=records
                    )
        except SQLAlchemyError as e:
            logger.error("Failed to create collection for set %s: %s", set_id, e)
            return OperationResult.failed(FailureKind.STORAGE_WRITE_FAILED, str(e))

        await self.store.notify(owner_id, collection_id)
        logger.info(
            "Created collection %s for set %s with %d cards (prefilled=%s)",
            collection_id,
            set_id,
            len(cards),
            prefill_owned,
        )
        return OperationResult.success(collection_id)

    async def user_collections(self, user_id: str) -> list[CollectionSummary]:
        """Every collection the user is a member of."""
        async with self.session_factory() as session:
            collections = await get_user_collections(session, user_id)
            return [collection_to_summary(c) for c in collections]
