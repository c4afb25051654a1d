"""
Ownership document store with change notification.

Wraps the async session factory with single-record writes, atomic batches,
and a per-(user, collection) watch mechanism. Watchers are awaited after
every successful commit so they can recompute their view.

INVARIANT: A batch is applied in one transaction. If it fails, no record
changes and no watcher is notified.
INVARIANT: The collection's owned_cards counter is recomputed inside every
write transaction, so it always equals the number of records the collection
owner has marked owned. Other members' records do not count towards it.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardbinder.models.db import CollectionDB, OwnershipRecordDB
from cardbinder.models.ownership import Condition, OwnershipRecord

logger = logging.getLogger(__name__)

ChangeListener = Callable[[], Awaitable[None]]

WatchKey = tuple[str, str]


def record_to_model(row: OwnershipRecordDB) -> OwnershipRecord:
    """Convert a database row to a domain record."""
    return OwnershipRecord(
        user_id=row.user_id,
        collection_id=row.collection_id,
        card_id=row.card_id,
        owned=row.owned,
        quantity=row.quantity,
        condition=Condition(row.condition),
        notes=row.notes,
        added_at=row.added_at,
        name=row.name,
        set_id=row.set_id,
        set_name=row.set_name,
        rarity=row.rarity,
        number=row.number,
        image_url=row.image_url,
        language=row.language,
    )


def _apply_record(row: OwnershipRecordDB, record: OwnershipRecord) -> None:
    row.owned = record.owned
    row.quantity = record.quantity
    row.condition = record.condition.value
    row.notes = record.notes
    row.name = record.name
    row.set_id = record.set_id
    row.set_name = record.set_name
    row.rarity = record.rarity
    row.number = record.number
    row.image_url = record.image_url
    row.language = record.language


async def _upsert(session: AsyncSession, record: OwnershipRecord) -> None:
    result = await session.execute(
        select(OwnershipRecordDB).where(
            OwnershipRecordDB.user_id == record.user_id,
            OwnershipRecordDB.collection_id == record.collection_id,
            OwnershipRecordDB.card_id == record.card_id,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = OwnershipRecordDB(
            user_id=record.user_id,
            collection_id=record.collection_id,
            card_id=record.card_id,
        )
        session.add(row)
    _apply_record(row, record)


async def _delete(
    session: AsyncSession, user_id: str, collection_id: str, card_ids: Iterable[str]
) -> None:
    ids = list(card_ids)
    if not ids:
        return
    await session.execute(
        delete(OwnershipRecordDB).where(
            OwnershipRecordDB.user_id == user_id,
            OwnershipRecordDB.collection_id == collection_id,
            OwnershipRecordDB.card_id.in_(ids),
        )
    )


async def _refresh_owned_counter(session: AsyncSession, collection_id: str) -> None:
    await session.flush()
    owner_id = (
        select(CollectionDB.owner_id).where(CollectionDB.id == collection_id).scalar_subquery()
    )
    owned = await session.scalar(
        select(func.count())
        .select_from(OwnershipRecordDB)
        .where(
            OwnershipRecordDB.collection_id == collection_id,
            OwnershipRecordDB.user_id == owner_id,
            OwnershipRecordDB.owned.is_(True),
        )
    )
    await session.execute(
        update(CollectionDB).where(CollectionDB.id == collection_id).values(owned_cards=owned or 0)
    )


class OwnershipStore:
    """
    Storage for ownership records.

    Usage:
        store = OwnershipStore(session_factory)
        cancel = store.watch("user-1", "coll-1", on_change)
        await store.put_record(record)   # on_change is awaited after commit
        cancel()
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory
        self._watchers: dict[WatchKey, list[ChangeListener]] = {}

    # --- Reads ---

    async def owned_card_ids(self, user_id: str, collection_id: str) -> frozenset[str]:
        """IDs of every card with an owned record in the collection."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(OwnershipRecordDB.card_id).where(
                    OwnershipRecordDB.user_id == user_id,
                    OwnershipRecordDB.collection_id == collection_id,
                    OwnershipRecordDB.owned.is_(True),
                )
            )
            return frozenset(result.scalars().all())

    async def get_record(
        self, user_id: str, collection_id: str, card_id: str
    ) -> OwnershipRecord | None:
        """Get one record, or None if the card has no record."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(OwnershipRecordDB).where(
                    OwnershipRecordDB.user_id == user_id,
                    OwnershipRecordDB.collection_id == collection_id,
                    OwnershipRecordDB.card_id == card_id,
                )
            )
            row = result.scalar_one_or_none()
            return record_to_model(row) if row else None

    async def count_records(self, user_id: str, collection_id: str) -> int:
        """Number of records of any ownership state in the collection."""
        async with self.session_factory() as session:
            count = await session.scalar(
                select(func.count())
                .select_from(OwnershipRecordDB)
                .where(
                    OwnershipRecordDB.user_id == user_id,
                    OwnershipRecordDB.collection_id == collection_id,
                )
            )
            return int(count or 0)

    # --- Writes ---

    async def put_record(self, record: OwnershipRecord) -> None:
        """Insert or replace one record."""
        await self.apply_batch(record.user_id, record.collection_id, puts=[record])

    async def delete_record(self, user_id: str, collection_id: str, card_id: str) -> None:
        """Delete one record. Deleting a missing record is a no-op."""
        await self.apply_batch(user_id, collection_id, deletes=[card_id])

    async def apply_batch(
        self,
        user_id: str,
        collection_id: str,
        puts: Sequence[OwnershipRecord] = (),
        deletes: Sequence[str] = (),
    ) -> None:
        """
        Apply puts and deletes in one transaction.

        Raises:
            ValueError: If a record belongs to another user or collection
            SQLAlchemyError: If the transaction fails; nothing is applied
        """
        for record in puts:
            if record.user_id != user_id or record.collection_id != collection_id:
                msg = (
                    f"Record for card '{record.card_id}' belongs to "
                    f"({record.user_id}, {record.collection_id}), "
                    f"expected ({user_id}, {collection_id})"
                )
                raise ValueError(msg)

        async with self.session_factory() as session, session.begin():
            await self.write_in_session(session, user_id, collection_id, puts, deletes)

        await self.notify(user_id, collection_id)

    async def write_in_session(
        self,
        session: AsyncSession,
        user_id: str,
        collection_id: str,
        puts: Sequence[OwnershipRecord] = (),
        deletes: Sequence[str] = (),
    ) -> None:
        """
        Stage writes in a caller-owned transaction.

        The caller commits and then calls notify().
        """
        for record in puts:
            await _upsert(session, record)
        await _delete(session, user_id, collection_id, deletes)
        await _refresh_owned_counter(session, collection_id)

    # --- Change notification ---

    def watch(self, user_id: str, collection_id: str, listener: ChangeListener) -> Callable[[], None]:
        """
        Register a listener for changes under (user, collection).

        Returns:
            A cancel function; calling it more than once is a no-op.
        """
        key = (user_id, collection_id)
        self._watchers.setdefault(key, []).append(listener)

        def cancel() -> None:
            listeners = self._watchers.get(key)
            if listeners and listener in listeners:
                listeners.remove(listener)
                if not listeners:
                    del self._watchers[key]

        return cancel

    def watcher_count(self, user_id: str, collection_id: str) -> int:
        return len(self._watchers.get((user_id, collection_id), ()))

    async def notify(self, user_id: str, collection_id: str) -> None:
        """
        Await every listener of (user, collection).

        A failing listener is logged and does not affect the write that
        triggered it or the other listeners.
        """
        for listener in list(self._watchers.get((user_id, collection_id), ())):
            try:
                await listener()
            except Exception:
                logger.exception(
                    "OWNERSHIP_LISTENER_FAILED",
                    extra={"user_id": user_id, "collection_id": collection_id},
                )
