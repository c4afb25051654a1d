"""
Ownership read-model.

Maintains, per (user, collection), the live set of owned card IDs and the
mutations that change it.

The live set is recomputed in full from storage on every change
notification rather than patched with deltas; collections hold at most a
few hundred cards per set, so the redundant work is bounded and partial
updates cannot occur.

Removal convention: not-owned is represented by deleting the record, in
both the single-card and bulk paths.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from types import TracebackType
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError

from cardbinder.db.ownership_store import OwnershipStore
from cardbinder.models.card import Card
from cardbinder.models.failure import FailureKind, OperationResult, SubscriptionError
from cardbinder.models.ownership import (
    OwnedSetState,
    OwnershipRecord,
    OwnershipStats,
    compute_ownership_stats,
)

logger = logging.getLogger(__name__)

NextCallback = Callable[[frozenset[str]], None]
ErrorCallback = Callable[[SubscriptionError], None]

# Queue marker for the end of an async iteration
_CLOSED = object()


class ObservableSet(Protocol):
    """Anything that can push set snapshots to subscribers."""

    def subscribe(
        self, on_next: NextCallback, on_error: ErrorCallback | None = None
    ) -> Callable[[], None]: ...


class OwnedCardsFeed:
    """
    Live owned-card set for one (user, collection).

    State starts as OwnedSetState.LOADING and becomes a loaded snapshot once
    the first read completes. A storage failure is delivered once through
    the error channel, after which the feed is closed; it is not retried.

    Usage:
        async with read_model.subscribe("user-1", "coll-1") as feed:
            feed.subscribe(on_next=render)
            ...
            print(feed.stats(total_cards=102))
    """

    def __init__(self, store: OwnershipStore, user_id: str, collection_id: str) -> None:
        self.store = store
        self.user_id = user_id
        self.collection_id = collection_id
        self.state = OwnedSetState.LOADING
        self._callbacks: list[tuple[NextCallback, ErrorCallback | None]] = []
        self._queues: list[asyncio.Queue[object]] = []
        self._unwatch: Callable[[], None] | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def card_ids(self) -> frozenset[str]:
        return self.state.card_ids

    async def open(self) -> "OwnedCardsFeed":
        """Start watching storage and load the initial snapshot."""
        if self._closed:
            raise SubscriptionError("Feed was already cancelled")
        if self._unwatch is None:
            self._unwatch = self.store.watch(self.user_id, self.collection_id, self.refresh)
            await self.refresh()
        return self

    async def __aenter__(self) -> "OwnedCardsFeed":
        return await self.open()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cancel()

    def subscribe(
        self, on_next: NextCallback, on_error: ErrorCallback | None = None
    ) -> Callable[[], None]:
        """
        Register callbacks for snapshots and for the terminal error.

        If a snapshot is already loaded it is delivered immediately.

        Returns:
            A function that removes these callbacks; repeated calls are no-ops.
        """
        entry = (on_next, on_error)
        if not self._closed:
            self._callbacks.append(entry)
            if not self.state.loading and not self.state.failed:
                on_next(self.state.card_ids)

        def unsubscribe() -> None:
            if entry in self._callbacks:
                self._callbacks.remove(entry)

        return unsubscribe

    async def refresh(self) -> None:
        """Recompute the owned set from storage and emit it."""
        if self._closed:
            return
        try:
            card_ids = await self.store.owned_card_ids(self.user_id, self.collection_id)
        except SQLAlchemyError as e:
            self._fail(SubscriptionError("Owned-card subscription failed", detail=str(e)))
            return
        if self._closed:
            return

        self.state = OwnedSetState(loading=False, card_ids=card_ids)
        for on_next, _ in list(self._callbacks):
            on_next(card_ids)
        for queue in self._queues:
            queue.put_nowait(card_ids)

    def _fail(self, error: SubscriptionError) -> None:
        logger.warning(
            "OWNERSHIP_SUBSCRIPTION_FAILED",
            extra={
                "user_id": self.user_id,
                "collection_id": self.collection_id,
                "error": error.detail,
            },
        )
        self.state = OwnedSetState(
            loading=False, card_ids=self.state.card_ids, error=error.detail or error.message
        )
        callbacks = list(self._callbacks)
        queues = list(self._queues)
        self._queues.clear()
        self.cancel()
        for _, on_error in callbacks:
            if on_error is not None:
                on_error(error)
        for queue in queues:
            queue.put_nowait(error)

    def cancel(self) -> None:
        """Stop the feed. No events are delivered afterwards; safe to repeat."""
        if self._closed:
            return
        self._closed = True
        if self._unwatch is not None:
            self._unwatch()
            self._unwatch = None
        self._callbacks.clear()
        for queue in self._queues:
            queue.put_nowait(_CLOSED)
        self._queues.clear()

    async def __aiter__(self) -> AsyncIterator[frozenset[str]]:
        """
        Yield snapshots until the feed is cancelled.

        The current snapshot, if loaded, is yielded first.

        Raises:
            SubscriptionError: If storage dropped the subscription
        """
        if self._closed:
            if self.state.failed:
                raise SubscriptionError("Owned-card subscription failed", detail=self.state.error)
            return

        queue: asyncio.Queue[object] = asyncio.Queue()
        if not self.state.loading:
            queue.put_nowait(self.state.card_ids)
        self._queues.append(queue)
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                if isinstance(item, SubscriptionError):
                    raise item
                yield item  # type: ignore[misc]
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    def stats(self, total_cards: int) -> OwnershipStats:
        """Completion figures for the current owned set."""
        return compute_ownership_stats(len(self.state.card_ids), total_cards)


class OwnershipReadModel:
    """
    Ownership mutations and live owned-set subscriptions.

    Mutations report failure through OperationResult so callers can roll
    back optimistic state; they never raise for storage errors.
    """

    def __init__(self, store: OwnershipStore) -> None:
        self.store = store

    def subscribe(self, user_id: str, collection_id: str) -> OwnedCardsFeed:
        """Create a feed for (user, collection). Call open() or use `async with`."""
        return OwnedCardsFeed(self.store, user_id, collection_id)

    async def set_ownership(
        self,
        user_id: str,
        collection_id: str,
        card: Card,
        should_own: bool,
        language: str | None = None,
    ) -> OperationResult[bool]:
        """
        Mark one card as owned (write its record) or not owned (delete it).

        On failure the previous persisted state is unchanged.
        """
        try:
            if should_own:
                record = OwnershipRecord.for_card(user_id, collection_id, card, language)
                await self.store.put_record(record)
            else:
                await self.store.delete_record(user_id, collection_id, card.id)
        except SQLAlchemyError as e:
            logger.warning(
                "OWNERSHIP_WRITE_FAILED",
                extra={
                    "user_id": user_id,
                    "collection_id": collection_id,
                    "card_id": card.id,
                    "should_own": should_own,
                },
            )
            action = "add" if should_own else "remove"
            return OperationResult.failed(
                FailureKind.STORAGE_WRITE_FAILED,
                f"Failed to {action} card {card.name}: {e}",
            )

        return OperationResult.success(should_own)

    async def bulk_set_ownership(
        self,
        user_id: str,
        collection_id: str,
        cards: Sequence[Card],
        should_own: bool,
        language: str | None = None,
    ) -> OperationResult[int]:
        """
        Mark many cards at once in a single all-or-nothing batch.

        Returns:
            On success, the number of cards written or removed.
        """
        if not cards:
            return OperationResult.success(0)

        try:
            if should_own:
                records = [
                    OwnershipRecord.for_card(user_id, collection_id, card, language)
                    for card in cards
                ]
                await self.store.apply_batch(user_id, collection_id, puts=records)
            else:
                await self.store.apply_batch(
                    user_id, collection_id, deletes=[card.id for card in cards]
                )
        except SQLAlchemyError as e:
            logger.warning(
                "OWNERSHIP_BATCH_FAILED",
                extra={
                    "user_id": user_id,
                    "collection_id": collection_id,
                    "cards": len(cards),
                    "should_own": should_own,
                },
            )
            action = "add" if should_own else "remove"
            return OperationResult.failed(
                FailureKind.STORAGE_WRITE_FAILED,
                f"Failed to {action} {len(cards)} cards: {e}",
            )

        return OperationResult.success(len(cards))

    @staticmethod
    def stats(owned_ids: frozenset[str] | set[str], total_cards: int) -> OwnershipStats:
        """Completion figures for an owned set and a caller-supplied total."""
        return compute_ownership_stats(len(owned_ids), total_cards)
