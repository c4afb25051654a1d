"""
Ownership domain records.

INVARIANT: A record with owned=True is the sole evidence that a user owns a
card within a collection. Absence of a record means not owned.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import ClassVar

from cardbinder.models.card import Card


class Condition(str, Enum):
    """Physical condition of an owned card."""

    MINT = "mint"
    NEAR_MINT = "near_mint"
    EXCELLENT = "excellent"
    GOOD = "good"
    LIGHT_PLAYED = "light_played"
    PLAYED = "played"
    POOR = "poor"


@dataclass
class OwnershipRecord:
    """
    A user's ownership of one card in one collection.

    Keyed by (user_id, collection_id, card_id). Card fields are denormalized
    so collection views render without a catalog round trip.
    """

    user_id: str
    collection_id: str
    card_id: str
    owned: bool = True
    quantity: int = 1
    condition: Condition = Condition.MINT
    notes: str = ""
    added_at: datetime | None = None

    name: str = ""
    set_id: str | None = None
    set_name: str | None = None
    rarity: str | None = None
    number: str | None = None
    image_url: str | None = None
    language: str | None = None

    def __post_init__(self) -> None:
        if self.quantity < 0:
            raise ValueError(f"Quantity must be >= 0, got {self.quantity}")
        self.condition = Condition(self.condition)

    @classmethod
    def for_card(
        cls,
        user_id: str,
        collection_id: str,
        card: Card,
        language: str | None = None,
    ) -> "OwnershipRecord":
        """Build an owned record for a catalog card with default attributes."""
        return cls(
            user_id=user_id,
            collection_id=collection_id,
            card_id=card.id,
            name=card.name,
            set_id=card.set_id,
            set_name=card.set_name,
            rarity=card.rarity,
            number=card.number,
            image_url=card.image_url,
            language=language,
        )


@dataclass(frozen=True, slots=True)
class OwnershipStats:
    """Completion figures for a collection."""

    owned: int
    total: int
    needed: int
    completion_percent: int


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def compute_ownership_stats(owned: int, total: int) -> OwnershipStats:
    """
    Compute completion figures.

    completion_percent is round(owned / total * 100), halves rounding up,
    and 0 when total is 0.
    """
    completion = _round_half_up(owned / total * 100) if total > 0 else 0
    return OwnershipStats(
        owned=owned,
        total=total,
        needed=total - owned,
        completion_percent=completion,
    )


@dataclass(frozen=True, slots=True)
class OwnedSetState:
    """
    Current value of a live owned-card set.

    `loading` is True until the first snapshot arrives, so an empty
    collection is never confused with one that has not loaded yet.
    """

    LOADING: ClassVar["OwnedSetState"]

    loading: bool = False
    card_ids: frozenset[str] = field(default_factory=frozenset)
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


OwnedSetState.LOADING = OwnedSetState(loading=True)
