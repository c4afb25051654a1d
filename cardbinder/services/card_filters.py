"""
Card filtering, sorting, and set breakdowns.

Operates on canonical Card records only. All filters are ANDed together.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from cardbinder.models.card import Card
from cardbinder.models.ownership import compute_ownership_stats

# Rarest last; unknown rarities sort with "Common"
RARITY_ORDER: tuple[str, ...] = (
    "Common",
    "Uncommon",
    "Rare",
    "Rare Holo",
    "Ultra Rare",
    "Secret Rare",
)

SORT_KEYS = frozenset({"number", "name", "rarity", "type"})

DEFAULT_TYPE = "Colorless"


def _number_key(card: Card) -> int:
    digits = ""
    for ch in card.number or "":
        if not ch.isdigit():
            break
        digits += ch
    return int(digits) if digits else 0


def _rarity_rank(card: Card) -> int:
    rarity = card.rarity or "Common"
    return RARITY_ORDER.index(rarity) if rarity in RARITY_ORDER else 0


def _primary_type(card: Card) -> str:
    return card.types[0] if card.types else DEFAULT_TYPE


def filter_cards(
    cards: Iterable[Card],
    name: str | None = None,
    card_type: str | None = None,
    rarity: str | None = None,
    owned: bool | None = None,
    owned_ids: frozenset[str] | set[str] = frozenset(),
) -> list[Card]:
    """
    Filter cards by name substring, type, rarity, and ownership.

    Args:
        cards: Cards to filter
        name: Case-insensitive substring of the card name
        card_type: Required type ("all" or None disables the filter)
        rarity: Exact rarity ("all" or None disables the filter)
        owned: True for owned only, False for needed only, None for both
        owned_ids: IDs of owned cards, used when `owned` is set

    Returns:
        Matching cards in input order
    """
    query = name.lower() if name else None
    results: list[Card] = []

    for card in cards:
        if query and query not in card.name.lower():
            continue
        if card_type and card_type != "all" and card_type not in card.types:
            continue
        if rarity and rarity != "all" and card.rarity != rarity:
            continue
        if owned is not None and (card.id in owned_ids) != owned:
            continue
        results.append(card)

    return results


def sort_cards(cards: Iterable[Card], sort_by: str = "number") -> list[Card]:
    """
    Sort cards.

    "rarity" puts the rarest cards first; an unknown sort key keeps the
    input order.
    """
    items = list(cards)
    if sort_by == "number":
        return sorted(items, key=_number_key)
    if sort_by == "name":
        return sorted(items, key=lambda c: c.name.lower())
    if sort_by == "rarity":
        return sorted(items, key=_rarity_rank, reverse=True)
    if sort_by == "type":
        return sorted(items, key=lambda c: _primary_type(c).lower())
    return items


@dataclass
class BucketCount:
    """Total and owned cards within one rarity or type."""

    total: int = 0
    owned: int = 0


@dataclass
class SetBreakdown:
    """Completion of a set overall and per rarity and type."""

    total: int
    owned: int
    completion_percent: int
    by_rarity: dict[str, BucketCount] = field(default_factory=dict)
    by_type: dict[str, BucketCount] = field(default_factory=dict)


def set_breakdown(cards: Sequence[Card], owned_ids: frozenset[str] | set[str]) -> SetBreakdown:
    """Count owned cards of a set, overall and per rarity and primary type."""
    by_rarity: dict[str, BucketCount] = {}
    by_type: dict[str, BucketCount] = {}
    owned = 0

    for card in cards:
        is_owned = card.id in owned_ids
        owned += is_owned

        rarity_bucket = by_rarity.setdefault(card.rarity or "Common", BucketCount())
        rarity_bucket.total += 1
        rarity_bucket.owned += is_owned

        type_bucket = by_type.setdefault(_primary_type(card), BucketCount())
        type_bucket.total += 1
        type_bucket.owned += is_owned

    stats = compute_ownership_stats(owned, len(cards))
    return SetBreakdown(
        total=stats.total,
        owned=stats.owned,
        completion_percent=stats.completion_percent,
        by_rarity=by_rarity,
        by_type=by_type,
    )
