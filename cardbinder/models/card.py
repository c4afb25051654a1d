"""
Canonical card and set records.

External catalog payloads vary in shape (`image` as a string or mapping,
`images.small/large`, `number` vs `cardNumber` vs `localId`). They are
normalized here, at the data-access boundary, before reaching the cache or
the ownership model.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class Card:
    """
    A catalog card in canonical form.

    Attributes:
        id: Catalog card ID (e.g., "base1-4")
        name: Card name
        rarity: Rarity label as reported by the catalog
        types: Energy/element types
        number: Collector number within the set
        image_small: Low resolution image URL
        image_large: High resolution image URL
        set_id: Back-reference to the owning set
        set_name: Owning set name
        set_total: Printed total of the owning set
    """

    id: str
    name: str
    rarity: str | None = None
    types: tuple[str, ...] = ()
    number: str | None = None
    image_small: str | None = None
    image_large: str | None = None
    set_id: str | None = None
    set_name: str | None = None
    set_total: int | None = None

    @property
    def image_url(self) -> str | None:
        return self.image_small or self.image_large

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "rarity": self.rarity,
            "types": list(self.types),
            "number": self.number,
            "image_small": self.image_small,
            "image_large": self.image_large,
            "set_id": self.set_id,
            "set_name": self.set_name,
            "set_total": self.set_total,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Card":
        return cls(
            id=data["id"],
            name=data["name"],
            rarity=data.get("rarity"),
            types=tuple(data.get("types") or ()),
            number=data.get("number"),
            image_small=data.get("image_small"),
            image_large=data.get("image_large"),
            set_id=data.get("set_id"),
            set_name=data.get("set_name"),
            set_total=data.get("set_total"),
        )


@dataclass(frozen=True, slots=True)
class CardSet:
    """A catalog set, optionally with its full card list."""

    id: str
    name: str
    total: int | None = None
    release_date: str | None = None
    logo: str | None = None
    symbol: str | None = None
    cards: tuple[Card, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "total": self.total,
            "release_date": self.release_date,
            "logo": self.logo,
            "symbol": self.symbol,
            "cards": [card.to_dict() for card in self.cards],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CardSet":
        return cls(
            id=data["id"],
            name=data["name"],
            total=data.get("total"),
            release_date=data.get("release_date"),
            logo=data.get("logo"),
            symbol=data.get("symbol"),
            cards=tuple(Card.from_dict(c) for c in data.get("cards") or ()),
        )


def _as_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _image_pair(payload: Mapping[str, Any]) -> tuple[str | None, str | None]:
    """Extract (small, large) image URLs from any supported payload shape."""
    image = payload.get("image")
    if isinstance(image, str) and image:
        return image, image
    if isinstance(image, Mapping):
        small = image.get("small") or image.get("normal")
        large = image.get("large") or image.get("normal")
        if small or large:
            return small or large, large or small

    images = payload.get("images")
    if isinstance(images, Mapping):
        small = images.get("small")
        large = images.get("large")
        return small or large, large or small

    return None, None


def normalize_card(payload: Mapping[str, Any], card_set: CardSet | None = None) -> Card:
    """
    Map an external card payload to a canonical Card.

    Args:
        payload: Card record from the catalog service
        card_set: Enclosing set when the card came from a set listing

    Returns:
        Canonical Card

    Raises:
        ValueError: If the payload has no id or name
    """
    card_id = payload.get("id")
    name = payload.get("name")
    if not card_id or not name:
        raise ValueError(f"Card payload is missing id or name: {dict(payload)!r}")

    number = payload.get("number") or payload.get("cardNumber") or payload.get("localId")

    set_ref = payload.get("set")
    set_id = set_name = None
    set_total = None
    if isinstance(set_ref, Mapping):
        set_id = set_ref.get("id")
        set_name = set_ref.get("name")
        card_count = set_ref.get("cardCount")
        set_total = _as_int(
            set_ref.get("printedTotal")
            or set_ref.get("total")
            or (card_count.get("official") if isinstance(card_count, Mapping) else None)
        )
    if card_set is not None:
        set_id = set_id or card_set.id
        set_name = set_name or card_set.name
        set_total = set_total if set_total is not None else card_set.total
    if set_total is None:
        set_total = _as_int(payload.get("setTotal") or payload.get("printedTotal"))

    small, large = _image_pair(payload)

    return Card(
        id=str(card_id),
        name=str(name),
        rarity=payload.get("rarity"),
        types=tuple(payload.get("types") or ()),
        number=str(number) if number is not None else None,
        image_small=small,
        image_large=large,
        set_id=set_id,
        set_name=set_name,
        set_total=set_total,
    )


def normalize_set(payload: Mapping[str, Any]) -> CardSet:
    """
    Map an external set payload to a canonical CardSet.

    Nested cards are normalized with the set as their back-reference.

    Raises:
        ValueError: If the payload has no id or name
    """
    set_id = payload.get("id")
    name = payload.get("name")
    if not set_id or not name:
        raise ValueError(f"Set payload is missing id or name: {dict(payload)!r}")

    card_count = payload.get("cardCount")
    total = _as_int(
        (card_count.get("official") or card_count.get("total"))
        if isinstance(card_count, Mapping)
        else None
    )
    if total is None:
        total = _as_int(payload.get("printedTotal") or payload.get("total"))

    images = payload.get("images")
    logo = payload.get("logo")
    symbol = payload.get("symbol")
    if isinstance(images, Mapping):
        logo = logo or images.get("logo")
        symbol = symbol or images.get("symbol")

    header = CardSet(
        id=str(set_id),
        name=str(name),
        total=total,
        release_date=payload.get("releaseDate"),
        logo=logo,
        symbol=symbol,
    )
    cards = tuple(normalize_card(card, header) for card in payload.get("cards") or ())

    return CardSet(
        id=header.id,
        name=header.name,
        total=header.total,
        release_date=header.release_date,
        logo=header.logo,
        symbol=header.symbol,
        cards=cards,
    )


def format_card_number(card: Card) -> str:
    """Format as "number/total" when the set total is known."""
    if card.number and card.set_total:
        return f"{card.number}/{card.set_total}"
    return card.number or ""
