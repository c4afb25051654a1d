"""
SQLAlchemy ORM models for persistent storage.

Models mirror the dataclass models but add database persistence.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _new_document_id() -> str:
    return uuid.uuid4().hex


class CollectionDB(Base):
    """
    A collection tied to a trading-card game.

    Counters are denormalized: `owned_cards` always equals the number of
    owned records written under this collection.
    """

    __tablename__ = "collections"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_document_id)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text, default="")
    game_id: Mapped[str] = mapped_column(String(50), default="pokemon")
    language: Mapped[str] = mapped_column(String(8), default="en")
    requested_language: Mapped[str | None] = mapped_column(String(8), nullable=True)
    is_fallback: Mapped[bool] = mapped_column(Boolean, default=False)
    owner_id: Mapped[str] = mapped_column(String(255), index=True)
    set_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    total_cards: Mapped[int] = mapped_column(Integer, default=0)
    owned_cards: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    members: Mapped[list["CollectionMemberDB"]] = relationship(
        back_populates="collection", cascade="all, delete-orphan"
    )
    records: Mapped[list["OwnershipRecordDB"]] = relationship(
        back_populates="collection", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<CollectionDB(id={self.id}, name={self.name})>"


class CollectionMemberDB(Base):
    """Membership of a user in a collection, with role."""

    __tablename__ = "collection_members"
    __table_args__ = (UniqueConstraint("collection_id", "user_id", name="uq_collection_member"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("collections.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    role: Mapped[str] = mapped_column(String(20), default="viewer")
    can_edit: Mapped[bool] = mapped_column(Boolean, default=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    collection: Mapped["CollectionDB"] = relationship(back_populates="members")

    def __repr__(self) -> str:
        return f"<CollectionMemberDB(user={self.user_id}, role={self.role})>"


class OwnershipRecordDB(Base):
    """
    Ownership of one card by one user within one collection.

    A row with owned=True is the only evidence of ownership.
    """

    __tablename__ = "ownership_records"
    __table_args__ = (
        UniqueConstraint("user_id", "collection_id", "card_id", name="uq_user_collection_card"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    collection_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("collections.id", ondelete="CASCADE"), index=True
    )
    card_id: Mapped[str] = mapped_column(String(64), index=True)

    owned: Mapped[bool] = mapped_column(Boolean, default=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    condition: Mapped[str] = mapped_column(String(20), default="mint")
    notes: Mapped[str] = mapped_column(Text, default="")

    # Denormalized card data
    name: Mapped[str] = mapped_column(String(255), default="")
    set_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    set_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rarity: Mapped[str | None] = mapped_column(String(50), nullable=True)
    number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    language: Mapped[str | None] = mapped_column(String(8), nullable=True)

    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    collection: Mapped["CollectionDB"] = relationship(back_populates="records")

    def __repr__(self) -> str:
        return f"<OwnershipRecordDB(card={self.card_id}, owned={self.owned})>"


class KeyValueDB(Base):
    """
    Persisted cache tier row.

    Keys are namespaced by the cache prefix; values are JSON strings.
    """

    __tablename__ = "kv_store"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    value: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<KeyValueDB(key={self.key})>"
