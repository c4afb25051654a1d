"""
Database CRUD operations for collections.

Provides async functions for creating, reading, updating, and deleting
collections and their memberships. Ownership records are handled by
OwnershipStore.
"""

from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cardbinder.models.db import CollectionDB, CollectionMemberDB, OwnershipRecordDB

OWNER_ROLE = "owner"
EDITOR_ROLE = "editor"
VIEWER_ROLE = "viewer"

VALID_ROLES = frozenset({OWNER_ROLE, EDITOR_ROLE, VIEWER_ROLE})

# Fields callers may change through update_collection
UPDATABLE_FIELDS = frozenset({"name", "description", "language", "game_id"})


@dataclass(frozen=True, slots=True)
class CollectionSummary:
    """Read-only view of a collection for listing."""

    id: str
    name: str
    description: str
    game_id: str
    language: str
    owner_id: str
    set_id: str | None
    total_cards: int
    owned_cards: int
    is_fallback: bool
    members: dict[str, str]


# --- Collection Operations ---


async def get_collection(session: AsyncSession, collection_id: str) -> CollectionDB | None:
    """
    Get a collection by id, with its members loaded.

    Returns None if no such collection exists.
    """
    result = await session.execute(
        select(CollectionDB)
        .where(CollectionDB.id == collection_id)
        .options(selectinload(CollectionDB.members))
    )
    return result.scalar_one_or_none()


async def create_collection(
    session: AsyncSession,
    owner_id: str,
    name: str,
    language: str = "en",
    description: str = "",
    game_id: str = "pokemon",
    set_id: str | None = None,
    requested_language: str | None = None,
    is_fallback: bool = False,
) -> CollectionDB:
    """
    Create a collection with its owner as the first member.

    The owner always gets role "owner" with edit rights.
    """
    collection = CollectionDB(
        name=name,
        description=description,
        game_id=game_id,
        language=language,
        requested_language=requested_language or language,
        is_fallback=is_fallback,
        owner_id=owner_id,
        set_id=set_id,
        total_cards=0,
        owned_cards=0,
    )
    collection.members.append(CollectionMemberDB(user_id=owner_id, role=OWNER_ROLE, can_edit=True))
    session.add(collection)
    await session.flush()
    return collection


async def get_user_collections(session: AsyncSession, user_id: str) -> list[CollectionDB]:
    """Get every collection the user is a member of, newest first."""
    result = await session.execute(
        select(CollectionDB)
        .join(CollectionMemberDB, CollectionMemberDB.collection_id == CollectionDB.id)
        .where(CollectionMemberDB.user_id == user_id)
        .options(selectinload(CollectionDB.members))
        .order_by(CollectionDB.created_at.desc(), CollectionDB.name)
    )
    return list(result.scalars().unique().all())


async def update_collection(
    session: AsyncSession, collection_id: str, **changes: Any
) -> CollectionDB | None:
    """
    Update editable collection fields.

    Returns None if the collection does not exist.

    Raises:
        ValueError: If a field is not editable
    """
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        msg = f"Cannot update collection fields: {', '.join(sorted(unknown))}"
        raise ValueError(msg)

    collection = await get_collection(session, collection_id)
    if not collection:
        return None

    for field_name, value in changes.items():
        setattr(collection, field_name, value)
    await session.flush()
    return collection


async def delete_collection(session: AsyncSession, collection_id: str) -> bool:
    """
    Delete a collection together with its members and ownership records.

    Returns True if deleted, False if not found.
    """
    collection = await get_collection(session, collection_id)
    if not collection:
        return False

    # Records are not loaded with the collection; remove them in bulk
    await session.execute(
        delete(OwnershipRecordDB).where(OwnershipRecordDB.collection_id == collection_id)
    )
    await session.delete(collection)
    await session.flush()
    return True


# --- Membership Operations ---


async def get_member(
    session: AsyncSession, collection_id: str, user_id: str
) -> CollectionMemberDB | None:
    """Get a user's membership in a collection."""
    result = await session.execute(
        select(CollectionMemberDB).where(
            CollectionMemberDB.collection_id == collection_id,
            CollectionMemberDB.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def add_member(
    session: AsyncSession,
    collection_id: str,
    user_id: str,
    role: str = VIEWER_ROLE,
) -> CollectionMemberDB:
    """
    Add or update a member of a collection.

    Editors and owners can edit; viewers cannot.

    Raises:
        ValueError: If the role is unknown
    """
    if role not in VALID_ROLES:
        raise ValueError(f"Unknown role '{role}'")

    member = await get_member(session, collection_id, user_id)
    if member:
        member.role = role
        member.can_edit = role != VIEWER_ROLE
    else:
        member = CollectionMemberDB(
            collection_id=collection_id,
            user_id=user_id,
            role=role,
            can_edit=role != VIEWER_ROLE,
        )
        session.add(member)
    await session.flush()
    return member


async def can_edit(session: AsyncSession, collection_id: str, user_id: str) -> bool:
    """True if the user is a member with edit rights."""
    member = await get_member(session, collection_id, user_id)
    return bool(member and member.can_edit)


def collection_to_summary(collection: CollectionDB) -> CollectionSummary:
    """Convert a database collection to a read-only summary."""
    return CollectionSummary(
        id=collection.id,
        name=collection.name,
        description=collection.description,
        game_id=collection.game_id,
        language=collection.language,
        owner_id=collection.owner_id,
        set_id=collection.set_id,
        total_cards=collection.total_cards,
        owned_cards=collection.owned_cards,
        is_fallback=collection.is_fallback,
        members={member.user_id: member.role for member in collection.members},
    )
