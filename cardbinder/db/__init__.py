from cardbinder.db.database import build_engine, build_session_factory, init_db
from cardbinder.db.operations import (
    CollectionSummary,
    add_member,
    can_edit,
    collection_to_summary,
    create_collection,
    delete_collection,
    get_collection,
    get_member,
    get_user_collections,
    update_collection,
)
from cardbinder.db.ownership_store import OwnershipStore, record_to_model

__all__ = [
    "CollectionSummary",
    "OwnershipStore",
    "add_member",
    "build_engine",
    "build_session_factory",
    "can_edit",
    "collection_to_summary",
    "create_collection",
    "delete_collection",
    "get_collection",
    "get_member",
    "get_user_collections",
    "init_db",
    "record_to_model",
    "update_collection",
]
