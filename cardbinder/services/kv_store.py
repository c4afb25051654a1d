"""
Persisted key/value stores for the second cache tier.

The persisted tier is a synchronous, string-keyed, quota-limited host store.
Stores raise PersistedStoreError on any failure; the cache decides what to
do with it.
"""

from pathlib import Path
from typing import Protocol

from sqlalchemy import Engine, create_engine, delete, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from cardbinder.models.db import KeyValueDB
from cardbinder.models.failure import PersistedStoreError, QuotaExceededError


class KeyValueStore(Protocol):
    """Synchronous string key/value persistence."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


def _item_size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class MemoryKeyValueStore:
    """
    Dict-backed store with an optional byte quota.

    A write that would push the total stored size over the quota raises
    QuotaExceededError and leaves the store unchanged.
    """

    def __init__(self, quota_bytes: int | None = None) -> None:
        self.quota_bytes = quota_bytes
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            current = self.used_bytes()
            if key in self._items:
                current -= _item_size(key, self._items[key])
            required = current + _item_size(key, value)
            if required > self.quota_bytes:
                raise QuotaExceededError(key, required, self.quota_bytes)
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)

    def used_bytes(self) -> int:
        """Total UTF-8 size of stored keys and values."""
        return sum(_item_size(k, v) for k, v in self._items.items())


class SqlKeyValueStore:
    """Store backed by the `kv_store` table through a synchronous engine."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_factory = sessionmaker(engine, class_=Session, expire_on_commit=False)

    def get_item(self, key: str) -> str | None:
        try:
            with self._session_factory() as session:
                row = session.get(KeyValueDB, key)
                return row.value if row else None
        except SQLAlchemyError as e:
            raise PersistedStoreError(f"Failed to read '{key}': {e}") from e

    def set_item(self, key: str, value: str) -> None:
        try:
            with self._session_factory.begin() as session:
                row = session.get(KeyValueDB, key)
                if row:
                    row.value = value
                else:
                    session.add(KeyValueDB(key=key, value=value))
        except SQLAlchemyError as e:
            raise PersistedStoreError(f"Failed to write '{key}': {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            with self._session_factory.begin() as session:
                session.execute(delete(KeyValueDB).where(KeyValueDB.key == key))
        except SQLAlchemyError as e:
            raise PersistedStoreError(f"Failed to remove '{key}': {e}") from e

    def keys(self) -> list[str]:
        try:
            with self._session_factory() as session:
                return list(session.scalars(select(KeyValueDB.key)).all())
        except SQLAlchemyError as e:
            raise PersistedStoreError(f"Failed to list keys: {e}") from e


MEMORY_STORE_URL = "memory://"


def create_kv_store(url: str, quota_bytes: int | None = None) -> KeyValueStore:
    """
    Build the store named by `url`.

    "memory://" gives a process-local store limited to `quota_bytes`. Any
    other URL is a synchronous SQLAlchemy URL; the table is created if
    missing, and for file-based SQLite the parent directory too.
    """
    if url == MEMORY_STORE_URL:
        return MemoryKeyValueStore(quota_bytes)

    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url)
    KeyValueDB.__table__.create(engine, checkfirst=True)  # type: ignore[attr-defined]
    return SqlKeyValueStore(engine)
