from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from cardbinder.db.database import build_session_factory
from cardbinder.db.operations import create_collection
from cardbinder.db.ownership_store import OwnershipStore
from cardbinder.models.card import Card
from cardbinder.models.db import Base


class FakeClock:
    """Manually advanced clock in epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def async_engine(tmp_path: Path) -> AsyncEngine:
    """File-backed SQLite engine so every session sees the same data."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cardbinder.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(async_engine)


@pytest.fixture
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncSession:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> OwnershipStore:
    return OwnershipStore(session_factory)


@pytest.fixture
async def collection_id(session_factory: async_sessionmaker[AsyncSession]) -> str:
    """An empty collection owned by user-1."""
    async with session_factory() as session, session.begin():
        collection = await create_collection(session, "user-1", "Base Set", language="en")
        return collection.id


@pytest.fixture
def sample_cards() -> list[Card]:
    """Four Base Set cards in canonical form."""
    return [
        Card(
            id="base1-4",
            name="Charizard",
            rarity="Rare Holo",
            types=("Fire",),
            number="4",
            image_small="https://images.example/base1/4.png",
            set_id="base1",
            set_name="Base",
            set_total=102,
        ),
        Card(
            id="base1-2",
            name="Blastoise",
            rarity="Rare Holo",
            types=("Water",),
            number="2",
            set_id="base1",
            set_name="Base",
            set_total=102,
        ),
        Card(
            id="base1-44",
            name="Bulbasaur",
            rarity="Common",
            types=("Grass",),
            number="44",
            set_id="base1",
            set_name="Base",
            set_total=102,
        ),
        Card(
            id="base1-58",
            name="Pikachu",
            rarity="Common",
            types=("Lightning",),
            number="58",
            set_id="base1",
            set_name="Base",
            set_total=102,
        ),
    ]
