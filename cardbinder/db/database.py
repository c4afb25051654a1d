"""
Database engine and session management.

Provides the async SQLAlchemy engine and session factory backing the
collection and ownership documents.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cardbinder.config import Settings
from cardbinder.models.db import Base


def build_engine(app_settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured document store."""
    return create_async_engine(
        app_settings.database_url,
        echo=app_settings.debug,
        pool_pre_ping=True,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory for an engine; sessions keep attributes after commit."""
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


async def init_db(bind: AsyncEngine) -> None:
    """
    Initialize database tables.

    Creates all tables defined in the ORM models.
    Should be called once at application startup.
    """
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
