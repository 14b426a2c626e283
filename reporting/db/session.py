"""
Async database engine and session factory.

Uses SQLAlchemy 2.x async engine (asyncpg for PostgreSQL/TimescaleDB in
production, aiosqlite for local development and tests). Provides
module-level engine and session factory singletons.

Streams outlive a single request handler, so route handlers receive the
session factory rather than a session and open one session per store query.

CHANGELOG:
- 2026-10-19: Initial creation
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from reporting.config import get_settings

# Module-level singletons, initialized lazily via init_engine().
async_engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Args:
        database_url: Database URL. Defaults to ``DATABASE_URL`` from settings.

    Returns:
        AsyncEngine: Configured async engine.
    """
    return create_async_engine(database_url or get_settings().database_url, echo=False)


def create_session_factory(
    engine: AsyncEngine | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory.

    Args:
        engine: Optional async engine. If not provided, creates one from config.

    Returns:
        async_sessionmaker: Factory for creating AsyncSession instances.
    """
    if engine is None:
        engine = create_engine()
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def init_engine() -> async_sessionmaker[AsyncSession]:
    """Initialize the module-level async engine and session factory.

    Safe to call multiple times; subsequent calls return the existing factory.

    Returns:
        async_sessionmaker: The module-level session factory.
    """
    global async_engine, async_session_factory  # noqa: PLW0603
    if async_engine is None or async_session_factory is None:
        async_engine = create_engine()
        async_session_factory = create_session_factory(async_engine)
    return async_session_factory


async def dispose_engine() -> None:
    """Dispose of the module-level engine, closing pooled connections."""
    global async_engine, async_session_factory  # noqa: PLW0603
    if async_engine is not None:
        await async_engine.dispose()
    async_engine = None
    async_session_factory = None
