"""
FastAPI dependency injection providers.

Provides database sessions, the session factory used by streams, the
clock and the service settings for use with FastAPI's Depends() mechanism.

CHANGELOG:
- 2026-10-19: Initial creation
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reporting.config import ReportingSettings
from reporting.db.session import init_engine
from reporting.services.windows import Clock, utc_now


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the session factory, initialising the engine on first use.

    Streams keep running after the route handler returned, so they open
    their own sessions from this factory instead of sharing one session.

    Returns:
        async_sessionmaker: The module-level session factory.
    """
    return init_engine()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a single request.

    Yields:
        AsyncSession: An async SQLAlchemy session.
    """
    async with get_session_factory()() as session:
        yield session


def get_clock() -> Clock:
    """Return the clock used to resolve stream windows."""
    return utc_now


def get_settings(request: Request) -> ReportingSettings:
    """Return the settings loaded at application startup."""
    return request.app.state.settings


# Type aliases for injecting dependencies via FastAPI Depends().
# Usage in route handlers:
#   async def my_route(db: DbSession):
#       result = await db.execute(...)
DbSession = Annotated[AsyncSession, Depends(get_db)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
StreamClock = Annotated[Clock, Depends(get_clock)]
Settings = Annotated[ReportingSettings, Depends(get_settings)]
