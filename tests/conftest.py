"""
Shared test fixtures for the reporting tests.

Provides test environment variables, a mocked Redis client, a file-backed
SQLite sample store (aiosqlite for the code under test, plain sqlite3 for
seeding), and a TestClient wired to that store with a fixed clock.

CHANGELOG:
- 2026-10-19: Initial creation
"""

from collections.abc import Callable, Generator, Iterable
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from reporting.config import get_settings
from reporting.db.models import Base

# Fixed "now" used by all stream tests.
NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _set_test_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Set required environment variables for testing.

    These are test-only values that allow the FastAPI app to start
    without connecting to real database or Redis services.
    """
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setenv("LIVE_POLL_INTERVAL_S", "0.01")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def mock_redis() -> AsyncMock:
    """Create a mock async Redis client.

    Returns:
        AsyncMock: A mock that behaves like a redis.asyncio.Redis client.
    """
    client = AsyncMock()
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock()
    client.delete = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture(autouse=True)
def _patch_redis(mock_redis: AsyncMock) -> Generator[AsyncMock, None, None]:
    """Route every Redis connection to the mock client."""
    with patch(
        "reporting.cache.redis_client.get_redis",
        AsyncMock(return_value=mock_redis),
    ) as get_redis:
        yield get_redis


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    """Create an empty sample store schema in a temporary SQLite file."""
    path = tmp_path / "reporting.db"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    engine.dispose()
    return path


@pytest.fixture()
def seed(db_path: Path) -> Callable[[Iterable[Base]], None]:
    """Return a helper that inserts ORM rows into the test store."""

    def _seed(rows: Iterable[Base]) -> None:
        engine = create_engine(f"sqlite:///{db_path}")
        with Session(engine) as session:
            session.add_all(list(rows))
            session.commit()
        engine.dispose()

    return _seed


@pytest.fixture()
def session_factory(db_path: Path) -> async_sessionmaker[AsyncSession]:
    """Async session factory over the test store.

    NullPool opens a fresh connection per session, so the factory can be
    used from the TestClient's event loop as well as from async tests.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
def client(
    session_factory: async_sessionmaker[AsyncSession],
) -> Generator[TestClient, None, None]:
    """Create a FastAPI TestClient wired to the test store.

    Uses a context manager to ensure the application lifespan events
    (startup/shutdown) are properly triggered. Streams see a fixed clock
    at ``NOW``.

    Yields:
        TestClient: Configured test client for the FastAPI app.
    """
    from reporting.api.deps import get_clock, get_session_factory
    from reporting.api.main import app

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_clock] = lambda: (lambda: NOW)
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
