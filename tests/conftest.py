"""Shared test fixtures."""

from __future__ import annotations

import os

# Settings are cached on first use, so test configuration must be in place
# before anything imports studyquest.main.
os.environ.setdefault("SQ_JWT_SECRET", "test-secret-for-pytest-only-" + "x" * 40)
os.environ.setdefault("SQ_LOG_FORMAT", "console")
os.environ.setdefault("SQ_DATABASE_URL", "sqlite+aiosqlite://")

from collections.abc import AsyncGenerator  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.exc import OperationalError  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from studyquest.auth.jwt import create_access_token  # noqa: E402
from studyquest.config import get_settings  # noqa: E402
from studyquest.db.models import Base  # noqa: E402
from studyquest.dependencies import get_db, get_notifier  # noqa: E402
from studyquest.leaderboard.service import LeaderboardService  # noqa: E402
from studyquest.main import create_app  # noqa: E402
from studyquest.progression.notifications import Notifier  # noqa: E402
from studyquest.progression.seed import seed_badges, seed_quest_templates  # noqa: E402


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own BEGIN so SAVEPOINTs nest correctly on SQLite."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):  # type: ignore[no-untyped-def]
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):  # type: ignore[no-untyped-def]
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with all progression tables.

    StaticPool keeps every session on the same connection, so the
    in-memory database survives across sessions.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def seeded(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Badge and quest catalogs, seeded through a short-lived session."""
    async with session_factory() as session:
        await seed_badges(session)
        await seed_quest_templates(session)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession], seeded: None,
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis_client() -> AsyncMock:
    """Redis stand-in recording publishes."""
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    return redis


@pytest.fixture
def notifier(redis_client: AsyncMock) -> Notifier:
    return Notifier(redis_client)


class CommitFailsSession(AsyncSession):
    """Session whose commit fails as if the store dropped the connection."""

    async def commit(self) -> None:
        raise OperationalError("COMMIT", None, ConnectionRefusedError("store unavailable"))


def _app_with_store(session_factory: async_sessionmaker[AsyncSession], redis_client: AsyncMock):
    """The app with the store and Redis swapped for test doubles.

    The lifespan is not run; dependencies are overridden instead.
    """
    app = create_app()
    app.state.leaderboard = LeaderboardService(session_factory, get_settings())

    async def _get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def _get_notifier() -> AsyncGenerator[Notifier, None]:
        yield Notifier(redis_client)

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_notifier] = _get_notifier
    return app


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    seeded: None,
    redis_client: AsyncMock,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app backed by the in-memory store."""
    transport = ASGITransport(app=_app_with_store(session_factory, redis_client))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def unavailable_store_client(
    db_engine: AsyncEngine,
    seeded: None,
    redis_client: AsyncMock,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose store accepts reads and writes but fails every commit."""
    failing = async_sessionmaker(db_engine, class_=CommitFailsSession, expire_on_commit=False)
    transport = ASGITransport(app=_app_with_store(failing, redis_client))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def auth_headers(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def alice_headers() -> dict[str, str]:
    return auth_headers("alice")


@pytest.fixture
def bob_headers() -> dict[str, str]:
    return auth_headers("bob")
