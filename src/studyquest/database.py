"""Async SQLAlchemy engine and session management for the progression store."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from studyquest.config import Settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _connect_args(url: str) -> dict[str, object]:
    # Prepared statement caching breaks behind pgbouncer in transaction mode
    if url.startswith("postgresql+asyncpg"):
        return {"statement_cache_size": 0}
    return {}


async def init_db(settings: Settings) -> None:
    """Create the engine and session factory from the pool settings.

    ``db_pool_timeout_seconds`` bounds how long a request waits for a
    connection; on expiry SQLAlchemy raises and the request gets a 503.
    """
    global _engine, _session_factory  # noqa: PLW0603
    _engine = create_async_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout_seconds,
        pool_pre_ping=True,
        connect_args=_connect_args(settings.database_url),
    )
    # Objects stay loaded after commit; responses are built from them afterwards
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)


async def close_db() -> None:
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work outside a request (startup seeding, leaderboard loads)."""
    if _session_factory is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session (FastAPI dependency)."""
    async with get_session_factory()() as session:
        yield session
