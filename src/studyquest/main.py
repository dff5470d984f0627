"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from studyquest.config import Settings, get_settings
from studyquest.database import close_db, get_session_factory, init_db
from studyquest.health.router import router as health_router
from studyquest.leaderboard.router import router as leaderboard_router
from studyquest.leaderboard.service import LeaderboardService
from studyquest.middleware import setup_middleware
from studyquest.progression.notifications import close_redis, init_redis
from studyquest.progression.router import router as progression_router
from studyquest.progression.seed import seed_badges, seed_quest_templates

logger = logging.getLogger(__name__)


def _open_session() -> AsyncSession:
    return get_session_factory()()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings)
    await init_redis(settings.redis_url)

    # Seed badge and quest catalogs (idempotent)
    try:
        async with _open_session() as db:
            await seed_badges(db)
            await seed_quest_templates(db)
    except SQLAlchemyError:
        logger.warning("Catalog seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="StudyQuest Progression API",
        description="XP, levels, streaks, badges, daily quests and leaderboards for StudyQuest learners",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.leaderboard = LeaderboardService(_open_session, settings)

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(progression_router)
    app.include_router(leaderboard_router)

    return app


app = create_app()
