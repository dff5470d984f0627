"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import Request

from studyquest.config import get_settings
from studyquest.database import get_session as _get_session
from studyquest.leaderboard.service import LeaderboardService
from studyquest.progression.day_clock import DayClock
from studyquest.progression.notifications import Notifier
from studyquest.progression.notifications import get_redis as _get_redis

get_db = _get_session


async def get_notifier() -> AsyncGenerator[Notifier, None]:
    """Yield a per-request notification buffer bound to the Redis pool."""
    notifier = Notifier(_get_redis())
    try:
        yield notifier
    finally:
        notifier.discard()


def get_day_clock() -> DayClock:
    return DayClock(get_settings().day_boundary_timezone)


def get_daily_quest_count() -> int:
    return get_settings().daily_quest_count


def get_leaderboard_service(request: Request) -> LeaderboardService:
    """The process-wide leaderboard service created by the app factory."""
    return request.app.state.leaderboard
