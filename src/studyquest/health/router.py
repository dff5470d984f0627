"""Health, readiness, and version endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from studyquest.config import get_settings
from studyquest.database import get_session
from studyquest.leaderboard.cache import SnapshotCache
from studyquest.progression.notifications import get_redis

router = APIRouter()


async def _check_store(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except Exception as exc:
        return f"error: {exc}"
    return "ok"


async def _check_redis() -> str:
    try:
        await get_redis().ping()
    except Exception as exc:
        return f"error: {exc}"
    return "ok"


def _cache_state(cache: SnapshotCache) -> dict[str, Any]:
    snapshot = cache.snapshot
    return {
        "snapshot_version": snapshot.version if snapshot else None,
        "fresh": cache.is_fresh(),
        "refresh_failures": cache.failure_count,
    }


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: returns 200 if the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    request: Request,
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe.

    Redis only carries notifications, so a Redis outage reports degraded
    without failing the probe. The leaderboard section is informational.
    """
    checks = {"database": await _check_store(db), "redis": await _check_redis()}
    status = "ready" if all(v == "ok" for v in checks.values()) else "degraded"
    return {
        "status": status,
        "checks": checks,
        "leaderboard": _cache_state(request.app.state.leaderboard.cache),
    }


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {"version": settings.app_version, "environment": settings.environment}
