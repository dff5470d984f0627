"""Per-user rank history recorded from refreshed leaderboard snapshots.

One row per user per day: later refreshes on the same day overwrite that
day's row. Rank and tier changes are measured against the user's latest
earlier day, so a positive ``rank_change`` means the user moved up.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy import and_, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from studyquest.db.models import RankHistory
from studyquest.leaderboard.ranking import LeaderboardSnapshot

TIER_ORDER = ("platinum", "gold", "silver", "bronze")


def tier_change(previous: str, current: str) -> str | None:
    """'promoted', 'demoted', or None when the tier is unchanged."""
    before, after = TIER_ORDER.index(previous), TIER_ORDER.index(current)
    if after < before:
        return "promoted"
    elif after > before:
        return "demoted"
    return None


async def record_rank_history(db: AsyncSession, snapshot: LeaderboardSnapshot, day_key: str) -> int:
    """Write today's row for every ranked user in ``snapshot`` and commit."""
    if not snapshot.entries:
        return 0
    user_ids = [e.user_id for e in snapshot.entries]

    latest = (
        select(RankHistory.user_id, func.max(RankHistory.day_key).label("day_key"))
        .where(RankHistory.user_id.in_(user_ids), RankHistory.day_key < day_key)
        .group_by(RankHistory.user_id)
        .subquery()
    )
    previous = {
        row.user_id: row
        for row in (
            await db.execute(
                select(RankHistory).join(
                    latest,
                    and_(RankHistory.user_id == latest.c.user_id, RankHistory.day_key == latest.c.day_key),
                )
            )
        ).scalars()
    }
    todays = {
        row.user_id: row
        for row in (
            await db.execute(
                select(RankHistory).where(RankHistory.user_id.in_(user_ids), RankHistory.day_key == day_key)
            )
        ).scalars()
    }

    now = datetime.now(timezone.utc)
    for entry in snapshot.entries:
        prev = previous.get(entry.user_id)
        values = {
            "rank": entry.rank,
            "xp": entry.xp,
            "level": entry.level,
            "tier": entry.tier,
            "rank_change": prev.rank - entry.rank if prev else 0,
            "tier_change": tier_change(prev.tier, entry.tier) if prev else None,
            "recorded_at": now,
        }
        row = todays.get(entry.user_id)
        if row is None:
            db.add(RankHistory(user_id=entry.user_id, day_key=day_key, **values))
        else:
            for field, value in values.items():
                setattr(row, field, value)

    await db.commit()
    return len(snapshot.entries)


async def prune_rank_history(db: AsyncSession, before_day_key: str) -> int:
    """Delete rows recorded before ``before_day_key`` and commit."""
    result = await db.execute(
        delete(RankHistory)
        .where(RankHistory.day_key < before_day_key)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0


def rank_stats(history: Sequence[Any], today: date) -> dict[str, Any]:
    """Summary over ``history`` rows ordered newest first."""
    if not history:
        return {
            "current_rank": None,
            "current_tier": None,
            "best_rank": None,
            "worst_rank": None,
            "average_rank": None,
            "rank_change_7d": 0,
            "rank_change_period": 0,
            "tier_changes": 0,
        }

    current = history[0]
    ranks = [h.rank for h in history]
    week_ago = (today - timedelta(days=7)).isoformat()
    week_old = next((h for h in history if h.day_key <= week_ago), None)
    return {
        "current_rank": current.rank,
        "current_tier": current.tier,
        "best_rank": min(ranks),
        "worst_rank": max(ranks),
        "average_rank": round(sum(ranks) / len(ranks)),
        "rank_change_7d": week_old.rank - current.rank if week_old else 0,
        "rank_change_period": history[-1].rank - current.rank,
        "tier_changes": sum(1 for h in history if h.tier_change),
    }


async def get_rank_history(
    db: AsyncSession, user_id: str, *, today: date, days: int = 30,
) -> dict[str, Any]:
    """The user's rows from the last ``days`` days, newest first, with stats."""
    since = (today - timedelta(days=days)).isoformat()
    result = await db.execute(
        select(RankHistory)
        .where(RankHistory.user_id == user_id, RankHistory.day_key >= since)
        .order_by(RankHistory.day_key.desc())
    )
    history = list(result.scalars())
    return {"entries": history, "stats": rank_stats(history, today)}
