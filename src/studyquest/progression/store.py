"""Progression store access: lazy record creation and atomic XP writes."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from studyquest.db.models import UserProgression
from studyquest.progression.levels import LEVEL_THRESHOLDS

logger = logging.getLogger(__name__)

COUNTER_FIELDS: frozenset[str] = frozenset({
    "total_study_minutes",
    "total_quizzes",
    "perfect_scores",
    "completed_courses",
})


def level_case(xp_expr: Any) -> Any:
    """SQL CASE expression mapping a cumulative XP expression to its level."""
    whens = [(xp_expr >= t["min_xp"], t["level"]) for t in reversed(LEVEL_THRESHOLDS[1:])]
    return case(*whens, else_=1)


async def get_progression(db: AsyncSession, user_id: str) -> UserProgression | None:
    """Read the user's record, refreshing any stale copy in the session."""
    result = await db.execute(
        select(UserProgression)
        .where(UserProgression.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_or_create_progression(db: AsyncSession, user_id: str) -> UserProgression:
    """Get the user's record, creating the zero record on first touch."""
    record = await get_progression(db, user_id)
    if record is not None:
        return record

    try:
        async with db.begin_nested():
            record = UserProgression(user_id=user_id)
            db.add(record)
    except IntegrityError:
        # Lost the insert race; the winner's row is visible now
        existing = await get_progression(db, user_id)
        if existing is None:
            raise
        return existing
    return record


async def apply_xp(
    db: AsyncSession,
    user_id: str,
    amount: int,
    counters: dict[str, int] | None = None,
) -> tuple[int, int]:
    """Add XP and counter deltas in one UPDATE. Returns (current_xp, current_level).

    The level is recomputed from the new XP inside the same statement, so
    concurrent awards can never leave ``current_level`` out of step.
    """
    new_xp = UserProgression.current_xp + amount
    values: dict[str, Any] = {
        "current_xp": new_xp,
        "current_level": level_case(new_xp),
        "updated_at": datetime.now(timezone.utc),
    }
    for field, delta in (counters or {}).items():
        if field not in COUNTER_FIELDS:
            msg = f"Unknown progression counter: {field}"
            raise ValueError(msg)
        values[field] = getattr(UserProgression, field) + delta

    stmt = (
        update(UserProgression)
        .where(UserProgression.user_id == user_id)
        .values(**values)
        .returning(UserProgression.current_xp, UserProgression.current_level)
        .execution_options(synchronize_session=False)
    )
    row = (await db.execute(stmt)).one()
    return row.current_xp, row.current_level
