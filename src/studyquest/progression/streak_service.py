"""Daily study streak state machine.

A streak extends when the user studies on the calendar day after their
last study day, stays put on a same-day repeat, and resets to 1 after a
gap. Calendar days come from the configured DayClock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from studyquest.db.models import UserProgression
from studyquest.progression.day_clock import DayClock, is_previous_day, parse_day_key
from studyquest.progression.errors import ProgressionConflictError
from studyquest.progression.notifications import Notifier, commit_and_publish, notify_streak_milestone
from studyquest.progression.rewards import calculate_xp_reward
from studyquest.progression.store import get_or_create_progression, get_progression
from studyquest.progression.xp_service import grant_xp

logger = logging.getLogger(__name__)

STREAK_MILESTONE_INTERVAL = 7
MAX_STREAK_WRITE_ATTEMPTS = 3


@dataclass(frozen=True)
class StreakUpdate:
    current_streak: int
    longest_streak: int
    is_new_streak: bool
    xp_awarded: int
    milestone: int | None


def milestone_for(streak: int) -> int | None:
    if streak > 0 and streak % STREAK_MILESTONE_INTERVAL == 0:
        return streak
    return None


async def update_streak(
    db: AsyncSession,
    notifier: Notifier,
    user_id: str,
    *,
    today: date | None = None,
    clock: DayClock | None = None,
) -> StreakUpdate:
    """Record a study day for ``user_id`` and commit.

    The write is guarded on the previously read ``last_study_date``; a
    concurrent writer that got there first forces a re-read, so two calls
    on the same day never both count.
    """
    if today is None:
        today = (clock or DayClock()).today()
    day_key = today.isoformat()

    for _ in range(MAX_STREAK_WRITE_ATTEMPTS):
        record = await get_or_create_progression(db, user_id)
        previous_key = record.last_study_date
        last = parse_day_key(previous_key)

        # Same day, or a stored day ahead of ours: nothing to count
        if last is not None and last >= today:
            return StreakUpdate(record.current_streak, record.longest_streak, False, 0, None)

        extended = last is not None and is_previous_day(last, today)
        new_streak = record.current_streak + 1 if extended else 1
        longest = max(record.longest_streak, new_streak)

        guard = (
            UserProgression.last_study_date.is_(None)
            if previous_key is None
            else UserProgression.last_study_date == previous_key
        )
        result = await db.execute(
            update(UserProgression)
            .where(UserProgression.user_id == user_id, guard)
            .values(
                current_streak=new_streak,
                longest_streak=longest,
                last_study_date=day_key,
                updated_at=datetime.now(timezone.utc),
            )
            .returning(UserProgression.user_id)
            .execution_options(synchronize_session=False)
        )
        if result.first() is not None:
            break
        logger.debug("Streak write for %s lost a race, retrying", user_id)
    else:
        msg = f"Could not record study day for {user_id}: concurrent updates"
        raise ProgressionConflictError(msg)

    xp_awarded = 0
    if extended:
        award = await grant_xp(
            db,
            notifier,
            user_id,
            calculate_xp_reward("daily_streak", {"streak": new_streak}),
            "daily_streak",
            source_id=day_key,
            description=f"{new_streak}-day study streak",
            idempotency_key=f"streak:{user_id}:{day_key}",
        )
        xp_awarded = award.xp_awarded if award else 0

    milestone = milestone_for(new_streak) if extended else None
    if milestone is not None:
        notify_streak_milestone(notifier, user_id, milestone)

    await commit_and_publish(db, notifier)
    return StreakUpdate(
        current_streak=new_streak,
        longest_streak=longest,
        is_new_streak=True,
        xp_awarded=xp_awarded,
        milestone=milestone,
    )


async def get_streak(
    db: AsyncSession,
    user_id: str,
    *,
    today: date | None = None,
    clock: DayClock | None = None,
) -> dict[str, object]:
    """Current streak state. A streak whose last day is before yesterday reads as 0."""
    record = await get_progression(db, user_id)
    if today is None:
        today = (clock or DayClock()).today()
    if record is None:
        return {"current_streak": 0, "longest_streak": 0, "last_study_date": None, "studied_today": False}

    last = parse_day_key(record.last_study_date)
    active = last is not None and (last == today or is_previous_day(last, today))
    return {
        "current_streak": record.current_streak if active else 0,
        "longest_streak": record.longest_streak,
        "last_study_date": last,
        "studied_today": last == today,
    }
