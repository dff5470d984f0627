"""Badge evaluation: predicate checks, progress tracking, and unlocks.

Badge XP flows back through ``grant_xp``; since that can raise the level,
evaluation repeats until a pass unlocks nothing new.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from studyquest.db.models import BadgeDefinition, UserBadge, UserProgression
from studyquest.progression.errors import BadgeNotFoundError, BadgeNotManualError
from studyquest.progression.notifications import Notifier, commit_and_publish, notify_badge_earned
from studyquest.progression.rewards import calculate_xp_reward
from studyquest.progression.store import get_or_create_progression, get_progression
from studyquest.progression.xp_service import grant_xp

logger = logging.getLogger(__name__)

MANUAL_REQUIREMENT = "manual"

# requirement_type -> UserProgression attribute
REQUIREMENT_FIELDS: dict[str, str] = {
    "streak_days": "current_streak",
    "quizzes_completed": "total_quizzes",
    "perfect_scores": "perfect_scores",
    "courses_completed": "completed_courses",
    "study_minutes": "total_study_minutes",
    "level_reached": "current_level",
    "xp_total": "current_xp",
}


@dataclass(frozen=True)
class BadgeUnlock:
    badge: BadgeDefinition
    already_earned: bool
    xp_awarded: int


def badge_progress(value: int, requirement: int) -> int:
    """Whole-percent progress toward ``requirement``, clamped to 0..100."""
    if requirement <= 0:
        return 100
    return math.floor(min(100.0, max(0.0, value / requirement * 100)))


def requirement_met(record: UserProgression, badge: BadgeDefinition) -> tuple[bool, int]:
    """Return (satisfied, progress) for a predicate-driven badge."""
    field = REQUIREMENT_FIELDS.get(badge.requirement_type)
    if field is None:
        return False, 0
    value = getattr(record, field) or 0
    return value >= badge.requirement_value, badge_progress(value, badge.requirement_value)


async def _load_user_badges(db: AsyncSession, user_id: str) -> dict[int, UserBadge]:
    result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return {ub.badge_id: ub for ub in result.scalars()}


async def _ensure_user_badge(
    db: AsyncSession, user_id: str, badge_id: int, progress: int = 0,
) -> None:
    """Create the user's badge row if missing; concurrent creators are tolerated."""
    try:
        async with db.begin_nested():
            db.add(UserBadge(user_id=user_id, badge_id=badge_id, progress=progress))
    except IntegrityError:
        logger.debug("user_badges row for %s/%s already exists", user_id, badge_id)


async def _earn_badge(
    db: AsyncSession,
    notifier: Notifier,
    user_id: str,
    badge: BadgeDefinition,
    state: UserBadge | None,
    granted_by: str | None = None,
) -> int | None:
    """Flip ``earned`` false -> true. Returns XP granted, or None if already earned."""
    if state is None:
        await _ensure_user_badge(db, user_id, badge.id)

    now = datetime.now(timezone.utc)
    result = await db.execute(
        update(UserBadge)
        .where(
            UserBadge.user_id == user_id,
            UserBadge.badge_id == badge.id,
            UserBadge.earned.is_(False),
        )
        .values(earned=True, earned_at=now, progress=100, granted_by=granted_by, updated_at=now)
        .returning(UserBadge.id)
        .execution_options(synchronize_session=False)
    )
    if result.first() is None:
        return None

    award = await grant_xp(
        db,
        notifier,
        user_id,
        calculate_xp_reward("earn_badge", {"badge_xp": badge.xp_reward}),
        "earn_badge",
        source_id=badge.slug,
        description=f"Badge earned: {badge.name}",
        idempotency_key=f"badge:{badge.slug}:{user_id}",
    )
    xp = award.xp_awarded if award else 0
    logger.info("User %s earned badge %s (+%d XP)", user_id, badge.slug, xp)
    notify_badge_earned(notifier, user_id, badge.slug, badge.name, badge.rarity, xp)
    return xp


async def _record_progress(
    db: AsyncSession, user_id: str, badge: BadgeDefinition, state: UserBadge | None, progress: int,
) -> None:
    if state is None:
        if progress > 0:
            await _ensure_user_badge(db, user_id, badge.id, progress)
        return
    if state.progress == progress:
        return
    await db.execute(
        update(UserBadge)
        .where(UserBadge.id == state.id, UserBadge.earned.is_(False))
        .values(progress=progress, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )


async def _active_badges(db: AsyncSession) -> list[BadgeDefinition]:
    result = await db.execute(
        select(BadgeDefinition)
        .where(BadgeDefinition.is_active.is_(True))
        .order_by(BadgeDefinition.sort_order, BadgeDefinition.id)
    )
    return list(result.scalars())


async def evaluate_badges(db: AsyncSession, notifier: Notifier, user_id: str) -> list[BadgeDefinition]:
    """Unlock every satisfied badge and refresh progress on the rest. Does not commit."""
    badges = [b for b in await _active_badges(db) if b.requirement_type != MANUAL_REQUIREMENT]
    newly_earned: list[BadgeDefinition] = []

    while True:
        record = await get_or_create_progression(db, user_id)
        states = await _load_user_badges(db, user_id)
        unlocked_this_pass = False

        for badge in badges:
            state = states.get(badge.id)
            if state is not None and state.earned:
                continue
            satisfied, progress = requirement_met(record, badge)
            if satisfied:
                if await _earn_badge(db, notifier, user_id, badge, state) is not None:
                    newly_earned.append(badge)
                    unlocked_this_pass = True
            else:
                await _record_progress(db, user_id, badge, state, progress)

        if not unlocked_this_pass:
            break

    return newly_earned


async def check_badges(db: AsyncSession, notifier: Notifier, user_id: str) -> list[BadgeDefinition]:
    """Evaluate all badges for ``user_id`` and commit. Returns newly earned badges."""
    newly_earned = await evaluate_badges(db, notifier, user_id)
    await commit_and_publish(db, notifier)
    return newly_earned


async def unlock_badge(
    db: AsyncSession,
    notifier: Notifier,
    user_id: str,
    slug: str,
    *,
    granted_by: str | None = None,
) -> BadgeUnlock:
    """Grant a manual badge. Idempotent: a repeat reports ``already_earned``."""
    result = await db.execute(
        select(BadgeDefinition).where(BadgeDefinition.slug == slug, BadgeDefinition.is_active.is_(True))
    )
    badge = result.scalar_one_or_none()
    if badge is None:
        raise BadgeNotFoundError(slug)
    if badge.requirement_type != MANUAL_REQUIREMENT:
        raise BadgeNotManualError(slug)

    states = await _load_user_badges(db, user_id)
    xp = await _earn_badge(db, notifier, user_id, badge, states.get(badge.id), granted_by=granted_by)
    await commit_and_publish(db, notifier)
    if xp is None:
        return BadgeUnlock(badge=badge, already_earned=True, xp_awarded=0)
    return BadgeUnlock(badge=badge, already_earned=False, xp_awarded=xp)


async def get_badge_collection(db: AsyncSession, user_id: str) -> list[dict[str, Any]]:
    """Every active badge with the user's earned flag and progress."""
    badges = await _active_badges(db)
    states = await _load_user_badges(db, user_id)
    record = await get_progression(db, user_id)

    collection: list[dict[str, Any]] = []
    for badge in badges:
        state = states.get(badge.id)
        earned = bool(state and state.earned)
        if earned:
            progress = 100
        elif state is not None:
            progress = state.progress
        elif record is not None and badge.requirement_type != MANUAL_REQUIREMENT:
            progress = requirement_met(record, badge)[1]
        else:
            progress = 0
        collection.append({
            "slug": badge.slug,
            "name": badge.name,
            "description": badge.description,
            "icon": badge.icon,
            "category": badge.category,
            "rarity": badge.rarity,
            "xp_reward": badge.xp_reward,
            "requirement_type": badge.requirement_type,
            "requirement_value": badge.requirement_value,
            "earned": earned,
            "earned_at": state.earned_at if state else None,
            "progress": progress,
        })
    return collection
