"""Daily quest sets: materialization, progress, and the all-complete bonus.

Each user gets one set per calendar day, drawn deterministically from
the active quest templates. Completion and the bonus are single-row
compare-and-set updates, so each transition happens exactly once.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import case, exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from studyquest.db.models import DailyQuest, DailyQuestSet, QuestTemplate
from studyquest.progression.day_clock import DayClock
from studyquest.progression.errors import QuestNotFoundError
from studyquest.progression.notifications import Notifier, commit_and_publish, notify_quest_completed
from studyquest.progression.rewards import calculate_xp_reward
from studyquest.progression.xp_service import grant_xp

logger = logging.getLogger(__name__)

DEFAULT_DAILY_QUEST_COUNT = 3


@dataclass(frozen=True)
class QuestProgress:
    quest: DailyQuest
    just_completed: bool
    xp_awarded: int
    completed_count: int
    total_quests: int


@dataclass(frozen=True)
class QuestBonus:
    bonus_awarded: bool
    bonus_xp: int
    already_awarded: bool
    completed_count: int
    total_quests: int


def pick_templates(
    templates: Sequence[QuestTemplate], user_id: str, day_key: str, count: int,
) -> list[QuestTemplate]:
    """Choose ``count`` templates; the same user and day always get the same pick."""
    ordered = sorted(templates, key=lambda t: (t.sort_order, t.slug))
    if len(ordered) <= count:
        return ordered
    rng = random.Random(f"{user_id}:{day_key}")  # noqa: S311
    picked = rng.sample(ordered, count)
    return sorted(picked, key=ordered.index)


async def _get_set(db: AsyncSession, user_id: str, day_key: str) -> DailyQuestSet | None:
    result = await db.execute(
        select(DailyQuestSet)
        .where(DailyQuestSet.user_id == user_id, DailyQuestSet.day_key == day_key)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _load_quests(db: AsyncSession, set_id: int) -> list[DailyQuest]:
    result = await db.execute(
        select(DailyQuest)
        .where(DailyQuest.set_id == set_id)
        .order_by(DailyQuest.position)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars())


async def get_or_create_daily_set(
    db: AsyncSession,
    user_id: str,
    day_key: str,
    count: int = DEFAULT_DAILY_QUEST_COUNT,
) -> tuple[DailyQuestSet, list[DailyQuest]]:
    """Load the user's set for ``day_key``, materializing it on first access."""
    quest_set = await _get_set(db, user_id, day_key)
    if quest_set is None:
        templates = (
            await db.execute(select(QuestTemplate).where(QuestTemplate.is_active.is_(True)))
        ).scalars().all()
        picked = pick_templates(templates, user_id, day_key, count)
        try:
            async with db.begin_nested():
                quest_set = DailyQuestSet(user_id=user_id, day_key=day_key)
                db.add(quest_set)
                await db.flush()
                for position, template in enumerate(picked):
                    db.add(DailyQuest(
                        set_id=quest_set.id,
                        position=position,
                        quest_id=template.slug,
                        title=template.title,
                        description=template.description,
                        action_type=template.action_type,
                        target=template.target,
                        xp_reward=template.xp_reward,
                    ))
        except IntegrityError:
            quest_set = await _get_set(db, user_id, day_key)
            if quest_set is None:
                raise
        else:
            logger.info("Materialized %d daily quests for %s on %s", len(picked), user_id, day_key)

    return quest_set, await _load_quests(db, quest_set.id)


def _summary(quest_set: DailyQuestSet, quests: list[DailyQuest]) -> dict[str, Any]:
    completed = sum(1 for q in quests if q.completed)
    return {
        "day_key": quest_set.day_key,
        "quests": quests,
        "completed_count": completed,
        "total_quests": len(quests),
        "bonus_awarded": quest_set.bonus_awarded,
        "bonus_xp_available": calculate_xp_reward(
            "complete_quest_bonus", {"quest_xp_total": sum(q.xp_reward for q in quests)}
        ),
    }


async def get_daily_quests(
    db: AsyncSession,
    user_id: str,
    *,
    day_key: str | None = None,
    clock: DayClock | None = None,
    count: int = DEFAULT_DAILY_QUEST_COUNT,
) -> dict[str, Any]:
    """Today's quest set with completion summary. Commits a newly materialized set."""
    day_key = day_key or (clock or DayClock()).day_key()
    quest_set, quests = await get_or_create_daily_set(db, user_id, day_key, count)
    await db.commit()
    return _summary(quest_set, quests)


async def _advance_quest(
    db: AsyncSession,
    notifier: Notifier,
    user_id: str,
    day_key: str,
    quest: DailyQuest,
    increment: int,
) -> tuple[bool, int]:
    """Apply ``increment`` to an open quest. Returns (just_completed, xp_awarded)."""
    # Progress is clamped at the target, so no delta past it changes the outcome
    # and oversized ones must not reach the integer column.
    step = min(increment, quest.target)
    new_progress = DailyQuest.progress + step
    result = await db.execute(
        update(DailyQuest)
        .where(DailyQuest.id == quest.id, DailyQuest.completed.is_(False))
        .values(
            progress=case((new_progress >= DailyQuest.target, DailyQuest.target), else_=new_progress),
            completed=new_progress >= DailyQuest.target,
        )
        .returning(DailyQuest.completed)
        .execution_options(synchronize_session=False)
    )
    row = result.first()
    if row is None or not row.completed:
        return False, 0

    # This caller's update is the one that flipped completed -> true
    await db.execute(
        update(DailyQuest)
        .where(DailyQuest.id == quest.id)
        .values(completed_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    award = await grant_xp(
        db,
        notifier,
        user_id,
        calculate_xp_reward("complete_quest", {"quest_xp": quest.xp_reward}),
        "complete_quest",
        source_id=quest.quest_id,
        description=f"Quest completed: {quest.title}",
        idempotency_key=f"quest:{user_id}:{day_key}:{quest.quest_id}",
    )
    xp = award.xp_awarded if award else 0
    notify_quest_completed(notifier, user_id, quest.quest_id, quest.title, xp)
    return True, xp


async def update_quest_progress(
    db: AsyncSession,
    notifier: Notifier,
    user_id: str,
    quest_id: str,
    increment: int,
    *,
    day_key: str | None = None,
    clock: DayClock | None = None,
    count: int = DEFAULT_DAILY_QUEST_COUNT,
) -> QuestProgress:
    """Advance one quest in today's set and commit.

    Progress is clamped at the target, whatever the size of ``increment``.
    Completed quests and non-positive increments are no-ops. Raises
    QuestNotFoundError for ids outside the set.
    """
    day_key = day_key or (clock or DayClock()).day_key()
    quest_set, quests = await get_or_create_daily_set(db, user_id, day_key, count)
    quest = next((q for q in quests if q.quest_id == quest_id), None)
    if quest is None:
        raise QuestNotFoundError(quest_id)

    just_completed, xp = False, 0
    if increment > 0 and not quest.completed:
        just_completed, xp = await _advance_quest(db, notifier, user_id, day_key, quest, increment)

    await commit_and_publish(db, notifier)
    quests = await _load_quests(db, quest_set.id)
    current = next(q for q in quests if q.quest_id == quest_id)
    return QuestProgress(
        quest=current,
        just_completed=just_completed,
        xp_awarded=xp,
        completed_count=sum(1 for q in quests if q.completed),
        total_quests=len(quests),
    )


async def record_quest_action(
    db: AsyncSession,
    notifier: Notifier,
    user_id: str,
    action_type: str,
    value: int = 1,
    *,
    day_key: str | None = None,
    clock: DayClock | None = None,
    count: int = DEFAULT_DAILY_QUEST_COUNT,
) -> list[QuestProgress]:
    """Advance every open quest of ``action_type`` in today's set and commit."""
    day_key = day_key or (clock or DayClock()).day_key()
    quest_set, quests = await get_or_create_daily_set(db, user_id, day_key, count)

    transitions: dict[str, tuple[bool, int]] = {}
    if value > 0:
        for quest in quests:
            if quest.action_type == action_type and not quest.completed:
                transitions[quest.quest_id] = await _advance_quest(
                    db, notifier, user_id, day_key, quest, value
                )

    await commit_and_publish(db, notifier)
    quests = await _load_quests(db, quest_set.id)
    completed = sum(1 for q in quests if q.completed)
    return [
        QuestProgress(
            quest=q,
            just_completed=transitions[q.quest_id][0],
            xp_awarded=transitions[q.quest_id][1],
            completed_count=completed,
            total_quests=len(quests),
        )
        for q in quests
        if q.quest_id in transitions
    ]


async def complete_quest_bonus(
    db: AsyncSession,
    notifier: Notifier,
    user_id: str,
    *,
    day_key: str | None = None,
    clock: DayClock | None = None,
    count: int = DEFAULT_DAILY_QUEST_COUNT,
) -> QuestBonus:
    """Award the all-quests-complete bonus once per set and commit.

    The flag flips in a single UPDATE guarded on ``bonus_awarded = false``
    and on no open quest remaining; only the caller whose update matched
    grants XP.
    """
    day_key = day_key or (clock or DayClock()).day_key()
    quest_set, quests = await get_or_create_daily_set(db, user_id, day_key, count)
    completed = sum(1 for q in quests if q.completed)

    if quest_set.bonus_awarded:
        return QuestBonus(True, 0, True, completed, len(quests))
    if not quests or completed < len(quests):
        await db.commit()
        return QuestBonus(False, 0, False, completed, len(quests))

    open_quest = exists().where(DailyQuest.set_id == quest_set.id, DailyQuest.completed.is_(False))
    result = await db.execute(
        update(DailyQuestSet)
        .where(
            DailyQuestSet.id == quest_set.id,
            DailyQuestSet.bonus_awarded.is_(False),
            ~open_quest,
        )
        .values(bonus_awarded=True, bonus_awarded_at=datetime.now(timezone.utc))
        .returning(DailyQuestSet.id)
        .execution_options(synchronize_session=False)
    )
    if result.first() is None:
        # Someone else flipped it between our read and write
        await db.commit()
        return QuestBonus(True, 0, True, completed, len(quests))

    quest_xp_total = sum(q.xp_reward for q in quests)
    award = await grant_xp(
        db,
        notifier,
        user_id,
        calculate_xp_reward("complete_quest_bonus", {"quest_xp_total": quest_xp_total}),
        "complete_quest_bonus",
        source_id=day_key,
        description="All daily quests completed",
        idempotency_key=f"quest_bonus:{user_id}:{day_key}",
    )
    await commit_and_publish(db, notifier)
    bonus_xp = award.xp_awarded if award else 0
    logger.info("User %s earned daily quest bonus (+%d XP)", user_id, bonus_xp)
    return QuestBonus(True, bonus_xp, False, completed, len(quests))
