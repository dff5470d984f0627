"""XP grant service with idempotency and level-up detection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from studyquest.db.models import XPLedger
from studyquest.progression.levels import check_level_up, level_title
from studyquest.progression.notifications import Notifier, commit_and_publish, notify_level_up
from studyquest.progression.rewards import PUBLIC_ACTIONS, action_counters, calculate_xp_reward
from studyquest.progression.store import apply_xp, get_or_create_progression

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class XPAward:
    xp_awarded: int
    current_xp: int
    current_level: int
    leveled_up: bool
    old_level: int
    new_level: int


async def grant_xp(
    db: AsyncSession,
    notifier: Notifier,
    user_id: str,
    amount: int,
    source: str,
    *,
    source_id: str = "",
    description: str = "",
    idempotency_key: str | None = None,
    counters: dict[str, int] | None = None,
) -> XPAward | None:
    """Grant XP to a user inside the caller's transaction.

    Returns None if ``idempotency_key`` was already granted. Does not commit:
    streak, badge and quest rewards share the outer unit of work.

    After granting:
    1. Insert into xp_ledger
    2. Atomically add XP and counters, recomputing the level
    3. If the level changed, queue a level_up notification
    """
    if idempotency_key is not None:
        existing = await db.execute(
            select(XPLedger.id).where(XPLedger.idempotency_key == idempotency_key)
        )
        if existing.scalar_one_or_none() is not None:
            return None

    record = await get_or_create_progression(db, user_id)
    amount = max(0, amount)

    if amount == 0 and not counters:
        level = record.current_level
        return XPAward(0, record.current_xp, level, False, level, level)

    if amount > 0:
        try:
            async with db.begin_nested():
                db.add(XPLedger(
                    user_id=user_id,
                    amount=amount,
                    source=source,
                    source_id=source_id,
                    description=description,
                    idempotency_key=idempotency_key,
                ))
        except IntegrityError:
            logger.info("Duplicate XP grant skipped: %s", idempotency_key)
            return None

    current_xp, current_level = await apply_xp(db, user_id, amount, counters)
    change = check_level_up(current_xp - amount, current_xp)

    if change.leveled_up:
        logger.info("User %s leveled up %d -> %d", user_id, change.old_level, change.new_level)
        notify_level_up(notifier, user_id, change.old_level, change.new_level, level_title(change.new_level))

    return XPAward(
        xp_awarded=amount,
        current_xp=current_xp,
        current_level=current_level,
        leveled_up=change.leveled_up,
        old_level=change.old_level,
        new_level=change.new_level,
    )


async def award_xp(
    db: AsyncSession,
    notifier: Notifier,
    user_id: str,
    action: str,
    metadata: dict[str, Any] | None = None,
    *,
    idempotency_key: str | None = None,
) -> XPAward:
    """Award XP for a client-reported action and commit.

    Unknown and engine-internal actions award 0 XP without failing.
    A replayed ``idempotency_key`` returns the current state with 0 XP.
    """
    if action in PUBLIC_ACTIONS:
        amount = calculate_xp_reward(action, metadata)
        counters = action_counters(action, metadata)
    else:
        amount, counters = 0, {}

    award = await grant_xp(
        db,
        notifier,
        user_id,
        amount,
        action,
        source_id=str((metadata or {}).get("source_id", ""))[:128],
        description=f"XP for {action}",
        idempotency_key=idempotency_key,
        counters=counters,
    )
    if award is None:
        record = await get_or_create_progression(db, user_id)
        level = record.current_level
        award = XPAward(0, record.current_xp, level, False, level, level)

    await commit_and_publish(db, notifier)
    return award


async def get_xp_history(
    db: AsyncSession,
    user_id: str,
    *,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[XPLedger], int]:
    """Paginated ledger entries, newest first, with the total count."""
    total = (
        await db.execute(select(func.count()).select_from(XPLedger).where(XPLedger.user_id == user_id))
    ).scalar() or 0

    result = await db.execute(
        select(XPLedger)
        .where(XPLedger.user_id == user_id)
        .order_by(XPLedger.created_at.desc(), XPLedger.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars()), total
