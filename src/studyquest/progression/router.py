"""Progression API endpoints: XP, levels, streaks, badges, daily quests."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from studyquest.auth.dependencies import get_current_user_id
from studyquest.dependencies import get_daily_quest_count, get_day_clock, get_db, get_notifier
from studyquest.progression.badge_service import check_badges, get_badge_collection, unlock_badge
from studyquest.progression.day_clock import DayClock
from studyquest.progression.levels import LEVEL_THRESHOLDS, level_info
from studyquest.progression.notifications import Notifier
from studyquest.progression.quest_service import (
    QuestProgress,
    complete_quest_bonus,
    get_daily_quests,
    record_quest_action,
    update_quest_progress,
)
from studyquest.progression.schemas import (
    AllLevelsResponse,
    AwardXPRequest,
    AwardXPResponse,
    BadgeCollectionResponse,
    BadgeProgressEntry,
    BadgeSummary,
    CheckBadgesResponse,
    DailyQuestEntry,
    DailyQuestsResponse,
    LevelEntry,
    QuestActionRequest,
    QuestActionResponse,
    QuestBonusResponse,
    QuestProgressRequest,
    QuestProgressResponse,
    StreakResponse,
    StreakUpdateResponse,
    UnlockBadgeResponse,
    XPHistoryEntry,
    XPHistoryResponse,
    XPResponse,
)
from studyquest.progression.store import get_progression
from studyquest.progression.streak_service import get_streak, update_streak
from studyquest.progression.xp_service import award_xp, get_xp_history

router = APIRouter(prefix="/api/v1", tags=["Progression"])


def _quest_progress_response(result: QuestProgress) -> QuestProgressResponse:
    return QuestProgressResponse(
        quest=DailyQuestEntry.model_validate(result.quest),
        just_completed=result.just_completed,
        xp_awarded=result.xp_awarded,
        completed_count=result.completed_count,
        total_quests=result.total_quests,
    )


# ── Public endpoints ──


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels():
    """Get all level definitions."""
    return AllLevelsResponse(
        levels=[LevelEntry(level=t["level"], title=t["title"], min_xp=t["min_xp"]) for t in LEVEL_THRESHOLDS]
    )


# ── XP ──


@router.post("/progress/xp/award", response_model=AwardXPResponse)
async def post_award_xp(
    body: AwardXPRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Award XP for a learner action."""
    award = await award_xp(
        db, notifier, user_id, body.action, body.metadata, idempotency_key=body.idempotency_key
    )
    return AwardXPResponse(**asdict(award))


@router.get("/progress/xp", response_model=XPResponse)
async def get_my_xp(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get current XP, level progress, and activity counters."""
    record = await get_progression(db, user_id)
    xp = record.current_xp if record else 0
    info = level_info(xp)
    return XPResponse(
        current_xp=xp,
        level=info["level"],
        title=info["title"],
        min_xp=info["min_xp"],
        next_level_xp=info["next_level_xp"],
        xp_into_level=info["xp_into_level"],
        xp_to_next=info["xp_to_next"],
        progress_percent=info["progress_percent"],
        total_quizzes=record.total_quizzes if record else 0,
        perfect_scores=record.perfect_scores if record else 0,
        completed_courses=record.completed_courses if record else 0,
        total_study_minutes=record.total_study_minutes if record else 0,
    )


@router.get("/progress/xp/history", response_model=XPHistoryResponse)
async def get_my_xp_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get paginated XP ledger entries, newest first."""
    entries, total = await get_xp_history(db, user_id, page=page, per_page=per_page)
    return XPHistoryResponse(
        entries=[XPHistoryEntry.model_validate(e) for e in entries],
        total=total,
        page=page,
        per_page=per_page,
    )


# ── Streak ──


@router.post("/progress/streak", response_model=StreakUpdateResponse)
async def post_streak(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    clock: DayClock = Depends(get_day_clock),
):
    """Record today's study activity."""
    result = await update_streak(db, notifier, user_id, clock=clock)
    return StreakUpdateResponse(**asdict(result))


@router.get("/progress/streak", response_model=StreakResponse)
async def get_my_streak(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    clock: DayClock = Depends(get_day_clock),
):
    """Get the current streak without recording activity."""
    return StreakResponse(**await get_streak(db, user_id, clock=clock))


# ── Badges ──


@router.post("/badges/check", response_model=CheckBadgesResponse)
async def post_check_badges(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Evaluate badge requirements and unlock any newly satisfied badges."""
    new_badges = await check_badges(db, notifier, user_id)
    return CheckBadgesResponse(
        new_badges=[BadgeSummary.model_validate(b) for b in new_badges],
        count=len(new_badges),
    )


@router.get("/badges", response_model=BadgeCollectionResponse)
async def get_my_badges(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get every active badge with the user's progress."""
    collection = await get_badge_collection(db, user_id)
    return BadgeCollectionResponse(
        badges=[BadgeProgressEntry(**entry) for entry in collection],
        total_earned=sum(1 for entry in collection if entry["earned"]),
        total_available=len(collection),
    )


@router.post("/badges/{slug}/unlock", response_model=UnlockBadgeResponse)
async def post_unlock_badge(
    slug: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Unlock a manually granted badge. Repeats report already_earned."""
    result = await unlock_badge(db, notifier, user_id, slug, granted_by=user_id)
    return UnlockBadgeResponse(
        badge=BadgeSummary.model_validate(result.badge),
        already_earned=result.already_earned,
        xp_awarded=result.xp_awarded,
    )


# ── Daily quests ──


@router.get("/quests/daily", response_model=DailyQuestsResponse)
async def get_my_daily_quests(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    clock: DayClock = Depends(get_day_clock),
    count: int = Depends(get_daily_quest_count),
):
    """Get today's quests, creating the set on first access."""
    summary = await get_daily_quests(db, user_id, clock=clock, count=count)
    return DailyQuestsResponse(
        day_key=summary["day_key"],
        quests=[DailyQuestEntry.model_validate(q) for q in summary["quests"]],
        completed_count=summary["completed_count"],
        total_quests=summary["total_quests"],
        bonus_awarded=summary["bonus_awarded"],
        bonus_xp_available=summary["bonus_xp_available"],
    )


@router.post("/quests/daily/progress", response_model=QuestProgressResponse)
async def post_quest_progress(
    body: QuestProgressRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    clock: DayClock = Depends(get_day_clock),
    count: int = Depends(get_daily_quest_count),
):
    """Advance one of today's quests."""
    result = await update_quest_progress(
        db, notifier, user_id, body.quest_id, body.increment, clock=clock, count=count
    )
    return _quest_progress_response(result)


@router.post("/quests/daily/actions", response_model=QuestActionResponse)
async def post_quest_action(
    body: QuestActionRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    clock: DayClock = Depends(get_day_clock),
    count: int = Depends(get_daily_quest_count),
):
    """Advance every open quest tracking ``action_type``."""
    results = await record_quest_action(
        db, notifier, user_id, body.action_type, body.value, clock=clock, count=count
    )
    return QuestActionResponse(updated=[_quest_progress_response(r) for r in results])


@router.post("/quests/daily/bonus", response_model=QuestBonusResponse)
async def post_quest_bonus(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    clock: DayClock = Depends(get_day_clock),
    count: int = Depends(get_daily_quest_count),
):
    """Claim the bonus for completing every quest in today's set."""
    result = await complete_quest_bonus(db, notifier, user_id, clock=clock, count=count)
    return QuestBonusResponse(**asdict(result))
