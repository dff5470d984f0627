"""Leaderboard API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from studyquest.auth.dependencies import get_current_user_id
from studyquest.dependencies import get_day_clock, get_db, get_leaderboard_service
from studyquest.leaderboard.history import get_rank_history
from studyquest.leaderboard.schemas import (
    LeaderboardEntry,
    LeaderboardResponse,
    RankHistoryEntry,
    RankHistoryResponse,
    RankHistoryStats,
    TierCounts,
    UserRankResponse,
)
from studyquest.leaderboard.service import LeaderboardService
from studyquest.progression.day_clock import DayClock

router = APIRouter(prefix="/api/v1/leaderboard", tags=["Leaderboard"])


@router.get("", response_model=LeaderboardResponse)
async def get_leaderboard(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    """Get one page of the global XP leaderboard."""
    page = await service.get_leaderboard(limit=limit, offset=offset)
    return LeaderboardResponse(
        entries=[LeaderboardEntry.model_validate(e) for e in page["entries"]],
        total_users=page["total_users"],
        tier_counts=TierCounts(**page["tier_counts"]),
        limit=page["limit"],
        offset=page["offset"],
        snapshot_version=page["snapshot_version"],
        captured_at=page["captured_at"],
    )


@router.get("/rank", response_model=UserRankResponse)
async def get_my_rank(
    user_id: str = Depends(get_current_user_id),
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    """Get the current user's rank, tier, and neighbours."""
    result = await service.get_user_rank(user_id)
    return UserRankResponse(
        **{k: v for k, v in result.items() if k != "surrounding"},
        surrounding=[LeaderboardEntry.model_validate(e) for e in result["surrounding"]],
    )


@router.get("/rank/history", response_model=RankHistoryResponse)
async def get_my_rank_history(
    days: int = Query(30, ge=1, le=365),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    clock: DayClock = Depends(get_day_clock),
):
    """Get the current user's daily ranks with best, worst and recent change."""
    result = await get_rank_history(db, user_id, today=clock.today(), days=days)
    return RankHistoryResponse(
        days=days,
        entries=[RankHistoryEntry.model_validate(e) for e in result["entries"]],
        stats=RankHistoryStats(**result["stats"]),
    )
