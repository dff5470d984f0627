"""Pydantic response models for leaderboard endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rank: int
    user_id: str
    xp: int
    level: int
    tier: str


class TierCounts(BaseModel):
    platinum: int
    gold: int
    silver: int
    bronze: int


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntry]
    total_users: int
    tier_counts: TierCounts
    limit: int
    offset: int
    snapshot_version: int
    captured_at: datetime


class UserRankResponse(BaseModel):
    user_id: str
    rank: int | None
    xp: int
    tier: str | None
    total: int
    percentile: float
    xp_to_next_tier: int | None
    in_snapshot: bool
    surrounding: list[LeaderboardEntry]


class RankHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day_key: str
    rank: int
    xp: int
    level: int
    tier: str
    rank_change: int
    tier_change: str | None
    recorded_at: datetime


class RankHistoryStats(BaseModel):
    current_rank: int | None
    current_tier: str | None
    best_rank: int | None
    worst_rank: int | None
    average_rank: int | None
    rank_change_7d: int
    rank_change_period: int
    tier_changes: int


class RankHistoryResponse(BaseModel):
    days: int
    entries: list[RankHistoryEntry]
    stats: RankHistoryStats
