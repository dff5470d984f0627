"""Pydantic request/response models for progression endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# --- XP ---


class AwardXPRequest(BaseModel):
    action: str = Field(min_length=1, max_length=32)
    metadata: dict[str, Any] = {}
    idempotency_key: str | None = Field(default=None, max_length=128)


class AwardXPResponse(BaseModel):
    xp_awarded: int
    current_xp: int
    current_level: int
    leveled_up: bool
    old_level: int
    new_level: int


class XPResponse(BaseModel):
    current_xp: int
    level: int
    title: str
    min_xp: int
    next_level_xp: int | None
    xp_into_level: int
    xp_to_next: int
    progress_percent: float
    total_quizzes: int
    perfect_scores: int
    completed_courses: int
    total_study_minutes: int


class XPHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: int
    source: str
    source_id: str
    description: str
    created_at: datetime


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total: int
    page: int
    per_page: int


class LevelEntry(BaseModel):
    level: int
    title: str
    min_xp: int


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]


# --- Streak ---


class StreakUpdateResponse(BaseModel):
    current_streak: int
    longest_streak: int
    is_new_streak: bool
    xp_awarded: int
    milestone: int | None


class StreakResponse(BaseModel):
    current_streak: int
    longest_streak: int
    last_study_date: date | None
    studied_today: bool


# --- Badges ---


class BadgeSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    slug: str
    name: str
    description: str
    icon: str
    category: str
    rarity: str
    xp_reward: int


class CheckBadgesResponse(BaseModel):
    new_badges: list[BadgeSummary]
    count: int


class BadgeProgressEntry(BadgeSummary):
    requirement_type: str
    requirement_value: int
    earned: bool
    earned_at: datetime | None
    progress: int


class BadgeCollectionResponse(BaseModel):
    badges: list[BadgeProgressEntry]
    total_earned: int
    total_available: int


class UnlockBadgeResponse(BaseModel):
    badge: BadgeSummary
    already_earned: bool
    xp_awarded: int


# --- Quests ---


class DailyQuestEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    quest_id: str
    title: str
    description: str
    action_type: str
    target: int
    progress: int
    completed: bool
    completed_at: datetime | None
    xp_reward: int


class DailyQuestsResponse(BaseModel):
    day_key: str
    quests: list[DailyQuestEntry]
    completed_count: int
    total_quests: int
    bonus_awarded: bool
    bonus_xp_available: int


class QuestProgressRequest(BaseModel):
    quest_id: str = Field(min_length=1, max_length=64)
    increment: int = 1


class QuestProgressResponse(BaseModel):
    quest: DailyQuestEntry
    just_completed: bool
    xp_awarded: int
    completed_count: int
    total_quests: int


class QuestActionRequest(BaseModel):
    action_type: str = Field(min_length=1, max_length=32)
    value: int = 1


class QuestActionResponse(BaseModel):
    updated: list[QuestProgressResponse]


class QuestBonusResponse(BaseModel):
    bonus_awarded: bool
    bonus_xp: int
    already_awarded: bool
    completed_count: int
    total_quests: int
