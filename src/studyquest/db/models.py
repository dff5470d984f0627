"""ORM models for the progression store.

Column types stay portable (no JSONB/INET) so the same models run on
PostgreSQL in production and on SQLite in the test suite.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column

from studyquest.db.base import Base

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_BigId = BigInteger().with_variant(Integer, "sqlite")
_UserIdKey = String(64).with_variant(String(64, collation="C"), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Progression
# ---------------------------------------------------------------------------


class UserProgression(Base):
    """Denormalized progression summary, single row per user."""

    __tablename__ = "user_progression"

    # Byte-order collation on PostgreSQL so the SQL top-N cut agrees with the
    # Python user_id tiebreaker in ranking.sort_key
    user_id: Mapped[str] = mapped_column(_UserIdKey, primary_key=True)
    current_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0", index=True)
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    # ISO day key (YYYY-MM-DD) in the configured day-boundary timezone
    last_study_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    total_study_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_quizzes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    perfect_scores: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    completed_courses: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )


class XPLedger(Base):
    """Append-only XP grant history."""

    __tablename__ = "xp_ledger"

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str] = mapped_column(String(128), nullable=False, default="", server_default="")
    description: Mapped[str] = mapped_column(String(256), nullable=False, default="", server_default="")
    idempotency_key: Mapped[str | None] = mapped_column(String(191), nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------


class BadgeDefinition(Base):
    """Badge catalog entry."""

    __tablename__ = "badge_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str] = mapped_column(String(16), nullable=False, default="", server_default="")
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    rarity: Mapped[str] = mapped_column(String(16), nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    requirement_type: Mapped[str] = mapped_column(String(32), nullable=False)
    requirement_value: Mapped[int] = mapped_column(Integer, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )


class UserBadge(Base):
    """Per-user badge progress; ``earned`` never reverts once set."""

    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="user_badges_user_id_badge_id_key"),
    )

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    badge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("badge_definitions.id", ondelete="CASCADE"), nullable=False
    )
    earned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    earned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    granted_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )


# ---------------------------------------------------------------------------
# Daily quests
# ---------------------------------------------------------------------------


class QuestTemplate(Base):
    """Quest catalog entry from which daily sets are drawn."""

    __tablename__ = "quest_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    target: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    rarity: Mapped[str] = mapped_column(String(16), nullable=False, default="common", server_default="common")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())


class DailyQuestSet(Base):
    """One user's quests for one day."""

    __tablename__ = "daily_quest_sets"
    __table_args__ = (
        UniqueConstraint("user_id", "day_key", name="daily_quest_sets_user_id_day_key_key"),
    )

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    day_key: Mapped[str] = mapped_column(String(10), nullable=False)
    bonus_awarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    bonus_awarded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )


class DailyQuest(Base):
    """A quest instance inside a daily set."""

    __tablename__ = "daily_quests"
    __table_args__ = (
        UniqueConstraint("set_id", "quest_id", name="daily_quests_set_id_quest_id_key"),
    )

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    set_id: Mapped[int] = mapped_column(
        _BigId, ForeignKey("daily_quest_sets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    quest_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    target: Mapped[int] = mapped_column(Integer, nullable=False)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False)


# ---------------------------------------------------------------------------
# Leaderboard history
# ---------------------------------------------------------------------------


class RankHistory(Base):
    """A user's leaderboard position for one day, taken from refreshed snapshots."""

    __tablename__ = "rank_history"
    __table_args__ = (
        UniqueConstraint("user_id", "day_key", name="rank_history_user_id_day_key_key"),
    )

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    day_key: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    xp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    tier: Mapped[str] = mapped_column(String(16), nullable=False)
    # Positive means the user moved up since their previous recorded day
    rank_change: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    tier_change: Mapped[str | None] = mapped_column(String(16), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
