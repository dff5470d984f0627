"""Progression tables.

Creates user_progression, xp_ledger, badge_definitions, user_badges,
quest_templates, daily_quest_sets and daily_quests.

Revision ID: 001_progression_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_progression_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Per-user progression record ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_progression (
            user_id VARCHAR(64) PRIMARY KEY,
            current_xp BIGINT NOT NULL DEFAULT 0 CHECK (current_xp >= 0),
            current_level INTEGER NOT NULL DEFAULT 1 CHECK (current_level >= 1),
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_study_date VARCHAR(10),
            total_study_minutes INTEGER NOT NULL DEFAULT 0,
            total_quizzes INTEGER NOT NULL DEFAULT 0,
            perfect_scores INTEGER NOT NULL DEFAULT 0,
            completed_courses INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    # Leaderboard ordering
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_progression_current_xp
        ON user_progression(current_xp DESC, total_quizzes DESC, user_id)
    """)

    # --- XP Ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            amount INTEGER NOT NULL,
            source VARCHAR(32) NOT NULL,
            source_id VARCHAR(128) NOT NULL DEFAULT '',
            description VARCHAR(256) NOT NULL DEFAULT '',
            idempotency_key VARCHAR(191) UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_xp_ledger_user_id
        ON xp_ledger(user_id, created_at DESC)
    """)

    # --- Badge Definitions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badge_definitions (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            icon VARCHAR(16) NOT NULL DEFAULT '',
            category VARCHAR(32) NOT NULL,
            rarity VARCHAR(16) NOT NULL,
            xp_reward INTEGER NOT NULL,
            requirement_type VARCHAR(32) NOT NULL,
            requirement_value INTEGER NOT NULL,
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- User Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            badge_id INTEGER NOT NULL REFERENCES badge_definitions(id) ON DELETE CASCADE,
            earned BOOLEAN NOT NULL DEFAULT false,
            earned_at TIMESTAMPTZ,
            progress INTEGER NOT NULL DEFAULT 0 CHECK (progress BETWEEN 0 AND 100),
            granted_by VARCHAR(64),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT user_badges_user_id_badge_id_key UNIQUE (user_id, badge_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_badges_user_id
        ON user_badges(user_id)
    """)

    # --- Quest Templates ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS quest_templates (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            title VARCHAR(128) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            action_type VARCHAR(32) NOT NULL,
            target INTEGER NOT NULL CHECK (target > 0),
            xp_reward INTEGER NOT NULL,
            rarity VARCHAR(16) NOT NULL DEFAULT 'common',
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)

    # --- Daily Quest Sets ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS daily_quest_sets (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            day_key VARCHAR(10) NOT NULL,
            bonus_awarded BOOLEAN NOT NULL DEFAULT false,
            bonus_awarded_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT daily_quest_sets_user_id_day_key_key UNIQUE (user_id, day_key)
        )
    """)

    # --- Daily Quests ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS daily_quests (
            id BIGSERIAL PRIMARY KEY,
            set_id BIGINT NOT NULL REFERENCES daily_quest_sets(id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            quest_id VARCHAR(64) NOT NULL,
            title VARCHAR(128) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            action_type VARCHAR(32) NOT NULL,
            target INTEGER NOT NULL,
            progress INTEGER NOT NULL DEFAULT 0 CHECK (progress >= 0 AND progress <= target),
            completed BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            xp_reward INTEGER NOT NULL,
            CONSTRAINT daily_quests_set_id_quest_id_key UNIQUE (set_id, quest_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_daily_quests_set_id
        ON daily_quests(set_id)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS daily_quests CASCADE")
    op.execute("DROP TABLE IF EXISTS daily_quest_sets CASCADE")
    op.execute("DROP TABLE IF EXISTS quest_templates CASCADE")
    op.execute("DROP TABLE IF EXISTS user_badges CASCADE")
    op.execute("DROP TABLE IF EXISTS badge_definitions CASCADE")
    op.execute("DROP TABLE IF EXISTS xp_ledger CASCADE")
    op.execute("DROP TABLE IF EXISTS user_progression CASCADE")
