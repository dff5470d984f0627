"""Rank history and byte-ordered user ids.

Creates rank_history and switches user_progression.user_id to the "C"
collation so leaderboard tiebreaks match the application's ordering.

Revision ID: 002_rank_history
Revises: 001_progression_tables
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_rank_history"
down_revision: str | None = "001_progression_tables"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        ALTER TABLE user_progression
        ALTER COLUMN user_id TYPE VARCHAR(64) COLLATE "C"
    """)

    # --- Rank History ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS rank_history (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            day_key VARCHAR(10) NOT NULL,
            rank INTEGER NOT NULL CHECK (rank >= 1),
            xp BIGINT NOT NULL,
            level INTEGER NOT NULL,
            tier VARCHAR(16) NOT NULL,
            rank_change INTEGER NOT NULL DEFAULT 0,
            tier_change VARCHAR(16),
            recorded_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT rank_history_user_id_day_key_key UNIQUE (user_id, day_key)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_rank_history_day_key
        ON rank_history(day_key)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS rank_history CASCADE")
    op.execute("""
        ALTER TABLE user_progression
        ALTER COLUMN user_id TYPE VARCHAR(64) COLLATE "default"
    """)
