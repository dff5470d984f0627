"""Tests for badge evaluation, progress tracking, and manual unlocks."""

import pytest
from sqlalchemy import func, select

from studyquest.db.models import UserBadge, XPLedger
from studyquest.progression.badge_service import (
    badge_progress,
    check_badges,
    get_badge_collection,
    unlock_badge,
)
from studyquest.progression.errors import BadgeNotFoundError, BadgeNotManualError
from studyquest.progression.store import get_progression
from studyquest.progression.xp_service import award_xp, grant_xp


def _by_slug(collection: list[dict]) -> dict[str, dict]:
    return {entry["slug"]: entry for entry in collection}


class TestBadgeProgress:
    def test_partial(self):
        assert badge_progress(3, 10) == 30

    def test_rounds_down(self):
        assert badge_progress(2, 3) == 66

    def test_clamped(self):
        assert badge_progress(15, 10) == 100
        assert badge_progress(-4, 10) == 0

    def test_zero_requirement_is_complete(self):
        assert badge_progress(0, 0) == 100


class TestCheckBadges:
    @pytest.mark.asyncio
    async def test_new_user_earns_nothing(self, db_session, notifier):
        assert await check_badges(db_session, notifier, "alice") == []

    @pytest.mark.asyncio
    async def test_first_quiz_unlocks_first_steps(self, db_session, notifier):
        await award_xp(db_session, notifier, "alice", "complete_quiz")
        earned = await check_badges(db_session, notifier, "alice")
        assert [b.slug for b in earned] == ["first_steps"]

        record = await get_progression(db_session, "alice")
        assert record.current_xp == 100  # 50 quiz + 50 badge

    @pytest.mark.asyncio
    async def test_badges_are_earned_once(self, db_session, notifier):
        await award_xp(db_session, notifier, "alice", "complete_quiz")
        await check_badges(db_session, notifier, "alice")
        assert await check_badges(db_session, notifier, "alice") == []

        record = await get_progression(db_session, "alice")
        assert record.current_xp == 100
        ledger = await db_session.execute(
            select(func.count()).select_from(XPLedger).where(XPLedger.source == "earn_badge")
        )
        assert ledger.scalar() == 1

    @pytest.mark.asyncio
    async def test_badge_xp_can_unlock_level_badge(self, db_session, notifier):
        """Badge XP that crosses level 10 unlocks Rising Star in the same check."""
        await grant_xp(db_session, notifier, "alice", 3800, "import", counters={"total_quizzes": 1})
        await db_session.commit()

        earned = await check_badges(db_session, notifier, "alice")
        assert [b.slug for b in earned] == ["first_steps", "rising_star"]

        record = await get_progression(db_session, "alice")
        assert record.current_level >= 10
        assert record.current_xp == 3800 + 50 + 250

    @pytest.mark.asyncio
    async def test_progress_is_recorded_for_unmet_badges(self, db_session, notifier):
        for _ in range(3):
            await award_xp(db_session, notifier, "alice", "complete_quiz")
        await check_badges(db_session, notifier, "alice")

        collection = _by_slug(await get_badge_collection(db_session, "alice"))
        assert collection["scholar"]["progress"] == 30
        assert collection["scholar"]["earned"] is False
        assert collection["first_steps"]["earned"] is True
        assert collection["first_steps"]["progress"] == 100

    @pytest.mark.asyncio
    async def test_manual_badges_are_never_auto_awarded(self, db_session, notifier):
        await grant_xp(db_session, notifier, "alice", 100_000, "import", counters={"total_quizzes": 50})
        await db_session.commit()
        earned = {b.slug for b in await check_badges(db_session, notifier, "alice")}
        assert "early_bird" not in earned
        assert "social_butterfly" not in earned

    @pytest.mark.asyncio
    async def test_badge_event_published(self, db_session, notifier, redis_client):
        await award_xp(db_session, notifier, "alice", "complete_quiz")
        redis_client.publish.reset_mock()
        await check_badges(db_session, notifier, "alice")
        channels = [c.args[0] for c in redis_client.publish.call_args_list]
        assert "pubsub:badge_earned" in channels


class TestUnlockBadge:
    @pytest.mark.asyncio
    async def test_manual_unlock(self, db_session, notifier):
        result = await unlock_badge(db_session, notifier, "alice", "early_bird", granted_by="lesson-service")
        assert result.already_earned is False
        assert result.xp_awarded == 50
        assert result.badge.slug == "early_bird"

        state = (
            await db_session.execute(
                select(UserBadge)
                .where(UserBadge.user_id == "alice")
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
        assert state.earned is True
        assert state.granted_by == "lesson-service"

    @pytest.mark.asyncio
    async def test_repeat_unlock_is_idempotent(self, db_session, notifier):
        await unlock_badge(db_session, notifier, "alice", "night_owl")
        again = await unlock_badge(db_session, notifier, "alice", "night_owl")
        assert again.already_earned is True
        assert again.xp_awarded == 0

        record = await get_progression(db_session, "alice")
        assert record.current_xp == 50

    @pytest.mark.asyncio
    async def test_unknown_badge(self, db_session, notifier):
        with pytest.raises(BadgeNotFoundError):
            await unlock_badge(db_session, notifier, "alice", "does_not_exist")

    @pytest.mark.asyncio
    async def test_predicate_badge_cannot_be_unlocked_manually(self, db_session, notifier):
        with pytest.raises(BadgeNotManualError):
            await unlock_badge(db_session, notifier, "alice", "week_warrior")


class TestBadgeCollection:
    @pytest.mark.asyncio
    async def test_lists_every_active_badge(self, db_session):
        collection = await get_badge_collection(db_session, "ghost")
        assert len(collection) == 12
        assert all(entry["earned"] is False for entry in collection)
        assert all(entry["progress"] == 0 for entry in collection)
        assert [e["slug"] for e in collection][:3] == ["first_steps", "week_warrior", "perfect_score"]

    @pytest.mark.asyncio
    async def test_progress_computed_for_unchecked_badges(self, db_session, notifier):
        await award_xp(db_session, notifier, "alice", "study_session", {"minutes": 10})
        await award_xp(db_session, notifier, "alice", "complete_quiz")
        collection = _by_slug(await get_badge_collection(db_session, "alice"))
        assert collection["scholar"]["progress"] == 10
        assert collection["early_bird"]["progress"] == 0
