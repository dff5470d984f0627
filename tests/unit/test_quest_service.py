"""Tests for daily quest materialization, progress, and the completion bonus."""

from types import SimpleNamespace

import pytest

from studyquest.progression.errors import QuestNotFoundError
from studyquest.progression.quest_service import (
    complete_quest_bonus,
    get_daily_quests,
    pick_templates,
    record_quest_action,
    update_quest_progress,
)
from studyquest.progression.store import get_progression

DAY = "2026-03-01"
ALL = 5  # every seeded template


def _templates(n: int) -> list[SimpleNamespace]:
    return [SimpleNamespace(slug=f"q{i}", sort_order=i) for i in range(n)]


async def _finish_all(db, notifier, user_id: str) -> None:
    for quest_id, increment in (
        ("daily_quiz", 1),
        ("daily_study_15", 15),
        ("daily_perfect", 1),
        ("daily_read", 2),
        ("daily_streak_keep", 1),
    ):
        await update_quest_progress(db, notifier, user_id, quest_id, increment, day_key=DAY, count=ALL)


class TestPickTemplates:
    def test_deterministic_per_user_and_day(self):
        templates = _templates(10)
        first = pick_templates(templates, "alice", DAY, 3)
        again = pick_templates(list(reversed(templates)), "alice", DAY, 3)
        assert [t.slug for t in first] == [t.slug for t in again]
        assert len(first) == 3

    def test_result_in_catalog_order(self):
        picked = pick_templates(_templates(10), "alice", DAY, 4)
        assert [t.sort_order for t in picked] == sorted(t.sort_order for t in picked)

    def test_small_catalog_returns_everything(self):
        picked = pick_templates(_templates(2), "alice", DAY, 3)
        assert [t.slug for t in picked] == ["q0", "q1"]


class TestGetDailyQuests:
    @pytest.mark.asyncio
    async def test_materializes_set_once(self, db_session):
        first = await get_daily_quests(db_session, "alice", day_key=DAY)
        second = await get_daily_quests(db_session, "alice", day_key=DAY)
        assert first["total_quests"] == 3
        assert [q.quest_id for q in first["quests"]] == [q.quest_id for q in second["quests"]]
        assert first["completed_count"] == 0
        assert first["bonus_awarded"] is False

    @pytest.mark.asyncio
    async def test_new_day_new_set(self, db_session):
        today = await get_daily_quests(db_session, "alice", day_key=DAY, count=ALL)
        tomorrow = await get_daily_quests(db_session, "alice", day_key="2026-03-02", count=ALL)
        assert tomorrow["day_key"] == "2026-03-02"
        assert all(q.progress == 0 for q in tomorrow["quests"])
        assert {q.id for q in today["quests"]}.isdisjoint({q.id for q in tomorrow["quests"]})

    @pytest.mark.asyncio
    async def test_bonus_available_is_half_the_quest_xp(self, db_session):
        summary = await get_daily_quests(db_session, "alice", day_key=DAY, count=ALL)
        assert summary["bonus_xp_available"] == 140  # (50 + 30 + 100 + 40 + 60) / 2


class TestUpdateQuestProgress:
    @pytest.mark.asyncio
    async def test_partial_progress(self, db_session, notifier):
        result = await update_quest_progress(db_session, notifier, "alice", "daily_read", 1, day_key=DAY, count=ALL)
        assert result.quest.progress == 1
        assert result.quest.completed is False
        assert result.just_completed is False
        assert result.xp_awarded == 0

    @pytest.mark.asyncio
    async def test_completion_clamps_and_awards(self, db_session, notifier, redis_client):
        await update_quest_progress(db_session, notifier, "alice", "daily_read", 1, day_key=DAY, count=ALL)
        result = await update_quest_progress(db_session, notifier, "alice", "daily_read", 5, day_key=DAY, count=ALL)
        assert result.quest.progress == 2
        assert result.quest.completed is True
        assert result.quest.completed_at is not None
        assert result.just_completed is True
        assert result.xp_awarded == 40
        assert result.completed_count == 1

        channels = [c.args[0] for c in redis_client.publish.call_args_list]
        assert "pubsub:quest_completed" in channels

    @pytest.mark.asyncio
    async def test_completed_quest_does_not_pay_twice(self, db_session, notifier):
        await update_quest_progress(db_session, notifier, "alice", "daily_quiz", 1, day_key=DAY, count=ALL)
        again = await update_quest_progress(db_session, notifier, "alice", "daily_quiz", 1, day_key=DAY, count=ALL)
        assert again.just_completed is False
        assert again.xp_awarded == 0
        assert again.quest.progress == 1

        record = await get_progression(db_session, "alice")
        assert record.current_xp == 50

    @pytest.mark.asyncio
    async def test_non_positive_increment_is_noop(self, db_session, notifier):
        result = await update_quest_progress(db_session, notifier, "alice", "daily_read", 0, day_key=DAY, count=ALL)
        assert result.quest.progress == 0
        result = await update_quest_progress(db_session, notifier, "alice", "daily_read", -3, day_key=DAY, count=ALL)
        assert result.quest.progress == 0

    @pytest.mark.asyncio
    async def test_oversized_increment_clamps_to_target(self, db_session, notifier):
        result = await update_quest_progress(
            db_session, notifier, "alice", "daily_quiz", 10**20, day_key=DAY, count=ALL
        )
        assert result.quest.progress == result.quest.target
        assert result.just_completed is True
        assert result.xp_awarded == 50

    @pytest.mark.asyncio
    async def test_unknown_quest(self, db_session, notifier):
        with pytest.raises(QuestNotFoundError):
            await update_quest_progress(db_session, notifier, "alice", "slay_dragon", 1, day_key=DAY, count=ALL)


class TestRecordQuestAction:
    @pytest.mark.asyncio
    async def test_advances_matching_quests(self, db_session, notifier):
        results = await record_quest_action(db_session, notifier, "alice", "study_time", 10, day_key=DAY, count=ALL)
        assert [r.quest.quest_id for r in results] == ["daily_study_15"]
        assert results[0].quest.progress == 10
        assert results[0].just_completed is False

        results = await record_quest_action(db_session, notifier, "alice", "study_time", 10, day_key=DAY, count=ALL)
        assert results[0].quest.progress == 15
        assert results[0].just_completed is True
        assert results[0].xp_awarded == 30

    @pytest.mark.asyncio
    async def test_oversized_value_clamps_to_target(self, db_session, notifier):
        results = await record_quest_action(
            db_session, notifier, "alice", "study_time", 2**63, day_key=DAY, count=ALL
        )
        assert results[0].quest.progress == 15
        assert results[0].just_completed is True

    @pytest.mark.asyncio
    async def test_unmatched_action_changes_nothing(self, db_session, notifier):
        assert await record_quest_action(db_session, notifier, "alice", "juggle", day_key=DAY, count=ALL) == []


class TestQuestBonus:
    @pytest.mark.asyncio
    async def test_incomplete_set_gets_no_bonus(self, db_session, notifier):
        await update_quest_progress(db_session, notifier, "alice", "daily_quiz", 1, day_key=DAY, count=ALL)
        result = await complete_quest_bonus(db_session, notifier, "alice", day_key=DAY, count=ALL)
        assert result.bonus_awarded is False
        assert result.bonus_xp == 0
        assert result.already_awarded is False
        assert result.completed_count == 1
        assert result.total_quests == 5

    @pytest.mark.asyncio
    async def test_bonus_awarded_once(self, db_session, notifier):
        await _finish_all(db_session, notifier, "alice")

        result = await complete_quest_bonus(db_session, notifier, "alice", day_key=DAY, count=ALL)
        assert result.bonus_awarded is True
        assert result.bonus_xp == 140
        assert result.already_awarded is False

        again = await complete_quest_bonus(db_session, notifier, "alice", day_key=DAY, count=ALL)
        assert again.bonus_awarded is True
        assert again.bonus_xp == 0
        assert again.already_awarded is True

        record = await get_progression(db_session, "alice")
        assert record.current_xp == 280 + 140

        summary = await get_daily_quests(db_session, "alice", day_key=DAY, count=ALL)
        assert summary["bonus_awarded"] is True
        assert summary["completed_count"] == 5

    @pytest.mark.asyncio
    async def test_bonus_only_after_last_of_three(self, db_session, notifier):
        quests = (await get_daily_quests(db_session, "alice", day_key=DAY, count=3))["quests"]
        assert len(quests) == 3
        expected = sum(q.xp_reward for q in quests) // 2

        bonuses = []
        for quest in quests:
            await update_quest_progress(
                db_session, notifier, "alice", quest.quest_id, quest.target, day_key=DAY, count=3
            )
            bonuses.append(await complete_quest_bonus(db_session, notifier, "alice", day_key=DAY, count=3))

        assert [b.bonus_xp for b in bonuses] == [0, 0, expected]
        assert [b.bonus_awarded for b in bonuses] == [False, False, True]
        assert [b.completed_count for b in bonuses] == [1, 2, 3]
        assert expected > 0
