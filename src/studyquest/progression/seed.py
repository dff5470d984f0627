"""Badge and quest template seed data."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studyquest.db.models import BadgeDefinition, QuestTemplate

logger = logging.getLogger(__name__)

BADGE_SEED_DATA: list[dict[str, Any]] = [
    # Learning
    {
        "slug": "first_steps",
        "name": "First Steps",
        "description": "Complete your first quiz",
        "icon": "\U0001f3af",
        "category": "learning",
        "rarity": "common",
        "xp_reward": 50,
        "requirement_type": "quizzes_completed",
        "requirement_value": 1,
        "sort_order": 1,
    },
    {
        "slug": "week_warrior",
        "name": "Week Warrior",
        "description": "Maintain a 7-day study streak",
        "icon": "\U0001f525",
        "category": "consistency",
        "rarity": "rare",
        "xp_reward": 150,
        "requirement_type": "streak_days",
        "requirement_value": 7,
        "sort_order": 2,
    },
    {
        "slug": "perfect_score",
        "name": "Perfect Score",
        "description": "Get 100% on any quiz",
        "icon": "\U0001f4af",
        "category": "mastery",
        "rarity": "epic",
        "xp_reward": 200,
        "requirement_type": "perfect_scores",
        "requirement_value": 1,
        "sort_order": 3,
    },
    {
        "slug": "scholar",
        "name": "Scholar",
        "description": "Complete 10 quizzes",
        "icon": "\U0001f4da",
        "category": "learning",
        "rarity": "rare",
        "xp_reward": 100,
        "requirement_type": "quizzes_completed",
        "requirement_value": 10,
        "sort_order": 4,
    },
    # Time-of-day and social badges are granted by the services that observe them
    {
        "slug": "early_bird",
        "name": "Early Bird",
        "description": "Complete a lesson before 8 AM",
        "icon": "\U0001f305",
        "category": "consistency",
        "rarity": "common",
        "xp_reward": 50,
        "requirement_type": "manual",
        "requirement_value": 1,
        "sort_order": 5,
    },
    {
        "slug": "night_owl",
        "name": "Night Owl",
        "description": "Complete a lesson after 10 PM",
        "icon": "\U0001f989",
        "category": "consistency",
        "rarity": "common",
        "xp_reward": 50,
        "requirement_type": "manual",
        "requirement_value": 1,
        "sort_order": 6,
    },
    {
        "slug": "quiz_master",
        "name": "Quiz Master",
        "description": "Score more than 90% in 5 quizzes",
        "icon": "\U0001f9e0",
        "category": "mastery",
        "rarity": "epic",
        "xp_reward": 300,
        "requirement_type": "manual",
        "requirement_value": 5,
        "sort_order": 7,
    },
    {
        "slug": "dedicated_learner",
        "name": "Dedicated Learner",
        "description": "Study for 30 consecutive days",
        "icon": "\U0001f4c5",
        "category": "consistency",
        "rarity": "legendary",
        "xp_reward": 1000,
        "requirement_type": "streak_days",
        "requirement_value": 30,
        "sort_order": 8,
    },
    {
        "slug": "social_butterfly",
        "name": "Social Butterfly",
        "description": "Add 5 friends",
        "icon": "\U0001f98b",
        "category": "social",
        "rarity": "common",
        "xp_reward": 100,
        "requirement_type": "manual",
        "requirement_value": 5,
        "sort_order": 9,
    },
    {
        "slug": "community_pillar",
        "name": "Community Pillar",
        "description": "Help 10 other students",
        "icon": "\U0001f3db",
        "category": "social",
        "rarity": "epic",
        "xp_reward": 400,
        "requirement_type": "manual",
        "requirement_value": 10,
        "sort_order": 10,
    },
    # Progression
    {
        "slug": "course_finisher",
        "name": "Course Finisher",
        "description": "Finish your first course",
        "icon": "\U0001f393",
        "category": "learning",
        "rarity": "rare",
        "xp_reward": 150,
        "requirement_type": "courses_completed",
        "requirement_value": 1,
        "sort_order": 11,
    },
    {
        "slug": "rising_star",
        "name": "Rising Star",
        "description": "Reach level 10",
        "icon": "⭐",
        "category": "mastery",
        "rarity": "epic",
        "xp_reward": 250,
        "requirement_type": "level_reached",
        "requirement_value": 10,
        "sort_order": 12,
    },
]

QUEST_SEED_DATA: list[dict[str, Any]] = [
    {
        "slug": "daily_quiz",
        "title": "Quiz Master",
        "description": "Complete 1 quiz today",
        "action_type": "complete_quiz",
        "target": 1,
        "xp_reward": 50,
        "rarity": "common",
        "sort_order": 1,
    },
    {
        "slug": "daily_study_15",
        "title": "Quick Study",
        "description": "Study for 15 minutes",
        "action_type": "study_time",
        "target": 15,
        "xp_reward": 30,
        "rarity": "common",
        "sort_order": 2,
    },
    {
        "slug": "daily_perfect",
        "title": "Perfectionist",
        "description": "Get a perfect score on a quiz",
        "action_type": "perfect_score",
        "target": 1,
        "xp_reward": 100,
        "rarity": "rare",
        "sort_order": 3,
    },
    {
        "slug": "daily_read",
        "title": "Reader",
        "description": "Read 2 articles",
        "action_type": "read_articles",
        "target": 2,
        "xp_reward": 40,
        "rarity": "common",
        "sort_order": 4,
    },
    {
        "slug": "daily_streak_keep",
        "title": "Streak Keeper",
        "description": "Extend your streak today",
        "action_type": "extend_streak",
        "target": 1,
        "xp_reward": 60,
        "rarity": "common",
        "sort_order": 5,
    },
]


async def _upsert_by_slug(db: AsyncSession, model: type[Any], rows: list[dict[str, Any]]) -> int:
    existing = {
        obj.slug: obj for obj in (await db.execute(select(model))).scalars()
    }
    for data in rows:
        obj = existing.get(data["slug"])
        if obj is None:
            db.add(model(**data))
        else:
            for key, value in data.items():
                setattr(obj, key, value)
    return len(rows)


async def seed_badges(db: AsyncSession) -> int:
    """Upsert all badge definitions. Returns number of badges seeded."""
    seeded = await _upsert_by_slug(db, BadgeDefinition, BADGE_SEED_DATA)
    await db.commit()
    logger.info("Seeded %d badge definitions", seeded)
    return seeded


async def seed_quest_templates(db: AsyncSession) -> int:
    """Upsert all quest templates. Returns number of templates seeded."""
    seeded = await _upsert_by_slug(db, QuestTemplate, QUEST_SEED_DATA)
    await db.commit()
    logger.info("Seeded %d quest templates", seeded)
    return seeded
