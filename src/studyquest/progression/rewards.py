"""XP reward table and multipliers.

Pure functions only. Callers route the result through
``xp_service.grant_xp`` so every grant hits the ledger.
"""

from __future__ import annotations

import math
from typing import Any

XP_REWARDS: dict[str, int] = {
    "complete_quiz": 50,
    "perfect_score": 100,
    "daily_streak": 25,
    "finish_course": 200,
    "watch_video": 10,
    "read_lesson": 15,
    "study_session": 5,
    "complete_quest": 30,
    "earn_badge": 75,
    "complete_quest_bonus": 0,
}

# Granted only by the engines themselves, never directly by a client
INTERNAL_ACTIONS: frozenset[str] = frozenset({
    "daily_streak",
    "complete_quest",
    "earn_badge",
    "complete_quest_bonus",
})

PUBLIC_ACTIONS: frozenset[str] = frozenset(XP_REWARDS) - INTERNAL_ACTIONS

# Actions whose amount comes from the badge/quest being rewarded
_DYNAMIC_AMOUNT_KEYS: dict[str, str] = {
    "complete_quest": "quest_xp",
    "earn_badge": "badge_xp",
}

STREAK_MULTIPLIER_DAYS = 7
STREAK_MULTIPLIER = 1.5
HARD_DIFFICULTY_MULTIPLIER = 1.25
MAX_MULTIPLIER = 2.0

QUEST_BONUS_RATIO = 0.5
MAX_DYNAMIC_REWARD = 1000
MAX_SESSION_MINUTES = 600


def _non_negative_int(value: Any) -> int | None:
    """Coerce a metadata value to a non-negative int, or None if malformed."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, float) and math.isfinite(value):
        return max(0, int(value))
    if isinstance(value, str):
        try:
            return max(0, int(value))
        except ValueError:
            return None
    return None


def reward_multiplier(metadata: dict[str, Any] | None = None) -> float:
    """Combined multiplier from streak length and difficulty, capped."""
    meta = metadata or {}
    multiplier = 1.0

    streak = _non_negative_int(meta.get("streak"))
    if streak is not None and streak >= STREAK_MULTIPLIER_DAYS:
        multiplier *= STREAK_MULTIPLIER

    if meta.get("difficulty") == "hard":
        multiplier *= HARD_DIFFICULTY_MULTIPLIER

    return min(multiplier, MAX_MULTIPLIER)


def _base_reward(action: str, meta: dict[str, Any]) -> int:
    if action == "complete_quest_bonus":
        total = _non_negative_int(meta.get("quest_xp_total"))
        if total is None:
            return 0
        return min(math.floor(total * QUEST_BONUS_RATIO), MAX_DYNAMIC_REWARD)

    key = _DYNAMIC_AMOUNT_KEYS.get(action)
    if key is not None:
        amount = _non_negative_int(meta.get(key))
        if amount is not None:
            return min(amount, MAX_DYNAMIC_REWARD)

    return XP_REWARDS.get(action, 0)


def calculate_xp_reward(action: str, metadata: dict[str, Any] | None = None) -> int:
    """XP for ``action``. Unknown actions and malformed metadata never raise.

    >>> calculate_xp_reward("complete_quiz", {"streak": 7, "difficulty": "hard"})
    93
    """
    meta = metadata or {}
    base = _base_reward(action, meta)
    if base <= 0:
        return 0
    return math.floor(base * reward_multiplier(meta))


def action_counters(action: str, metadata: dict[str, Any] | None = None) -> dict[str, int]:
    """Progression counter increments contributed by ``action``."""
    meta = metadata or {}
    if action == "complete_quiz":
        return {"total_quizzes": 1}
    if action == "perfect_score":
        return {"perfect_scores": 1}
    if action == "finish_course":
        return {"completed_courses": 1}
    if action == "study_session":
        minutes = _non_negative_int(meta.get("minutes")) or 0
        minutes = min(minutes, MAX_SESSION_MINUTES)
        return {"total_study_minutes": minutes} if minutes else {}
    return {}
