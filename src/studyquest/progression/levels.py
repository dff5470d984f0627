"""Level curve: XP thresholds, titles, and level-up detection.

Level L (L >= 2) starts at floor(100 * 1.5 ** (L - 1)) cumulative XP.
Level 1 starts at 0. The curve is capped at MAX_LEVEL.
"""

from __future__ import annotations

import math
from bisect import bisect_right
from typing import Any, NamedTuple

BASE_LEVEL_XP = 100
LEVEL_GROWTH = 1.5
MAX_LEVEL = 60

# (minimum level, title), highest first
LEVEL_TITLES: list[tuple[int, str]] = [
    (50, "Grandmaster"),
    (40, "Master"),
    (30, "Expert"),
    (20, "Advanced"),
    (10, "Intermediate"),
    (1, "Beginner"),
]


def xp_for_level(level: int) -> int:
    """Cumulative XP needed to reach ``level``."""
    if level <= 1:
        return 0
    return math.floor(BASE_LEVEL_XP * LEVEL_GROWTH ** (level - 1))


def level_title(level: int) -> str:
    for min_level, title in LEVEL_TITLES:
        if level >= min_level:
            return title
    return LEVEL_TITLES[-1][1]


LEVEL_THRESHOLDS: list[dict[str, Any]] = [
    {"level": lvl, "title": level_title(lvl), "min_xp": xp_for_level(lvl)}
    for lvl in range(1, MAX_LEVEL + 1)
]

_MIN_XP: list[int] = [t["min_xp"] for t in LEVEL_THRESHOLDS]


class LevelChange(NamedTuple):
    leveled_up: bool
    old_level: int
    new_level: int


def level_from_xp(xp: int) -> int:
    """Highest level whose threshold ``xp`` has reached."""
    if xp <= 0:
        return 1
    return bisect_right(_MIN_XP, xp)


def check_level_up(old_xp: int, new_xp: int) -> LevelChange:
    """Compare levels before and after an XP change (multi-level jumps included)."""
    old_level = level_from_xp(old_xp)
    new_level = level_from_xp(new_xp)
    return LevelChange(new_level > old_level, old_level, new_level)


def level_info(xp: int) -> dict[str, Any]:
    """Compute level details for a cumulative XP value.

    Returns dict with: level, title, min_xp, next_level_xp,
    xp_into_level, xp_to_next, progress_percent. At MAX_LEVEL
    ``next_level_xp`` is None and progress reads 100.
    """
    xp = max(0, xp)
    level = level_from_xp(xp)
    min_xp = xp_for_level(level)

    if level >= MAX_LEVEL:
        return {
            "level": level,
            "title": level_title(level),
            "min_xp": min_xp,
            "next_level_xp": None,
            "xp_into_level": xp - min_xp,
            "xp_to_next": 0,
            "progress_percent": 100.0,
        }

    next_level_xp = xp_for_level(level + 1)
    span = next_level_xp - min_xp
    into = xp - min_xp
    return {
        "level": level,
        "title": level_title(level),
        "min_xp": min_xp,
        "next_level_xp": next_level_xp,
        "xp_into_level": into,
        "xp_to_next": next_level_xp - xp,
        "progress_percent": round(into / span * 100, 2),
    }
