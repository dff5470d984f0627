"""Deterministic global ranking. ZERO randomness.

Users ranked by current_xp DESC, then by total_quizzes DESC, then by
user_id ASC as the final tiebreaker, so every user has a unique rank.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True)
class TierThresholds:
    """Worst rank that still qualifies for each tier; everything below is bronze."""

    platinum_max_rank: int = 1
    gold_max_rank: int = 10
    silver_max_rank: int = 50

    def tier_for_rank(self, rank: int) -> str:
        """Tier for a 1-indexed rank.

        Rank 1      → platinum
        Rank 2-10   → gold
        Rank 11-50  → silver
        Rank 51+    → bronze
        """
        if rank <= self.platinum_max_rank:
            return "platinum"
        elif rank <= self.gold_max_rank:
            return "gold"
        elif rank <= self.silver_max_rank:
            return "silver"
        return "bronze"

    def tier_counts(self, total: int) -> dict[str, int]:
        """How many of ``total`` ranked users fall in each tier."""
        total = max(0, total)
        platinum = min(total, self.platinum_max_rank)
        gold = min(total, self.gold_max_rank) - platinum
        silver = min(total, self.silver_max_rank) - platinum - gold
        return {
            "platinum": platinum,
            "gold": gold,
            "silver": silver,
            "bronze": total - platinum - gold - silver,
        }

    def best_rank_of_next_tier(self, rank: int) -> int | None:
        """Worst rank in the tier above the one ``rank`` sits in; None at platinum."""
        tier = self.tier_for_rank(rank)
        return {
            "bronze": self.silver_max_rank,
            "silver": self.gold_max_rank,
            "gold": self.platinum_max_rank,
        }.get(tier)


@dataclass(frozen=True)
class RankedEntry:
    rank: int
    user_id: str
    xp: int
    level: int
    total_quizzes: int
    tier: str


@dataclass(frozen=True)
class LeaderboardSnapshot:
    """Immutable ranking captured at one instant; replaced wholesale on refresh."""

    version: int
    captured_at: datetime
    entries: tuple[RankedEntry, ...]
    total_users: int
    positions: Mapping[str, int]

    @classmethod
    def build(
        cls,
        version: int,
        captured_at: datetime,
        entries: tuple[RankedEntry, ...],
        total_users: int,
    ) -> LeaderboardSnapshot:
        positions = MappingProxyType({e.user_id: i for i, e in enumerate(entries)})
        return cls(version, captured_at, entries, max(total_users, len(entries)), positions)

    @classmethod
    def empty(cls, captured_at: datetime, version: int = 0) -> LeaderboardSnapshot:
        return cls.build(version, captured_at, (), 0)

    def position_of(self, user_id: str) -> int | None:
        return self.positions.get(user_id)


def sort_key(record: Mapping[str, Any]) -> tuple[int, int, str]:
    return (
        -int(record.get("current_xp", 0)),
        -int(record.get("total_quizzes", 0)),
        str(record["user_id"]),
    )


def rank_records(
    records: Iterable[Mapping[str, Any]],
    thresholds: TierThresholds | None = None,
) -> tuple[RankedEntry, ...]:
    """Rank progression records deterministically.

    Input: mappings with at least user_id, and optionally current_xp,
    current_level and total_quizzes. Output: entries with 1-indexed
    contiguous ranks and their tiers.
    """
    thresholds = thresholds or TierThresholds()
    ordered = sorted(records, key=sort_key)
    return tuple(
        RankedEntry(
            rank=idx + 1,
            user_id=str(r["user_id"]),
            xp=int(r.get("current_xp", 0)),
            level=int(r.get("current_level", 1)),
            total_quizzes=int(r.get("total_quizzes", 0)),
            tier=thresholds.tier_for_rank(idx + 1),
        )
        for idx, r in enumerate(ordered)
    )


def surrounding(
    snapshot: LeaderboardSnapshot,
    position: int | None,
    *,
    top: int = 3,
    window: int = 1,
) -> list[RankedEntry]:
    """Top ``top`` entries plus ``window`` neighbours either side of ``position``.

    Deduplicated and ordered by rank. ``position`` is a 0-indexed snapshot
    index; None means the user is outside the snapshot.
    """
    picked: dict[int, RankedEntry] = {e.rank: e for e in snapshot.entries[:top]}
    if position is not None:
        lo = max(0, position - window)
        hi = min(len(snapshot.entries), position + window + 1)
        for entry in snapshot.entries[lo:hi]:
            picked[entry.rank] = entry
    return [picked[rank] for rank in sorted(picked)]


def calculate_percentile(rank: int, total: int) -> float:
    """Calculate percentile from rank and total users.

    Rank 1 out of 100 → 99.0 (top 1%)
    Rank 50 out of 100 → 50.0 (median)
    Rank 100 out of 100 → 0.0 (bottom)
    """
    if total <= 0 or rank <= 0:
        return 0.0
    return round(max(0.0, 100 - (rank / total * 100)), 2)


def xp_to_next_tier(
    snapshot: LeaderboardSnapshot,
    rank: int,
    xp: int,
    thresholds: TierThresholds | None = None,
) -> int | None:
    """XP needed to overtake the last user in the next tier up.

    None at platinum, or when the next tier has no occupant to overtake.
    """
    thresholds = thresholds or TierThresholds()
    target_rank = thresholds.best_rank_of_next_tier(rank)
    if target_rank is None or target_rank > len(snapshot.entries) or target_rank < 1:
        return None
    target = snapshot.entries[target_rank - 1]
    return max(0, target.xp - xp + 1)
