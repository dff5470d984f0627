"""Leaderboard reads backed by the snapshot cache.

Reads never touch the per-user write path and never fail because the
store is down: the cache serves its last snapshot, and the uncached
fallback rank degrades to "just below the snapshot", or to unranked when
nothing has been cached yet.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from studyquest.config import Settings
from studyquest.db.models import UserProgression
from studyquest.leaderboard.cache import SnapshotCache
from studyquest.leaderboard.history import prune_rank_history, record_rank_history
from studyquest.leaderboard.ranking import (
    LeaderboardSnapshot,
    TierThresholds,
    calculate_percentile,
    rank_records,
    surrounding,
    xp_to_next_tier,
)
from studyquest.progression.day_clock import DayClock

logger = logging.getLogger(__name__)

LEADERBOARD_CACHE_KEY = "leaderboard:global"


def thresholds_from_settings(settings: Settings) -> TierThresholds:
    return TierThresholds(
        platinum_max_rank=settings.tier_platinum_max_rank,
        gold_max_rank=settings.tier_gold_max_rank,
        silver_max_rank=settings.tier_silver_max_rank,
    )


class LeaderboardService:
    """Global XP leaderboard over a cached top-N snapshot."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        settings: Settings,
        *,
        clock: Callable[[], float] = time.monotonic,
        day_clock: DayClock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.day_clock = day_clock or DayClock(settings.day_boundary_timezone)
        self.history_retention_days = settings.rank_history_retention_days
        self.thresholds = thresholds_from_settings(settings)
        self.top_n = settings.leaderboard_top_n
        self.surrounding_top = settings.leaderboard_surrounding_top
        self.surrounding_window = settings.leaderboard_surrounding_window
        self.cache = SnapshotCache(
            LEADERBOARD_CACHE_KEY,
            self._load_snapshot,
            ttl_seconds=settings.leaderboard_ttl_seconds,
            retry_seconds=settings.leaderboard_retry_seconds,
            clock=clock,
        )

    async def _load_snapshot(self, version: int) -> LeaderboardSnapshot:
        async with self._session_factory() as db:
            result = await db.execute(
                select(
                    UserProgression.user_id,
                    UserProgression.current_xp,
                    UserProgression.current_level,
                    UserProgression.total_quizzes,
                )
                .order_by(
                    UserProgression.current_xp.desc(),
                    UserProgression.total_quizzes.desc(),
                    UserProgression.user_id.asc(),
                )
                .limit(self.top_n)
            )
            rows = result.mappings().all()
            total = (await db.execute(select(func.count()).select_from(UserProgression))).scalar() or 0

        entries = rank_records(rows, self.thresholds)
        logger.info("Leaderboard snapshot v%d built: %d entries of %d users", version, len(entries), total)
        snapshot = LeaderboardSnapshot.build(version, datetime.now(timezone.utc), entries, total)
        await self._record_history(snapshot)
        return snapshot

    async def _record_history(self, snapshot: LeaderboardSnapshot) -> None:
        """Persist today's ranks; a failure here never fails the refresh."""
        today = self.day_clock.today()
        cutoff = today - timedelta(days=self.history_retention_days)
        try:
            async with self._session_factory() as db:
                await record_rank_history(db, snapshot, today.isoformat())
                pruned = await prune_rank_history(db, cutoff.isoformat())
        except (SQLAlchemyError, OSError):
            logger.warning("Rank history not recorded for snapshot v%d", snapshot.version, exc_info=True)
            return
        if pruned:
            logger.info("Pruned %d rank history rows before %s", pruned, cutoff)

    async def get_leaderboard(self, limit: int = 50, offset: int = 0) -> dict[str, Any]:
        """One page of the cached ranking plus tier distribution."""
        snapshot = await self.cache.get()
        limit = max(0, limit)
        offset = max(0, offset)
        return {
            "entries": list(snapshot.entries[offset:offset + limit]),
            "total_users": snapshot.total_users,
            "tier_counts": self.thresholds.tier_counts(snapshot.total_users),
            "limit": limit,
            "offset": offset,
            "snapshot_version": snapshot.version,
            "captured_at": snapshot.captured_at,
        }

    async def _fallback_rank(self, user_id: str, snapshot: LeaderboardSnapshot) -> tuple[int | None, int]:
        """(rank, xp) for a user outside the snapshot, computed uncached.

        Rank is the number of users with strictly more XP, plus one. A user
        with no record counts as 0 XP. If the store cannot be read, the user
        sits just below a non-empty snapshot; with nothing cached either,
        the rank is unknown (None).
        """
        try:
            async with self._session_factory() as db:
                xp = (
                    await db.execute(
                        select(UserProgression.current_xp).where(UserProgression.user_id == user_id)
                    )
                ).scalar() or 0
                higher = (
                    await db.execute(
                        select(func.count())
                        .select_from(UserProgression)
                        .where(UserProgression.current_xp > xp)
                    )
                ).scalar() or 0
        except (SQLAlchemyError, OSError):
            logger.warning("Fallback rank query failed for %s", user_id, exc_info=True)
            if not snapshot.entries:
                return None, 0
            return len(snapshot.entries) + 1, 0
        return higher + 1, xp

    async def get_user_rank(self, user_id: str) -> dict[str, Any]:
        """The user's rank, tier, and the entries around them.

        ``rank`` and ``tier`` are None when the user cannot be placed at all.
        """
        snapshot = await self.cache.get()
        position = snapshot.position_of(user_id)

        if position is not None:
            entry = snapshot.entries[position]
            rank, xp = entry.rank, entry.xp
        else:
            rank, xp = await self._fallback_rank(user_id, snapshot)

        if rank is None:
            return {
                "user_id": user_id,
                "rank": None,
                "xp": xp,
                "tier": None,
                "total": snapshot.total_users,
                "percentile": 0.0,
                "xp_to_next_tier": None,
                "in_snapshot": False,
                "surrounding": [],
            }

        total = max(snapshot.total_users, rank)
        return {
            "user_id": user_id,
            "rank": rank,
            "xp": xp,
            "tier": self.thresholds.tier_for_rank(rank),
            "total": total,
            "percentile": calculate_percentile(rank, total),
            "xp_to_next_tier": xp_to_next_tier(snapshot, rank, xp, self.thresholds),
            "in_snapshot": position is not None,
            "surrounding": surrounding(
                snapshot,
                position,
                top=self.surrounding_top,
                window=self.surrounding_window,
            ),
        }
