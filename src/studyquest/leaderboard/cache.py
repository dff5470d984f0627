"""Time-bounded leaderboard snapshot cache.

Holds exactly one snapshot. A read inside the TTL is served from memory;
the first read after expiry refreshes it while concurrent readers wait on
the same refresh (single-flight). If the refresh fails the previous
snapshot keeps being served, expired or not, and further attempts are
held off for ``retry_seconds``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from studyquest.leaderboard.ranking import LeaderboardSnapshot

logger = logging.getLogger(__name__)

SnapshotLoader = Callable[[int], Awaitable[LeaderboardSnapshot]]


class SnapshotCache:
    """Single-entry TTL cache with single-flight refresh and stale fallback."""

    def __init__(
        self,
        key: str,
        loader: SnapshotLoader,
        ttl_seconds: float,
        retry_seconds: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.key = key
        self._loader = loader
        self._ttl = ttl_seconds
        self._retry_seconds = retry_seconds
        self._clock = clock
        self._lock = asyncio.Lock()
        self._snapshot: LeaderboardSnapshot | None = None
        self._expires_at = 0.0
        self._retry_after = 0.0
        self._version = 0
        self.load_count = 0
        self.failure_count = 0

    @property
    def snapshot(self) -> LeaderboardSnapshot | None:
        return self._snapshot

    def is_fresh(self) -> bool:
        return self._snapshot is not None and self._clock() < self._expires_at

    def invalidate(self) -> None:
        """Expire the current snapshot; it stays available as a fallback."""
        self._expires_at = 0.0
        self._retry_after = 0.0

    def _fallback(self) -> LeaderboardSnapshot:
        if self._snapshot is not None:
            return self._snapshot
        return LeaderboardSnapshot.empty(datetime.now(timezone.utc), self._version)

    async def get(self) -> LeaderboardSnapshot:
        """Return a snapshot no older than the TTL, or the best available fallback."""
        if self.is_fresh():
            return self._snapshot  # type: ignore[return-value]

        async with self._lock:
            # Another waiter may have refreshed while we queued
            if self.is_fresh():
                return self._snapshot  # type: ignore[return-value]
            if self._clock() < self._retry_after:
                return self._fallback()

            self.load_count += 1
            try:
                fresh = await self._loader(self._version + 1)
            except Exception:
                self.failure_count += 1
                self._retry_after = self._clock() + self._retry_seconds
                logger.warning(
                    "Leaderboard refresh failed for %s, serving %s snapshot",
                    self.key,
                    "stale" if self._snapshot is not None else "empty",
                    exc_info=True,
                )
                return self._fallback()

            self._version = fresh.version
            self._snapshot = fresh
            self._expires_at = self._clock() + self._ttl
            self._retry_after = 0.0
            return fresh
