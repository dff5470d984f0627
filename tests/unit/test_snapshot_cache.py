"""Tests for the leaderboard snapshot cache: TTL, single-flight, and stale fallback."""

import asyncio
from datetime import datetime, timezone

import pytest

from studyquest.leaderboard.cache import SnapshotCache
from studyquest.leaderboard.ranking import LeaderboardSnapshot, rank_records


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingLoader:
    """Loader that builds a one-user snapshot per call and can be told to fail."""

    def __init__(self, delay: float = 0.0) -> None:
        self.calls = 0
        self.fail = False
        self.delay = delay

    async def __call__(self, version: int) -> LeaderboardSnapshot:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionError("store unavailable")
        entries = rank_records([{"user_id": f"user-{self.calls}", "current_xp": 100}])
        return LeaderboardSnapshot.build(version, datetime.now(timezone.utc), entries, 1)


def _cache(loader: CountingLoader, clock: FakeClock, ttl: float = 300.0) -> SnapshotCache:
    return SnapshotCache("leaderboard:test", loader, ttl_seconds=ttl, retry_seconds=15.0, clock=clock)


class TestTTL:
    @pytest.mark.asyncio
    async def test_first_read_loads(self):
        loader, clock = CountingLoader(), FakeClock()
        cache = _cache(loader, clock)
        snap = await cache.get()
        assert snap.version == 1
        assert loader.calls == 1
        assert cache.is_fresh()

    @pytest.mark.asyncio
    async def test_reads_within_ttl_are_served_from_memory(self):
        loader, clock = CountingLoader(), FakeClock()
        cache = _cache(loader, clock)
        first = await cache.get()
        clock.advance(299)
        second = await cache.get()
        assert second is first
        assert loader.calls == 1

    @pytest.mark.asyncio
    async def test_expiry_triggers_refresh_with_new_version(self):
        loader, clock = CountingLoader(), FakeClock()
        cache = _cache(loader, clock)
        await cache.get()
        clock.advance(300)
        snap = await cache.get()
        assert snap.version == 2
        assert loader.calls == 2

    @pytest.mark.asyncio
    async def test_invalidate_forces_refresh(self):
        loader, clock = CountingLoader(), FakeClock()
        cache = _cache(loader, clock)
        await cache.get()
        cache.invalidate()
        assert not cache.is_fresh()
        snap = await cache.get()
        assert snap.version == 2


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_readers_share_one_load(self):
        loader, clock = CountingLoader(delay=0.01), FakeClock()
        cache = _cache(loader, clock)
        results = await asyncio.gather(*(cache.get() for _ in range(25)))
        assert loader.calls == 1
        assert cache.load_count == 1
        assert all(r is results[0] for r in results)

    @pytest.mark.asyncio
    async def test_concurrent_readers_after_expiry(self):
        loader, clock = CountingLoader(delay=0.01), FakeClock()
        cache = _cache(loader, clock)
        await cache.get()
        clock.advance(301)
        results = await asyncio.gather(*(cache.get() for _ in range(10)))
        assert loader.calls == 2
        assert {r.version for r in results} == {2}


class TestFailure:
    @pytest.mark.asyncio
    async def test_failed_refresh_serves_stale_snapshot(self):
        loader, clock = CountingLoader(), FakeClock()
        cache = _cache(loader, clock)
        good = await cache.get()
        clock.advance(301)
        loader.fail = True
        served = await cache.get()
        assert served is good
        assert cache.failure_count == 1

    @pytest.mark.asyncio
    async def test_failed_first_load_serves_empty_without_storing(self):
        loader, clock = CountingLoader(), FakeClock()
        loader.fail = True
        cache = _cache(loader, clock)
        served = await cache.get()
        assert served.entries == ()
        assert served.total_users == 0
        assert cache.snapshot is None

    @pytest.mark.asyncio
    async def test_retry_is_held_off_after_failure(self):
        loader, clock = CountingLoader(), FakeClock()
        cache = _cache(loader, clock)
        await cache.get()
        clock.advance(301)
        loader.fail = True
        await cache.get()
        await cache.get()
        assert loader.calls == 2

        clock.advance(15)
        loader.fail = False
        snap = await cache.get()
        assert loader.calls == 3
        assert snap.version == 2
        assert cache.is_fresh()
