"""Progression event delivery over Redis pub/sub.

Events are buffered per request and published only after the surrounding
transaction commits, so a rolled-back award never announces itself.
Delivery is fire-and-forget: publish failures are logged, never raised.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

LEVEL_UP_CHANNEL = "pubsub:level_up"
STREAK_MILESTONE_CHANNEL = "pubsub:streak_milestone"
BADGE_EARNED_CHANNEL = "pubsub:badge_earned"
QUEST_COMPLETED_CHANNEL = "pubsub:quest_completed"

_pool: redis.Redis | None = None


async def init_redis(url: str) -> None:
    """Initialize the Redis connection pool used for notifications."""
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )


async def close_redis() -> None:
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis:
    if _pool is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _pool


class Notifier:
    """Per-request buffer of outbound progression events."""

    def __init__(self, redis_client: Any | None) -> None:
        self._redis = redis_client
        self._pending: list[tuple[str, str, dict[str, Any], str | None]] = []

    def queue(
        self,
        user_id: str,
        event: str,
        data: dict[str, Any],
        broadcast_channel: str | None = None,
    ) -> None:
        self._pending.append((user_id, event, data, broadcast_channel))

    @property
    def pending_events(self) -> list[str]:
        return [event for _, event, _, _ in self._pending]

    def discard(self) -> None:
        self._pending.clear()

    async def flush(self) -> int:
        """Publish buffered events. Returns the number delivered."""
        pending, self._pending = self._pending, []
        if self._redis is None:
            return 0

        delivered = 0
        for user_id, event, data, broadcast_channel in pending:
            ws_payload = {
                "event": event,
                "data": data,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
            try:
                await self._redis.publish(f"ws:user:{user_id}", json.dumps(ws_payload))
                if broadcast_channel:
                    await self._redis.publish(
                        broadcast_channel,
                        json.dumps({"user_id": user_id, **data}),
                    )
                delivered += 1
            except Exception:
                logger.warning("Failed to publish %s for user %s", event, user_id, exc_info=True)
        return delivered


async def commit_and_publish(db: AsyncSession, notifier: Notifier) -> None:
    """Commit the unit of work, then release its buffered events."""
    try:
        await db.commit()
    except Exception:
        notifier.discard()
        raise
    await notifier.flush()


# ---------------------------------------------------------------------------
# Event helpers
# ---------------------------------------------------------------------------


def notify_level_up(notifier: Notifier, user_id: str, old_level: int, new_level: int, title: str) -> None:
    notifier.queue(
        user_id,
        "level_up",
        {"old_level": old_level, "new_level": new_level, "title": title},
        LEVEL_UP_CHANNEL,
    )


def notify_streak_milestone(notifier: Notifier, user_id: str, streak: int) -> None:
    notifier.queue(user_id, "streak_milestone", {"streak": streak}, STREAK_MILESTONE_CHANNEL)


def notify_badge_earned(notifier: Notifier, user_id: str, slug: str, name: str, rarity: str, xp: int) -> None:
    notifier.queue(
        user_id,
        "badge_earned",
        {"badge": slug, "name": name, "rarity": rarity, "xp_reward": xp},
        BADGE_EARNED_CHANNEL,
    )


def notify_quest_completed(notifier: Notifier, user_id: str, quest_id: str, title: str, xp: int) -> None:
    notifier.queue(
        user_id,
        "quest_completed",
        {"quest_id": quest_id, "title": title, "xp_reward": xp},
        QUEST_COMPLETED_CHANNEL,
    )
