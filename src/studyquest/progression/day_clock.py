"""Day-boundary policy shared by streaks and daily quests."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo


class DayClock:
    """Maps instants to calendar days in one authoritative timezone."""

    def __init__(self, tz_name: str = "UTC") -> None:
        self.tz_name = tz_name
        self.tz: tzinfo = timezone.utc if tz_name.upper() == "UTC" else ZoneInfo(tz_name)

    def today(self, now: datetime | None = None) -> date:
        """Calendar day of ``now`` (default: current time) in the clock's zone."""
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self.tz).date()

    def day_key(self, now: datetime | None = None) -> str:
        return self.today(now).isoformat()


def parse_day_key(value: str | None) -> date | None:
    """Parse a YYYY-MM-DD key; malformed or missing values read as None."""
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def is_previous_day(earlier: date, later: date) -> bool:
    return later - earlier == timedelta(days=1)
