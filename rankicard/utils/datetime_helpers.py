"""
Date/Time Handling Utilities

Game days follow the application's local calendar (APP_TIMEZONE): the
daily study cap, streaks, daily missions and the weekend bonus all roll
over at local midnight. Stored instants are UTC / Unix seconds.
"""

import logging
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from rankicard.config import APP_TIMEZONE

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"


def get_app_timezone(tz_name: Optional[str] = None) -> ZoneInfo:
    """Resolve a timezone name, falling back to UTC"""
    tz_name = tz_name or APP_TIMEZONE or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(tz_name)
    except Exception as e:
        logger.error(f"Invalid timezone '{tz_name}': {e}")
        return ZoneInfo(DEFAULT_TIMEZONE)


def now_utc() -> datetime:
    """Current datetime in UTC (timezone-aware)"""
    return datetime.now(timezone.utc)


def to_unix(dt: datetime) -> int:
    """Aware or naive-UTC datetime to Unix seconds"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def parse_iso_timestamp(value: str) -> int:
    """ISO-8601 string (provider payloads, e.g. '2024-01-15T07:30:00Z') to Unix seconds"""
    return to_unix(datetime.fromisoformat(value.replace("Z", "+00:00")))


class Clock:
    """Source of "now" and "today" for services; swapped for a fixed clock in tests"""

    def __init__(self, tz_name: Optional[str] = None):
        self.tz = get_app_timezone(tz_name)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()

    def timestamp(self) -> float:
        return self.now().timestamp()
