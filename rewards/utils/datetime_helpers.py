"""
Date/time helpers shared by the engines

RULES:
- Timestamps (unlocked_at, enqueued_at, last_updated) are timezone-aware UTC
- Calendar days (streak dates, challenge windows) are plain dates
- Weeks start on Monday
"""

from datetime import date, datetime, timedelta
from typing import Callable
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]

UTC = ZoneInfo("UTC")


def now_utc() -> datetime:
    """
    Get current datetime in UTC (timezone-aware)

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(UTC)


def get_week_start(day: date) -> date:
    """Monday of the week containing day"""
    return day - timedelta(days=day.weekday())


def get_week_end(day: date) -> date:
    """Exclusive end of the week containing day (next Monday)"""
    return get_week_start(day) + timedelta(days=7)


def is_next_day(previous: date, current: date) -> bool:
    """True if current is exactly one calendar day after previous"""
    return current - previous == timedelta(days=1)
