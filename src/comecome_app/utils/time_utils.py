"""
Clock helpers.

Services take a ``clock`` callable so tests can move time; all values are
timezone-aware UTC. SQLite hands DateTime columns back naive, so anything
read from the store goes through ``ensure_aware`` before comparison.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def fixed_window_start(now: datetime, window_seconds: int) -> int:
    """Start of the fixed window containing ``now``, in epoch seconds."""
    epoch = int(now.timestamp())
    return (epoch // window_seconds) * window_seconds


def minutes_remaining(remaining: timedelta) -> int:
    """Whole minutes left, rounded up (a 10 second remainder reads as 1)."""
    return max(1, math.ceil(remaining.total_seconds() / 60))


def format_utc(value: datetime) -> str:
    return ensure_aware(value).strftime("%Y-%m-%d %H:%M:%S")
