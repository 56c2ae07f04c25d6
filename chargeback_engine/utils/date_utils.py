"""Date manipulation utilities"""

import math
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC (SQLite drops tzinfo on round-trip)"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def whole_days_between(start: Optional[datetime], end: datetime) -> Optional[int]:
    """Whole elapsed days from start to end, floored"""
    if start is None:
        return None
    elapsed = ensure_utc(end) - ensure_utc(start)
    return elapsed.days


def started_days_between(start: datetime, end: datetime) -> int:
    """Elapsed days from start to end, counting a partial day as a full one"""
    elapsed = ensure_utc(end) - ensure_utc(start)
    return math.ceil(elapsed.total_seconds() / 86400)
