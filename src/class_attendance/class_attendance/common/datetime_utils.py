from __future__ import annotations

import math
from datetime import date, datetime, time, timezone


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD string into date."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def now_utc() -> datetime:
    """Current server time as naive UTC.

    Note: All stored timestamps are naive UTC; wrapped so tests can patch it.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(value: date) -> datetime:
    return datetime.combine(value, time.min)


def end_of_day(value: date) -> datetime:
    return datetime.combine(value, time.max)


def whole_minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes elapsed from ``start`` to ``end``, never negative."""
    seconds = (end - start).total_seconds()
    return max(0, math.floor(seconds / 60))
