"""
Time helpers shared by the scheduling engines.

All engines work in naive local wall-clock time: aware datetimes are converted
to the local zone and stripped of tzinfo on the way in, so day keys and
"end of today" follow local day boundaries.
"""

import math
from datetime import date, datetime, time, timedelta
from typing import Any, Iterator, Optional


def to_local_naive(dt: datetime) -> datetime:
    """
    Convert an aware datetime to naive local time; naive datetimes are assumed local already.

    An aware instant at the edge of the datetime range that has no local
    representation keeps its own wall-clock value.
    """
    if dt.tzinfo is None:
        return dt
    try:
        return dt.astimezone().replace(tzinfo=None)
    except (OverflowError, OSError):
        return dt.replace(tzinfo=None)


def shift(dt: datetime, delta: timedelta) -> Optional[datetime]:
    """dt + delta, or None when the result leaves the datetime range."""
    try:
        return dt + delta
    except OverflowError:
        return None


def add_minutes(dt: datetime, minutes: float) -> Optional[datetime]:
    """dt + minutes, or None when the result leaves the datetime range."""
    try:
        return dt + timedelta(minutes=minutes)
    except OverflowError:
        return None


def parse_instant(value: Any) -> Optional[datetime]:
    """
    Parse a datetime-like value into a naive local datetime.

    Accepts datetime, date, ISO strings (with or without Z) and epoch
    milliseconds. Returns None for anything missing or unparseable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return to_local_naive(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            return to_local_naive(datetime.fromisoformat(s.replace("Z", "+00:00")))
        except (OverflowError, ValueError):
            return None
    return None


def parse_minutes(value: Any) -> Optional[float]:
    """Return a finite number of minutes, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        minutes = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(minutes):
        return None
    return minutes


def day_key(dt: datetime) -> str:
    """Local calendar day as YYYY-MM-DD."""
    return to_local_naive(dt).strftime("%Y-%m-%d")


def start_of_day(dt: datetime) -> datetime:
    return datetime.combine(to_local_naive(dt).date(), time.min)


def end_of_day(dt: datetime) -> datetime:
    return datetime.combine(to_local_naive(dt).date(), time.max)


def truncate_to_hour(dt: datetime) -> datetime:
    return dt.replace(minute=0, second=0, microsecond=0)


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def day_keys_in_range(start: datetime, end: datetime) -> Iterator[str]:
    """Yield every local day key touched by [start, end], inclusive."""
    day = to_local_naive(start).date()
    last = to_local_naive(end).date()
    while day <= last:
        yield day.strftime("%Y-%m-%d")
        if day == last:
            break
        day += timedelta(days=1)


def resolve_window(
    now: datetime,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    lookahead_days: int = 14,
) -> tuple[datetime, datetime]:
    """
    Lookahead window: [start of date_from (or today), end of date_to (or today + lookahead_days)].
    """
    today = start_of_day(now)
    start = start_of_day(date_from) if date_from else today
    end = end_of_day(date_to) if date_to else end_of_day(today + timedelta(days=lookahead_days))
    return start, end
