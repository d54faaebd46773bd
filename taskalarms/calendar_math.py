from __future__ import annotations
from calendar import monthrange
from datetime import datetime, timedelta, time, date, timezone, tzinfo
from typing import Optional

from dateutil import tz as dateutil_tz

def local_tz() -> tzinfo:
    # follows the system zone's DST rules, not just today's offset
    return dateutil_tz.tzlocal()

def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_local(dt_utc: datetime) -> datetime:
    if dt_utc.tzinfo is None:
        dt_utc = dt_utc.replace(tzinfo=timezone.utc)
    return dt_utc.astimezone(local_tz())


def at_time_of_day(d: date, t: time, tz: Optional[tzinfo]) -> datetime:
    """Wall-clock `t` on day `d` in `tz` (naive when tz is None)."""
    return datetime.combine(d, time(t.hour, t.minute, t.second), tzinfo=tz)


def days_in_month(year: int, month: int) -> int:
    return monthrange(year, month)[1]


def clamped_day_of_month(year: int, month: int, day: int) -> int:
    """Day 31 in a 30-day month lands on the 30th instead of being skipped."""
    return min(day, days_in_month(year, month))


def nth_weekday_of_month(year: int, month: int, weekday: int, n: int) -> Optional[date]:
    """
    Date of the n-th (0-based) `weekday` (Mon=0) in the month,
    or None when the month has fewer than n+1 of them.
    """
    first = date(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    day = 1 + offset + 7 * n
    if day > days_in_month(year, month):
        return None
    return date(year, month, day)


def weekday_ordinal(d: date) -> int:
    # 0 = first occurrence of d's weekday in its month
    return (d.day - 1) // 7


def monday_of(d: date) -> date:
    return d - timedelta(days=d.weekday())


def ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"
