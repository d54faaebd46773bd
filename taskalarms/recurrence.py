"""
Occurrence engine.

A RecurrenceRule is expanded one *period* at a time (a day, week, month or
year, stepped by the rule's interval). Each period contributes zero or more
calendar dates; those are combined with a reminder's time of day and filtered
against an explicit reference time.

Month and year stepping use dateutil.relativedelta so that offsets are
computed from the anchor month rather than accumulated, and so that a Feb 29
yearly anchor clamps to Feb 28 in common years.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, tzinfo
from typing import Iterator, List, Optional

from dateutil.relativedelta import relativedelta

from .calendar_math import (
    at_time_of_day,
    clamped_day_of_month,
    monday_of,
    nth_weekday_of_month,
)
from .models import DaysOfMonth, Frequency, RecurrenceRule, Reminder, WeeksOfMonth

_LOGGER = logging.getLogger(__name__)

# Upper bound on periods scanned per call. Week-based monthly rules asking
# for a 5th weekday can leave many months empty, so "N periods -> N results"
# does not hold.
MAX_PERIODS_SCANNED = 400


def period_dates(rule: RecurrenceRule, offset: int) -> List[date]:
    """Ascending dates contributed by the period `offset` units after the anchor."""
    anchor = rule.anchor_date

    if rule.frequency == Frequency.DAILY:
        dates = [anchor + timedelta(days=offset)]

    elif rule.frequency == Frequency.WEEKLY:
        monday = monday_of(anchor) + timedelta(weeks=offset)
        dates = [monday + timedelta(days=wd) for wd in rule.effective_weekdays]

    elif rule.frequency == Frequency.MONTHLY:
        first = anchor.replace(day=1) + relativedelta(months=offset)
        y, m = first.year, first.month
        sel = rule.monthly
        if isinstance(sel, DaysOfMonth):
            # clamping can fold 30 and 31 onto the same day
            dates = sorted({date(y, m, clamped_day_of_month(y, m, d)) for d in sel.days})
        elif isinstance(sel, WeeksOfMonth):
            dates = []
            for n in sorted(sel.weeks):
                found = nth_weekday_of_month(y, m, rule.anchor_weekday, n)
                if found is not None:
                    dates.append(found)
        else:  # pragma: no cover - rejected in RecurrenceRule.__post_init__
            raise TypeError(f"unknown monthly selector {sel!r}")

    elif rule.frequency == Frequency.YEARLY:
        dates = [anchor + relativedelta(years=offset)]

    else:  # pragma: no cover
        raise TypeError(f"unknown frequency {rule.frequency!r}")

    # a rule never fires before it starts
    return [d for d in dates if d >= anchor]


def units_since_anchor(rule: RecurrenceRule, d: date) -> int:
    """Whole days/weeks/months/years between the anchor's period and d's period."""
    anchor = rule.anchor_date
    if rule.frequency == Frequency.DAILY:
        return (d - anchor).days
    if rule.frequency == Frequency.WEEKLY:
        return (monday_of(d) - monday_of(anchor)).days // 7
    if rule.frequency == Frequency.MONTHLY:
        return (d.year - anchor.year) * 12 + (d.month - anchor.month)
    return d.year - anchor.year


def iter_periods(rule: RecurrenceRule, start: int = 0) -> Iterator[List[date]]:
    """Unbounded: callers cap how many periods they consume."""
    i = start
    while True:
        yield period_dates(rule, i * rule.interval)
        i += 1


def iter_candidate_dates(rule: RecurrenceRule) -> Iterator[date]:
    for dates in iter_periods(rule):
        yield from dates


def next_occurrences(
    rule: RecurrenceRule,
    reminder: Reminder,
    count: int,
    reference_now: datetime,
    tz: Optional[tzinfo] = None,
    max_periods: int = MAX_PERIODS_SCANNED,
) -> List[datetime]:
    """
    Up to `count` ascending timestamps strictly after `reference_now`.

    `tz` is the task's local zone; it defaults to reference_now's own tzinfo.
    A naive reference_now is only accepted without an explicit tz, and then
    yields naive timestamps.

    Fewer than `count` results (possibly none) come back when `max_periods`
    periods have been scanned without filling the list.
    """
    if count <= 0:
        return []
    if max_periods < 1:
        raise ValueError("max_periods must be >= 1")

    if tz is None:
        tz = reference_now.tzinfo
        ref_date = reference_now.date()
    else:
        if reference_now.tzinfo is None:
            raise ValueError("reference_now must be timezone-aware when tz is given")
        ref_date = reference_now.astimezone(tz).date()

    # Skip periods that end before the reference day; one period of slack
    # covers the reference day's own period and zone offsets.
    start = max(0, units_since_anchor(rule, ref_date) // rule.interval - 1)

    out: List[datetime] = []
    periods = iter_periods(rule, start)
    for _ in range(max_periods):
        for d in next(periods):
            ts = at_time_of_day(d, reminder.time_of_day, tz)
            if ts <= reference_now:
                continue
            out.append(ts)
            if len(out) >= count:
                return out

    _LOGGER.debug(
        "scan bound of %d periods reached for %s: %d/%d occurrences",
        max_periods, rule.describe(), len(out), count,
    )
    return out
