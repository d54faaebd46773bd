from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest
from dateutil.relativedelta import relativedelta

from taskalarms.calendar_math import days_in_month, weekday_ordinal
from taskalarms.models import DaysOfMonth, Frequency, RecurrenceRule, Reminder, WeeksOfMonth
from taskalarms.recurrence import iter_candidate_dates, next_occurrences, period_dates


TZ = ZoneInfo("Europe/Lisbon")


def _dt_local(y, m, d, hh=0, mm=0):
    return datetime(y, m, d, hh, mm, tzinfo=TZ)


def _rem(hh, mm=0):
    return Reminder(id="r1", time_of_day=time(hh, mm))


def _ymd(occurrences):
    return [(o.year, o.month, o.day) for o in occurrences]


# ---------- monthly, week-based ----------

def test_second_saturday_of_the_month():
    rule = RecurrenceRule(Frequency.MONTHLY, date(2025, 7, 12), monthly=WeeksOfMonth(frozenset({1})))
    occ = next_occurrences(rule, _rem(9), 6, _dt_local(2025, 7, 10))

    assert _ymd(occ) == [
        (2025, 7, 12), (2025, 8, 9), (2025, 9, 13),
        (2025, 10, 11), (2025, 11, 8), (2025, 12, 13),
    ]
    for o in occ:
        assert o.weekday() == 5
        assert (o.hour, o.minute) == (9, 0)


def test_fourth_monday_across_month_shapes():
    rule = RecurrenceRule.monthly_by_week(date(2025, 1, 27))
    occ = next_occurrences(rule, _rem(8), 6, _dt_local(2025, 1, 1))

    assert _ymd(occ) == [
        (2025, 1, 27), (2025, 2, 24), (2025, 3, 24),
        (2025, 4, 28), (2025, 5, 26), (2025, 6, 23),
    ]


def test_fifth_thursday_skips_months_without_one():
    rule = RecurrenceRule(Frequency.MONTHLY, date(2025, 5, 29), monthly=WeeksOfMonth(frozenset({4})))
    occ = next_occurrences(rule, _rem(10), 5, _dt_local(2025, 5, 1))

    assert _ymd(occ) == [
        (2025, 5, 29), (2025, 7, 31), (2025, 10, 30),
        (2026, 1, 29), (2026, 4, 30),
    ]


def test_week_based_occurrences_keep_anchor_weekday_and_ordinal():
    for anchor, week in [(date(2025, 7, 1), 0), (date(2025, 7, 25), 3), (date(2025, 5, 29), 4)]:
        rule = RecurrenceRule(Frequency.MONTHLY, anchor, monthly=WeeksOfMonth(frozenset({week})))
        occ = next_occurrences(rule, _rem(18), 12, _dt_local(2025, 1, 1))
        assert occ
        for o in occ:
            assert o.weekday() == anchor.weekday()
            # n-th occurrence within the month is selector + 1
            assert weekday_ordinal(o.date()) + 1 == week + 1


def test_every_two_months_week_based():
    rule = RecurrenceRule.monthly_by_week(date(2025, 1, 8), interval=2)
    occ = next_occurrences(rule, _rem(7), 6, _dt_local(2024, 12, 1))

    assert [o.month for o in occ] == [1, 3, 5, 7, 9, 11]
    assert all(o.year == 2025 and o.weekday() == 2 for o in occ)


def test_every_three_months_third_tuesday():
    rule = RecurrenceRule.monthly_by_week(date(2025, 1, 21), interval=3)
    occ = next_occurrences(rule, _rem(15, 30), 4, _dt_local(2025, 1, 1))

    assert _ymd(occ) == [(2025, 1, 21), (2025, 4, 15), (2025, 7, 15), (2025, 10, 21)]


def test_anchor_long_in_the_past():
    rule = RecurrenceRule.monthly_by_week(date(2024, 1, 13))
    now = _dt_local(2025, 7, 15, 8)
    occ = next_occurrences(rule, _rem(10), 3, now)

    assert _ymd(occ) == [(2025, 8, 9), (2025, 9, 13), (2025, 10, 11)]
    assert all(o > now for o in occ)


# ---------- monthly, day-based ----------

def test_thirty_first_clamps_in_short_months():
    rule = RecurrenceRule(Frequency.MONTHLY, date(2025, 1, 31), monthly=DaysOfMonth(frozenset({31})))
    occ = next_occurrences(rule, _rem(15), 12, _dt_local(2025, 1, 1))

    by_month = {o.month: o.day for o in occ if o.year == 2025}
    assert by_month[2] == 28
    assert by_month[4] == 30
    for o in occ:
        assert o.day == min(31, days_in_month(o.year, o.month))


def test_clamped_days_fold_onto_one_date():
    rule = RecurrenceRule.monthly_by_days(date(2025, 1, 1), [30, 31])
    assert period_dates(rule, 1) == [date(2025, 2, 28)]
    assert period_dates(rule, 0) == [date(2025, 1, 30), date(2025, 1, 31)]


def test_several_days_per_month_ascending():
    rule = RecurrenceRule.monthly_by_days(date(2025, 1, 1), [15, 1])
    occ = next_occurrences(rule, _rem(12), 4, _dt_local(2025, 1, 10))

    assert _ymd(occ) == [(2025, 1, 15), (2025, 2, 1), (2025, 2, 15), (2025, 3, 1)]


def test_day_and_week_based_diverge():
    week_rule = RecurrenceRule.monthly_by_week(date(2025, 1, 8))
    day_rule = RecurrenceRule.monthly_by_days(date(2025, 1, 8))
    now = _dt_local(2025, 1, 1)

    weeks = next_occurrences(week_rule, _rem(9), 12, now)
    days = next_occurrences(day_rule, _rem(9), 12, now)

    assert all(o.weekday() == 2 for o in weeks)
    assert all(o.day == 8 for o in days)
    assert weeks[1].day == 12  # Feb 12, 2nd Wednesday
    assert days[1].day == 8


def test_days_before_anchor_are_not_emitted():
    rule = RecurrenceRule.monthly_by_days(date(2025, 1, 10), [1, 15])
    assert period_dates(rule, 0) == [date(2025, 1, 15)]


# ---------- daily / weekly / yearly ----------

def test_daily_strictly_after_reference():
    rule = RecurrenceRule.daily(date(2025, 7, 1))
    assert _ymd(next_occurrences(rule, _rem(9), 1, _dt_local(2025, 7, 10, 8))) == [(2025, 7, 10)]
    # exactly at the reminder time is not "after"
    assert _ymd(next_occurrences(rule, _rem(9), 1, _dt_local(2025, 7, 10, 9))) == [(2025, 7, 11)]


def test_daily_interval_stays_on_anchor_cadence():
    rule = RecurrenceRule.daily(date(2025, 7, 1), interval=3)
    occ = next_occurrences(rule, _rem(9), 3, _dt_local(2025, 7, 10, 10))

    assert _ymd(occ) == [(2025, 7, 13), (2025, 7, 16), (2025, 7, 19)]


def test_daily_interval_across_year_boundary():
    rule = RecurrenceRule.daily(date(2025, 12, 28), interval=2)
    occ = next_occurrences(rule, _rem(6), 3, _dt_local(2025, 12, 29))

    assert _ymd(occ) == [(2025, 12, 30), (2026, 1, 1), (2026, 1, 3)]


def test_weekly_every_other_week_on_selected_days():
    rule = RecurrenceRule.weekly(date(2025, 7, 7), [0, 2, 4], interval=2)
    occ = next_occurrences(rule, _rem(9), 6, _dt_local(2025, 7, 8))

    assert _ymd(occ) == [
        (2025, 7, 9), (2025, 7, 11),
        (2025, 7, 21), (2025, 7, 23), (2025, 7, 25),
        (2025, 8, 4),
    ]


def test_weekly_skips_days_before_midweek_anchor():
    rule = RecurrenceRule.weekly(date(2025, 7, 9), [0, 2])
    assert list(_take(iter_candidate_dates(rule), 3)) == [date(2025, 7, 9), date(2025, 7, 14), date(2025, 7, 16)]


def test_yearly_leap_day_clamps():
    rule = RecurrenceRule.yearly(date(2024, 2, 29))
    occ = next_occurrences(rule, _rem(9), 4, _dt_local(2024, 3, 1))

    assert _ymd(occ) == [(2025, 2, 28), (2026, 2, 28), (2027, 2, 28), (2028, 2, 29)]


# ---------- generic properties ----------

def test_results_ascending_after_reference_and_idempotent():
    now = _dt_local(2025, 3, 14, 12)
    rules = [
        RecurrenceRule.daily(date(2025, 1, 1), interval=5),
        RecurrenceRule.weekly(date(2025, 1, 6), [1, 3, 6], interval=3),
        RecurrenceRule.monthly_by_days(date(2024, 11, 30), [29, 30, 31]),
        RecurrenceRule.monthly_by_week(date(2025, 1, 30), [0, 4]),
        RecurrenceRule.yearly(date(2020, 3, 14)),
    ]
    for rule in rules:
        first = next_occurrences(rule, _rem(12), 10, now)
        again = next_occurrences(rule, _rem(12), 10, now)
        assert first == again
        assert len(first) == 10
        assert all(o > now for o in first)
        assert all(a < b for a, b in zip(first, first[1:]))


def test_interval_spacing_in_months_and_years():
    rule = RecurrenceRule.monthly_by_days(date(2025, 1, 15), interval=2)
    occ = next_occurrences(rule, _rem(9), 6, _dt_local(2025, 1, 1))
    for a, b in zip(occ, occ[1:]):
        assert a.date() + relativedelta(months=2) == b.date()

    rule = RecurrenceRule.yearly(date(2025, 6, 1), interval=3)
    occ = next_occurrences(rule, _rem(9), 3, _dt_local(2025, 1, 1))
    assert [o.year for o in occ] == [2025, 2028, 2031]


def test_reference_in_utc_with_task_zone():
    rule = RecurrenceRule.daily(date(2025, 7, 1))
    # 07:30 UTC is 08:30 in Lisbon (WEST)
    occ = next_occurrences(rule, _rem(9), 1, datetime(2025, 7, 10, 7, 30, tzinfo=timezone.utc), tz=TZ)
    assert occ == [_dt_local(2025, 7, 10, 9)]

    occ = next_occurrences(rule, _rem(9), 1, datetime(2025, 7, 10, 8, 30, tzinfo=timezone.utc), tz=TZ)
    assert occ == [_dt_local(2025, 7, 11, 9)]


def test_naive_reference_yields_naive_timestamps():
    rule = RecurrenceRule.daily(date(2025, 7, 1))
    occ = next_occurrences(rule, _rem(9), 2, datetime(2025, 7, 10, 12))
    assert occ == [datetime(2025, 7, 11, 9), datetime(2025, 7, 12, 9)]


def test_naive_reference_with_zone_is_rejected():
    rule = RecurrenceRule.daily(date(2025, 7, 1))
    with pytest.raises(ValueError):
        next_occurrences(rule, _rem(9), 1, datetime(2025, 7, 10), tz=TZ)


def test_scan_bound_returns_partial_results():
    rule = RecurrenceRule.monthly_by_week(date(2025, 5, 29))  # 5th Thursday
    # May, June, July scanned: June has no 5th Thursday
    occ = next_occurrences(rule, _rem(10), 5, _dt_local(2025, 5, 1), max_periods=3)
    assert _ymd(occ) == [(2025, 5, 29), (2025, 7, 31)]


def test_zero_count_is_empty():
    rule = RecurrenceRule.daily(date(2025, 7, 1))
    assert next_occurrences(rule, _rem(9), 0, _dt_local(2025, 7, 1)) == []


def _take(it, n):
    for _, item in zip(range(n), it):
        yield item
