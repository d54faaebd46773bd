from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, FrozenSet, Optional, Tuple, Union

from .calendar_math import ordinal, weekday_ordinal

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class RuleConfigError(ValueError):
    """A recurrence rule that can never produce a sensible schedule."""


class TaskType(str, Enum):
    DAILY = "daily"  # recurring, carries a RecurrenceRule
    TODO = "todo"


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class DaysOfMonth:
    # 1-based calendar days
    days: FrozenSet[int]

    def __post_init__(self) -> None:
        object.__setattr__(self, "days", frozenset(self.days))
        if not self.days:
            raise RuleConfigError("days of month must not be empty")
        bad = [d for d in self.days if not 1 <= d <= 31]
        if bad:
            raise RuleConfigError(f"days of month out of range 1..31: {sorted(bad)}")


@dataclass(frozen=True)
class WeeksOfMonth:
    # 0-based ordinals of the anchor weekday: 0 = first, 4 = fifth
    weeks: FrozenSet[int]

    def __post_init__(self) -> None:
        object.__setattr__(self, "weeks", frozenset(self.weeks))
        if not self.weeks:
            raise RuleConfigError("weeks of month must not be empty")
        bad = [w for w in self.weeks if not 0 <= w <= 4]
        if bad:
            raise RuleConfigError(f"weeks of month out of range 0..4: {sorted(bad)}")


MonthlySelector = Union[DaysOfMonth, WeeksOfMonth]


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: Frequency
    anchor_date: date
    interval: int = 1
    monthly: Optional[MonthlySelector] = None
    # 0=Mon ... 6=Sun; empty means the anchor's weekday
    weekdays: FrozenSet[int] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "weekdays", frozenset(self.weekdays))
        if isinstance(self.anchor_date, datetime):
            object.__setattr__(self, "anchor_date", self.anchor_date.date())

        if not isinstance(self.interval, int) or self.interval < 1:
            raise RuleConfigError(f"interval must be a positive integer, got {self.interval!r}")

        if self.frequency == Frequency.MONTHLY:
            if not isinstance(self.monthly, (DaysOfMonth, WeeksOfMonth)):
                raise RuleConfigError("monthly rule needs days of month or weeks of month")
        elif self.monthly is not None:
            raise RuleConfigError(f"{self.frequency.value} rule cannot carry a monthly selector")

        bad = [d for d in self.weekdays if not 0 <= d <= 6]
        if bad:
            raise RuleConfigError(f"weekdays out of range 0..6: {sorted(bad)}")
        if self.weekdays and self.frequency != Frequency.WEEKLY:
            raise RuleConfigError(f"{self.frequency.value} rule cannot carry weekdays")

    # ---------- Constructors ----------
    @classmethod
    def daily(cls, anchor_date: date, interval: int = 1) -> "RecurrenceRule":
        return cls(Frequency.DAILY, anchor_date, interval)

    @classmethod
    def weekly(cls, anchor_date: date, weekdays=(), interval: int = 1) -> "RecurrenceRule":
        return cls(Frequency.WEEKLY, anchor_date, interval, weekdays=frozenset(weekdays))

    @classmethod
    def monthly_by_days(cls, anchor_date: date, days=(), interval: int = 1) -> "RecurrenceRule":
        """Days default to the anchor's day of month."""
        return cls(
            Frequency.MONTHLY,
            anchor_date,
            interval,
            monthly=DaysOfMonth(frozenset(days or (anchor_date.day,))),
        )

    @classmethod
    def monthly_by_week(cls, anchor_date: date, weeks=(), interval: int = 1) -> "RecurrenceRule":
        """Weeks default to the anchor's own ordinal, e.g. 2025-07-12 -> {1} (2nd Saturday)."""
        return cls(
            Frequency.MONTHLY,
            anchor_date,
            interval,
            monthly=WeeksOfMonth(frozenset(weeks or (weekday_ordinal(anchor_date),))),
        )

    @classmethod
    def yearly(cls, anchor_date: date, interval: int = 1) -> "RecurrenceRule":
        return cls(Frequency.YEARLY, anchor_date, interval)

    # ---------- Derived ----------
    @property
    def anchor_weekday(self) -> int:
        return self.anchor_date.weekday()

    @property
    def effective_weekdays(self) -> Tuple[int, ...]:
        return tuple(sorted(self.weekdays or {self.anchor_weekday}))

    def describe(self) -> str:
        unit = {
            Frequency.DAILY: "day",
            Frequency.WEEKLY: "week",
            Frequency.MONTHLY: "month",
            Frequency.YEARLY: "year",
        }[self.frequency]
        every = f"Every {unit}" if self.interval == 1 else f"Every {self.interval} {unit}s"

        if self.frequency == Frequency.WEEKLY:
            names = ", ".join(WEEKDAY_NAMES[d] for d in self.effective_weekdays)
            return f"{every} on {names}"
        if isinstance(self.monthly, DaysOfMonth):
            days = ", ".join(str(d) for d in sorted(self.monthly.days))
            return f"{every} on day {days}"
        if isinstance(self.monthly, WeeksOfMonth):
            # stored 0-based, shown 1-based
            nths = ", ".join(ordinal(w + 1) for w in sorted(self.monthly.weeks))
            return f"{every} on the {nths} {WEEKDAY_NAMES[self.anchor_weekday]}"
        if self.frequency == Frequency.YEARLY:
            return f"{every} on {self.anchor_date.strftime('%B')} {self.anchor_date.day}"
        return every


@dataclass(frozen=True)
class Reminder:
    id: str
    time_of_day: time

    @classmethod
    def from_iso(cls, reminder_id: str, value: str) -> "Reminder":
        """Stored reminders carry a full datetime; only the clock time matters."""
        dt = datetime.fromisoformat(value)
        return cls(id=reminder_id, time_of_day=time(dt.hour, dt.minute))


@dataclass(frozen=True)
class Task:
    id: str
    title: str
    task_type: TaskType
    rule: Optional[RecurrenceRule] = None
    reminders: Tuple[Reminder, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "reminders", tuple(self.reminders))
        if self.task_type == TaskType.DAILY and self.rule is None:
            raise RuleConfigError(f"recurring task {self.id!r} needs a recurrence rule")
        if self.task_type != TaskType.DAILY and self.rule is not None:
            raise RuleConfigError(f"one-shot task {self.id!r} cannot carry a recurrence rule")


TriggerKey = Tuple[str, str]  # (task_id, reminder_id)


@dataclass(frozen=True)
class ScheduledTrigger:
    key: TriggerKey
    handle: Any
    fire_at: datetime

    @property
    def task_id(self) -> str:
        return self.key[0]

    @property
    def reminder_id(self) -> str:
        return self.key[1]


@dataclass(frozen=True)
class AppSettings:
    max_periods_scanned: int
    timezone: str = field(default="")  # IANA name, "" = system local
