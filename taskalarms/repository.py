from __future__ import annotations
import sqlite3
from datetime import date, time, tzinfo
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .calendar_math import local_tz
from .models import (
    AppSettings,
    DaysOfMonth,
    Frequency,
    RecurrenceRule,
    Reminder,
    Task,
    TaskType,
    WeeksOfMonth,
)
from .recurrence import MAX_PERIODS_SCANNED


class TaskNotFoundError(KeyError):
    pass


def _ints_from_csv(s: str) -> List[int]:
    if not s.strip():
        return []
    return [int(x) for x in s.split(",")]


def _ints_to_csv(values: Iterable[int]) -> str:
    return ",".join(str(v) for v in sorted(set(values)))


class Repository:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # ---------- Settings ----------
    def get_settings(self) -> AppSettings:
        raw = self._get_setting("max_periods_scanned", str(MAX_PERIODS_SCANNED))
        try:
            max_periods = max(1, int(raw))
        except ValueError:
            max_periods = MAX_PERIODS_SCANNED
        return AppSettings(
            max_periods_scanned=max_periods,
            timezone=self._get_setting("timezone", ""),
        )

    def set_max_periods_scanned(self, n: int) -> None:
        self._set_setting("max_periods_scanned", str(n))

    def set_timezone(self, name: str) -> None:
        if name:
            ZoneInfo(name)  # reject unknown zones before storing them
        self._set_setting("timezone", name)

    def task_timezone(self) -> tzinfo:
        name = self.get_settings().timezone
        if not name:
            return local_tz()
        try:
            return ZoneInfo(name)
        except ZoneInfoNotFoundError:
            return local_tz()

    def _get_setting(self, key: str, default: str) -> str:
        row = self.conn.execute("SELECT value FROM settings WHERE key=?", (key,)).fetchone()
        return row["value"] if row else default

    def _set_setting(self, key: str, value: str) -> None:
        self.conn.execute(
            "INSERT INTO settings(key,value) VALUES(?,?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            (key, value),
        )
        self.conn.commit()

    # ---------- Tasks ----------
    def list_task_ids(self) -> List[str]:
        rows = self.conn.execute("SELECT id FROM tasks ORDER BY rowid ASC").fetchall()
        return [r["id"] for r in rows]

    def list_tasks(self) -> List[Task]:
        rows = self.conn.execute("SELECT * FROM tasks ORDER BY rowid ASC").fetchall()
        return [self._task_from_row(r) for r in rows]

    def get_task(self, task_id: str) -> Task:
        r = self.conn.execute("SELECT * FROM tasks WHERE id=?", (task_id,)).fetchone()
        if not r:
            raise TaskNotFoundError(task_id)
        return self._task_from_row(r)

    def save_task(self, task: Task) -> None:
        """Insert or replace the task together with its reminders."""
        rule = task.rule
        days: Iterable[int] = ()
        weeks: Iterable[int] = ()
        if rule is not None and isinstance(rule.monthly, DaysOfMonth):
            days = rule.monthly.days
        elif rule is not None and isinstance(rule.monthly, WeeksOfMonth):
            weeks = rule.monthly.weeks

        with self.conn:
            self.conn.execute(
                """
                INSERT INTO tasks(id, title, task_type, frequency, every_x, start_date,
                                  days_of_month, weeks_of_month, weekdays)
                VALUES(?,?,?,?,?,?,?,?,?)
                ON CONFLICT(id) DO UPDATE SET
                    title=excluded.title, task_type=excluded.task_type,
                    frequency=excluded.frequency, every_x=excluded.every_x,
                    start_date=excluded.start_date, days_of_month=excluded.days_of_month,
                    weeks_of_month=excluded.weeks_of_month, weekdays=excluded.weekdays
                """,
                (
                    task.id,
                    task.title,
                    task.task_type.value,
                    rule.frequency.value if rule else None,
                    rule.interval if rule else 1,
                    rule.anchor_date.isoformat() if rule else None,
                    _ints_to_csv(days),
                    _ints_to_csv(weeks),
                    _ints_to_csv(rule.weekdays) if rule else "",
                ),
            )
            self.conn.execute("DELETE FROM reminders WHERE task_id=?", (task.id,))
            self.conn.executemany(
                "INSERT INTO reminders(id, task_id, time, position) VALUES(?,?,?,?)",
                [
                    (rem.id, task.id, rem.time_of_day.strftime("%H:%M"), pos)
                    for pos, rem in enumerate(task.reminders)
                ],
            )

    def delete_task(self, task_id: str) -> None:
        self.conn.execute("DELETE FROM tasks WHERE id=?", (task_id,))
        self.conn.commit()

    def _task_from_row(self, r: sqlite3.Row) -> Task:
        rule: Optional[RecurrenceRule] = None
        if r["frequency"]:
            days = _ints_from_csv(r["days_of_month"])
            weeks = _ints_from_csv(r["weeks_of_month"])
            monthly = None
            if weeks:
                monthly = WeeksOfMonth(frozenset(weeks))
            elif days:
                monthly = DaysOfMonth(frozenset(days))
            rule = RecurrenceRule(
                frequency=Frequency(r["frequency"]),
                anchor_date=date.fromisoformat(r["start_date"]),
                interval=int(r["every_x"]),
                monthly=monthly,
                weekdays=frozenset(_ints_from_csv(r["weekdays"])),
            )

        rows = self.conn.execute(
            "SELECT id, time FROM reminders WHERE task_id=? ORDER BY position ASC",
            (r["id"],),
        ).fetchall()
        reminders = tuple(Reminder(id=x["id"], time_of_day=self._parse_hhmm(x["time"])) for x in rows)

        return Task(
            id=r["id"],
            title=r["title"],
            task_type=TaskType(r["task_type"]),
            rule=rule,
            reminders=reminders,
        )

    def _parse_hhmm(self, s: str) -> time:
        hh, mm = s.split(":")
        return time(int(hh), int(mm))


class RepositoryTaskSource:
    """Async task source for AlarmScheduler over a sqlite Repository."""

    def __init__(self, repo: Repository):
        self.repo = repo

    async def get_task(self, task_id: str) -> Task:
        return self.repo.get_task(task_id)
