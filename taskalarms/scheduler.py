from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, tzinfo
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Protocol

from .calendar_math import local_tz, now_utc
from .eligibility import ineligibility_reason
from .models import RecurrenceRule, Reminder, ScheduledTrigger, Task, TriggerKey
from .recurrence import MAX_PERIODS_SCANNED, next_occurrences

_LOGGER = logging.getLogger(__name__)


class TaskSource(Protocol):
    async def get_task(self, task_id: str) -> Task:
        """Current committed task; raises TaskNotFoundError when missing."""
        ...


class TriggerService(Protocol):
    async def register_exact_trigger(self, key: TriggerKey, fire_at: datetime) -> Any:
        ...

    async def cancel_trigger(self, handle: Any) -> None:
        ...


class AlarmScheduler:
    """
    Keeps at most one live trigger per (task_id, reminder_id).

    Calls for the same task id are serialized by a per-task lock so the
    registered trigger always matches the last completed call; different
    task ids run independently.
    """

    def __init__(
        self,
        tasks: TaskSource,
        triggers: TriggerService,
        clock: Callable[[], datetime] = now_utc,
        tz: Optional[tzinfo] = None,
        max_periods: int = MAX_PERIODS_SCANNED,
    ):
        self.tasks = tasks
        self.triggers = triggers
        self.clock = clock
        self.tz = tz
        self.max_periods = max_periods

        self._live: Dict[TriggerKey, ScheduledTrigger] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    # ---------- Public API ----------
    async def add_alarm_for_task_id(self, task_id: str) -> None:
        async with self._task_lock(task_id):
            await self._add_alarm_locked(task_id)

    async def cancel_alarms_for_task_id(self, task_id: str) -> None:
        """For delete/edit flows: drop every live trigger of the task."""
        async with self._task_lock(task_id):
            for key in [k for k in self._live if k[0] == task_id]:
                await self._cancel(key)

    async def replay_all(self, task_ids: Iterable[str]) -> List[str]:
        """
        Re-arm after a restart. A failing task does not stop the others;
        returns the ids that failed.
        """
        ids = list(task_ids)
        results = await asyncio.gather(
            *(self.add_alarm_for_task_id(tid) for tid in ids),
            return_exceptions=True,
        )
        failed = []
        for tid, res in zip(ids, results):
            if isinstance(res, Exception):
                _LOGGER.warning("could not re-arm alarms for task %s: %r", tid, res)
                failed.append(tid)
        return failed

    def trigger(self, task_id: str, reminder_id: str) -> Optional[ScheduledTrigger]:
        return self._live.get((task_id, reminder_id))

    def triggers_for(self, task_id: str) -> List[ScheduledTrigger]:
        return [t for k, t in self._live.items() if k[0] == task_id]

    # ---------- Internals ----------
    @asynccontextmanager
    async def _task_lock(self, task_id: str) -> AsyncIterator[None]:
        """
        Per-task lock, dropped again once no caller holds or waits on it,
        so the lock table only covers tasks with calls in flight.
        """
        lock = self._locks.get(task_id)
        if lock is None:
            lock = self._locks[task_id] = asyncio.Lock()
        self._lock_users[task_id] = self._lock_users.get(task_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[task_id] -= 1
            if not self._lock_users[task_id]:
                del self._lock_users[task_id]
                del self._locks[task_id]

    async def _add_alarm_locked(self, task_id: str) -> None:
        # fetch errors propagate before anything is touched
        task = await self.tasks.get_task(task_id)

        reason = ineligibility_reason(task)
        rule = task.rule
        if reason is not None or rule is None:
            _LOGGER.debug("not arming task %s: %s", task_id, reason)
            return

        for reminder in task.reminders:
            await self._rearm(task.id, rule, reminder)

    async def _rearm(self, task_id: str, rule: RecurrenceRule, reminder: Reminder) -> None:
        key = (task_id, reminder.id)
        await self._cancel(key)

        upcoming = next_occurrences(
            rule,
            reminder,
            1,
            self.clock(),
            tz=self.tz or local_tz(),
            max_periods=self.max_periods,
        )
        if not upcoming:
            _LOGGER.debug("no upcoming occurrence for %s/%s", *key)
            return

        fire_at = upcoming[0]
        handle = await self.triggers.register_exact_trigger(key, fire_at)
        self._live[key] = ScheduledTrigger(key=key, handle=handle, fire_at=fire_at)
        _LOGGER.info("armed %s/%s for %s", task_id, reminder.id, fire_at.isoformat())

    async def _cancel(self, key: TriggerKey) -> None:
        live = self._live.get(key)
        if live is None:
            return
        await self.triggers.cancel_trigger(live.handle)
        # only forget the handle once the service confirmed the cancel
        del self._live[key]
