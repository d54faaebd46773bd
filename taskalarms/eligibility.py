from __future__ import annotations
from typing import Optional

from .models import Frequency, Task, TaskType


def ineligibility_reason(task: Task) -> Optional[str]:
    """
    Why the task's reminders must not be armed as wake-up triggers,
    or None when they should be.

    Only day-level recurrence is armed eagerly. Weekly/monthly/yearly
    reminders are shown in-app but never take an OS alarm slot.
    """
    if task.task_type != TaskType.DAILY or task.rule is None:
        return f"task type {task.task_type.value} does not recur"
    if task.rule.frequency != Frequency.DAILY:
        return f"{task.rule.frequency.value} recurrence is not armed"
    if not task.reminders:
        return "no reminders"
    return None


def is_eligible(task: Task) -> bool:
    return ineligibility_reason(task) is None
