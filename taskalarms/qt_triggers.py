from __future__ import annotations
import itertools
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from PySide6.QtCore import QObject, QTimer, Qt, Signal

from .calendar_math import now_utc
from .models import TriggerKey

_LOGGER = logging.getLogger(__name__)

# QTimer intervals are signed 32-bit milliseconds (~24.8 days)
MAX_TIMER_MS = 2**31 - 1


@dataclass
class _Pending:
    key: TriggerKey
    fire_at: datetime
    timer: QTimer


class QtTriggerService(QObject):
    """
    In-process exact wake-up triggers backed by single-shot QTimers.

    Delays longer than a QTimer can hold are covered by re-arming the same
    timer until the target time is reached.
    """

    fired = Signal(str, str)  # task_id, reminder_id

    def __init__(self, clock: Callable[[], datetime] = now_utc, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.clock = clock
        self._pending: Dict[int, _Pending] = {}
        self._ids = itertools.count(1)

    async def register_exact_trigger(self, key: TriggerKey, fire_at: datetime) -> int:
        if fire_at.tzinfo is None:
            raise ValueError("fire_at must be timezone-aware")
        handle = next(self._ids)
        timer = QTimer(self)
        timer.setSingleShot(True)
        timer.setTimerType(Qt.TimerType.PreciseTimer)
        timer.timeout.connect(lambda h=handle: self._on_timeout(h))
        self._pending[handle] = _Pending(key=key, fire_at=fire_at, timer=timer)
        self._arm(handle)
        return handle

    async def cancel_trigger(self, handle: int) -> None:
        p = self._pending.pop(handle, None)
        if p is None:
            # already fired
            _LOGGER.debug("cancel of unknown trigger %s ignored", handle)
            return
        p.timer.stop()
        p.timer.deleteLater()

    def is_armed(self, handle: int) -> bool:
        p = self._pending.get(handle)
        return p is not None and p.timer.isActive()

    def pending_count(self) -> int:
        return len(self._pending)

    def _remaining_ms(self, p: _Pending) -> int:
        # round up so the timer never fires before fire_at
        return max(0, math.ceil((p.fire_at - self.clock()).total_seconds() * 1000))

    def _arm(self, handle: int) -> None:
        p = self._pending[handle]
        p.timer.start(min(self._remaining_ms(p), MAX_TIMER_MS))

    def _on_timeout(self, handle: int) -> None:
        p = self._pending.get(handle)
        if p is None:
            return
        if self.clock() < p.fire_at:
            self._arm(handle)
            return
        del self._pending[handle]
        p.timer.deleteLater()
        _LOGGER.info("trigger %s/%s fired", *p.key)
        self.fired.emit(p.key[0], p.key[1])
