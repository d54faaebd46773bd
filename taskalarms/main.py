from __future__ import annotations
import asyncio
import logging
import os
import signal
import sys
import uuid
from datetime import date, time

from PySide6.QtWidgets import QApplication, QMessageBox, QStyle, QSystemTrayIcon, QMenu
from PySide6.QtGui import QAction
from PySide6.QtCore import QTimer

from .calendar_math import now_utc
from .db import connect, data_dir, migrate
from .log import setup_logging
from .models import RecurrenceRule, Reminder, Task, TaskType
from .notifications import Notifier
from .qt_triggers import QtTriggerService
from .recurrence import next_occurrences
from .repository import Repository, RepositoryTaskSource
from .scheduler import AlarmScheduler

_LOGGER = logging.getLogger(__name__)

PREVIEW_COUNT = 5


def ensure_default_task(repo: Repository) -> None:
    if repo.list_task_ids():
        return

    # Default: a daily task reminding at 09:00
    repo.save_task(
        Task(
            id=str(uuid.uuid4()),
            title="Daily review",
            task_type=TaskType.DAILY,
            rule=RecurrenceRule.daily(date.today()),
            reminders=(Reminder(id=str(uuid.uuid4()), time_of_day=time(9, 0)),),
        )
    )


def upcoming_text(repo: Repository) -> str:
    tz = repo.task_timezone()
    limit = repo.get_settings().max_periods_scanned
    nowu = now_utc()

    lines = []
    for task in repo.list_tasks():
        if task.rule is None:
            continue
        lines.append(f"{task.title} ({task.rule.describe()})")
        for rem in task.reminders:
            for ts in next_occurrences(task.rule, rem, PREVIEW_COUNT, nowu, tz=tz, max_periods=limit):
                lines.append(f"    {ts:%a %Y-%m-%d %H:%M}")
    return "\n".join(lines) or "No recurring reminders."


def main() -> int:
    setup_logging(
        logging.DEBUG if os.environ.get("TASKALARMS_DEBUG") else logging.INFO,
        data_dir() / "taskalarms.log",
    )

    app = QApplication(sys.argv)
    app.setQuitOnLastWindowClosed(False)

    # Qt's event loop eats SIGINT unless we pump it.
    signal.signal(signal.SIGINT, signal.SIG_DFL)
    _sig_timer = QTimer()
    _sig_timer.start(250)
    _sig_timer.timeout.connect(lambda: None)

    conn = connect()
    migrate(conn)
    repo = Repository(conn)
    ensure_default_task(repo)
    settings = repo.get_settings()

    # One loop for the whole process so the scheduler's locks stay on it.
    loop = asyncio.new_event_loop()

    triggers = QtTriggerService()
    scheduler = AlarmScheduler(
        RepositoryTaskSource(repo),
        triggers,
        tz=repo.task_timezone(),
        max_periods=settings.max_periods_scanned,
    )

    icon = app.style().standardIcon(QStyle.StandardPixmap.SP_MessageBoxInformation)
    app.setWindowIcon(icon)
    tray = QSystemTrayIcon()
    tray.setIcon(icon)
    tray.setToolTip("Task Alarms")
    notifier = Notifier(tray)

    def replay() -> None:
        failed = loop.run_until_complete(scheduler.replay_all(repo.list_task_ids()))
        _LOGGER.info("alarm replay done, %d task(s) failed", len(failed))

    def on_fired(task_id: str, reminder_id: str) -> None:
        try:
            task = repo.get_task(task_id)
        except KeyError:
            _LOGGER.info("trigger for deleted task %s ignored", task_id)
            return
        notifier.remind(task)
        # re-arm for the next occurrence
        loop.run_until_complete(scheduler.add_alarm_for_task_id(task_id))

    triggers.fired.connect(on_fired)

    menu = QMenu()

    act_upcoming = QAction("Upcoming…")
    act_upcoming.triggered.connect(lambda: QMessageBox.information(None, "Upcoming reminders", upcoming_text(repo)))
    menu.addAction(act_upcoming)

    act_replay = QAction("Re-arm alarms")
    act_replay.triggered.connect(replay)
    menu.addAction(act_replay)

    menu.addSeparator()

    def quit_cleanly():
        tray.hide()
        app.quit()

    act_quit = QAction("Quit")
    act_quit.triggered.connect(quit_cleanly)
    menu.addAction(act_quit)

    tray.setContextMenu(menu)

    replay()
    tray.show()
    try:
        return app.exec()
    finally:
        loop.close()
        conn.close()


if __name__ == "__main__":
    sys.exit(main())
