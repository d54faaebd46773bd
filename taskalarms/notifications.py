from __future__ import annotations
from PySide6.QtWidgets import QSystemTrayIcon

from .models import Task


class Notifier:
    def __init__(self, tray: QSystemTrayIcon):
        self.tray = tray

    def remind(self, task: Task) -> None:
        subtitle = task.rule.describe() if task.rule else "Reminder"
        self.tray.showMessage(task.title, subtitle, QSystemTrayIcon.MessageIcon.Information, 10_000)
