from __future__ import annotations
import os
import sqlite3
import sys
from pathlib import Path
from typing import Optional

from .recurrence import MAX_PERIODS_SCANNED

DB_NAME = "taskalarms.sqlite3"


def data_dir(app_name: str = "TaskAlarms") -> Path:
    # macOS: ~/Library/Application Support/TaskAlarms
    # Windows: %APPDATA%\TaskAlarms
    home = Path.home()
    if sys.platform == "darwin":
        base = home / "Library" / "Application Support"
    elif sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(home)))
    else:
        base = home / ".local" / "share"
    d = base / app_name
    d.mkdir(parents=True, exist_ok=True)
    return d


def db_path() -> Path:
    return data_dir() / DB_NAME


def connect(path: Optional[str] = None) -> sqlite3.Connection:
    conn = sqlite3.connect(path or db_path())
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


def migrate(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            task_type TEXT NOT NULL,
            frequency TEXT,             -- NULL for one-shot tasks
            every_x INTEGER NOT NULL DEFAULT 1,
            start_date TEXT,            -- YYYY-MM-DD anchor
            days_of_month TEXT NOT NULL DEFAULT '',   -- CSV "1,15"
            weeks_of_month TEXT NOT NULL DEFAULT '',  -- CSV, 0-based "1"
            weekdays TEXT NOT NULL DEFAULT ''         -- CSV "0,2,4"
        );

        CREATE TABLE IF NOT EXISTS reminders (
            id TEXT PRIMARY KEY,
            task_id TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
            time TEXT NOT NULL,         -- HH:MM
            position INTEGER NOT NULL DEFAULT 0
        );
        """
    )

    if conn.execute("SELECT value FROM settings WHERE key='max_periods_scanned'").fetchone() is None:
        conn.execute(
            "INSERT INTO settings(key,value) VALUES('max_periods_scanned',?)",
            (str(MAX_PERIODS_SCANNED),),
        )

    # empty = system local zone
    if conn.execute("SELECT value FROM settings WHERE key='timezone'").fetchone() is None:
        conn.execute("INSERT INTO settings(key,value) VALUES('timezone','')")

    conn.commit()
