"""SQLite persistence for users, conversations, reminders, habits, tasks and health logs.

A single :class:`Database` owns one connection guarded by a lock so the
synchronous ``sqlite3`` calls can be made from async handlers.  The schema is
created on open.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Any, Iterator, Sequence

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    telegram_id TEXT    NOT NULL UNIQUE,
    username    TEXT,
    first_name  TEXT,
    preferences TEXT    NOT NULL DEFAULT '{}',
    timezone    TEXT    NOT NULL DEFAULT 'UTC',
    created_at  TEXT    NOT NULL,
    last_active TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS conversations (
    id        INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id   INTEGER NOT NULL REFERENCES users(id),
    message   TEXT    NOT NULL,
    response  TEXT    NOT NULL,
    timestamp TEXT    NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_conversations_user ON conversations(user_id);

CREATE TABLE IF NOT EXISTS reminders (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id      INTEGER NOT NULL REFERENCES users(id),
    description  TEXT    NOT NULL,
    remind_at    TEXT    NOT NULL,
    status       TEXT    NOT NULL DEFAULT 'pending',
    notes        TEXT,
    created_at   TEXT    NOT NULL,
    updated_at   TEXT    NOT NULL,
    completed_at TEXT,
    cancelled_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_reminders_due ON reminders(status, remind_at);

CREATE TABLE IF NOT EXISTS habits (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id    INTEGER NOT NULL REFERENCES users(id),
    habit_name TEXT    NOT NULL,
    frequency  TEXT    NOT NULL DEFAULT 'daily',
    created_at TEXT    NOT NULL,
    UNIQUE (user_id, habit_name)
);

CREATE TABLE IF NOT EXISTS habit_entries (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    habit_id   INTEGER NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
    user_id    INTEGER NOT NULL REFERENCES users(id),
    count      INTEGER NOT NULL DEFAULT 1,
    entry_date TEXT    NOT NULL,
    logged_at  TEXT    NOT NULL,
    UNIQUE (habit_id, entry_date)
);

CREATE TABLE IF NOT EXISTS tasks (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id      INTEGER NOT NULL REFERENCES users(id),
    title        TEXT    NOT NULL,
    description  TEXT,
    status       TEXT    NOT NULL DEFAULT 'pending',
    priority     TEXT    NOT NULL DEFAULT 'medium',
    created_at   TEXT    NOT NULL,
    completed_at TEXT
);

CREATE TABLE IF NOT EXISTS meals (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     INTEGER NOT NULL REFERENCES users(id),
    meal_type   TEXT    NOT NULL,
    description TEXT,
    logged_at   TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS mood_entries (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id    INTEGER NOT NULL REFERENCES users(id),
    mood_level INTEGER NOT NULL,
    mood_type  TEXT    NOT NULL,
    notes      TEXT,
    logged_at  TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS health_logs (
    id        INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id   INTEGER NOT NULL REFERENCES users(id),
    log_type  TEXT    NOT NULL,
    value     TEXT    NOT NULL,
    notes     TEXT,
    logged_at TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS files (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     INTEGER NOT NULL REFERENCES users(id),
    file_id     TEXT    NOT NULL,
    file_type   TEXT    NOT NULL,
    file_size   INTEGER,
    description TEXT,
    created_at  TEXT    NOT NULL
);
"""

# Tables holding rows owned by a user, in delete order.
USER_TABLES = (
    "conversations",
    "habit_entries",
    "habits",
    "reminders",
    "tasks",
    "meals",
    "mood_entries",
    "health_logs",
    "files",
)


class Database:
    """Thread-safe wrapper around a single SQLite connection."""

    def __init__(self, path: str = "assistant.db") -> None:
        self._path = path
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = Lock()
        self._init_db()

    @property
    def path(self) -> str:
        return self._path

    def _init_db(self) -> None:
        with self._lock:
            if self._path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        logger.debug("Database initialised at %s", self._path)

    # ── statements ─────────────────────────────────────────────────────────

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Run a single write statement and commit it."""
        with self._lock:
            cursor = self._conn.execute(sql, params)
            self._conn.commit()
            return cursor

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run several statements atomically; rolls back on any exception."""
        with self._lock:
            try:
                yield self._conn
            except Exception:
                self._conn.rollback()
                raise
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()
