"""User records: creation on first contact, activity tracking and settings."""

import json
import logging
import sqlite3
from datetime import timedelta
from typing import Any

from models import User
from storage import USER_TABLES, Database
from timeutil import Clock, to_db

logger = logging.getLogger(__name__)


class UserStore:
    """CRUD for the ``users`` table."""

    def __init__(self, db: Database, clock: Clock) -> None:
        self._db = db
        self._clock = clock

    def get_by_telegram_id(self, telegram_id: int | str) -> User | None:
        row = self._db.fetchone(
            "SELECT * FROM users WHERE telegram_id = ?", (str(telegram_id),)
        )
        return User.from_row(row) if row else None

    def get(self, user_id: int) -> User | None:
        row = self._db.fetchone("SELECT * FROM users WHERE id = ?", (user_id,))
        return User.from_row(row) if row else None

    def get_or_create(
        self,
        telegram_id: int | str,
        username: str | None = None,
        first_name: str | None = None,
        timezone: str = "UTC",
    ) -> User:
        """Return the user for *telegram_id*, inserting a new row on first contact."""
        existing = self.get_by_telegram_id(telegram_id)
        if existing:
            return existing
        now = to_db(self._clock())
        cursor = self._db.execute(
            """
            INSERT INTO users
                (telegram_id, username, first_name, preferences, timezone, created_at, last_active)
            VALUES (?, ?, ?, '{}', ?, ?, ?)
            """,
            (str(telegram_id), username or "", first_name or "", timezone, now, now),
        )
        logger.info("Created user %d for telegram id %s", cursor.lastrowid, telegram_id)
        user = self.get(cursor.lastrowid)
        if user is None:
            raise sqlite3.DatabaseError(f"user row {cursor.lastrowid} vanished after insert")
        return user

    def touch(self, user_id: int) -> None:
        """Record activity now."""
        self._db.execute(
            "UPDATE users SET last_active = ? WHERE id = ?",
            (to_db(self._clock()), user_id),
        )

    def set_timezone(self, user_id: int, timezone: str) -> None:
        self._db.execute(
            "UPDATE users SET timezone = ? WHERE id = ?", (timezone, user_id)
        )

    def update_preferences(self, user_id: int, changes: dict[str, Any]) -> dict[str, Any]:
        """Merge *changes* into the stored preference blob and return the result."""
        user = self.get(user_id)
        prefs = dict(user.preferences) if user else {}
        prefs.update(changes)
        self._db.execute(
            "UPDATE users SET preferences = ? WHERE id = ?",
            (json.dumps(prefs), user_id),
        )
        return prefs

    def active_since(self, days: int) -> list[User]:
        """Return users whose last activity falls within the last *days* days."""
        cutoff = to_db(self._clock() - timedelta(days=days))
        rows = self._db.fetchall(
            "SELECT * FROM users WHERE last_active > ? ORDER BY id", (cutoff,)
        )
        return [User.from_row(r) for r in rows]

    def clear_user_data(self, user_id: int) -> None:
        """Delete every row owned by *user_id*; the user record itself is kept."""
        with self._db.transaction() as conn:
            for table in USER_TABLES:
                conn.execute(f"DELETE FROM {table} WHERE user_id = ?", (user_id,))
        logger.info("Cleared all data for user %d", user_id)

    def log_file(
        self,
        user_id: int,
        file_id: str,
        file_type: str,
        file_size: int | None,
        description: str,
    ) -> int:
        """Record a photo, document or voice message the user shared; returns the row id."""
        cursor = self._db.execute(
            """
            INSERT INTO files (user_id, file_id, file_type, file_size, description, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (user_id, file_id, file_type, file_size, description, to_db(self._clock())),
        )
        return cursor.lastrowid

    def files(self, user_id: int) -> list[dict[str, Any]]:
        rows = self._db.fetchall(
            """
            SELECT file_id, file_type, file_size, description, created_at
            FROM files WHERE user_id = ? ORDER BY id
            """,
            (user_id,),
        )
        return [dict(r) for r in rows]
