"""Habit detection and logging.

Habits are created lazily the first time they are detected.  The store keeps
at most one entry per habit per calendar day: ``habit_entries`` carries a
unique ``(habit_id, entry_date)`` key and entries are written with
``INSERT OR IGNORE``.
"""

import logging
import re
from datetime import date, timedelta

from models import HabitSummary
from storage import Database
from timeutil import Clock, to_db

logger = logging.getLogger(__name__)

HABIT_PATTERNS: dict[str, list[re.Pattern]] = {
    "exercise": [
        re.compile(r"\bwent\s+to\s+(the\s+)?gym\b", re.IGNORECASE),
        re.compile(r"\bworked\s+out\b|\bworkout\b", re.IGNORECASE),
        re.compile(r"\bexercised\b|\bfitness\b", re.IGNORECASE),
        re.compile(r"\b(ran|jogged)\b", re.IGNORECASE),
    ],
    "meditation": [re.compile(r"\b(meditated|meditation|mindfulness)\b", re.IGNORECASE)],
    "reading": [
        re.compile(r"\b(read|reading)\b", re.IGNORECASE),
        re.compile(r"\bfinished\b.*\bbook\b", re.IGNORECASE),
    ],
    "water": [
        re.compile(r"\bdrank\b.*\bwater\b", re.IGNORECASE),
        re.compile(r"\bhydrated\b|\bwater\s+bottles?\b", re.IGNORECASE),
    ],
    "sleep": [
        re.compile(r"\bslept\b|\bwent\s+to\s+bed\b", re.IGNORECASE),
        re.compile(r"\b\d+\s+hours\s+of\s+sleep\b", re.IGNORECASE),
    ],
    "coding": [re.compile(r"\b(coded|programming|github)\b", re.IGNORECASE)],
    "writing": [re.compile(r"\b(wrote|writing|journal(ed)?|blog(ged)?)\b", re.IGNORECASE)],
}


def detect_habits(text: str) -> list[str]:
    """Return every habit whose patterns match *text*, in table order."""
    return [
        name
        for name, patterns in HABIT_PATTERNS.items()
        if any(p.search(text) for p in patterns)
    ]


class HabitTracker:
    def __init__(self, db: Database, clock: Clock) -> None:
        self._db = db
        self._clock = clock

    def track_from_message(self, user_id: int, text: str) -> list[str]:
        """Log every habit detected in *text*; returns the detected names."""
        detected = detect_habits(text)
        for name in detected:
            self.record_habit(user_id, name)
        return detected

    def record_habit(self, user_id: int, name: str) -> bool:
        """Log *name* for today. Returns ``False`` if it was already logged today."""
        habit_id = self._get_or_create(user_id, name)
        now = self._clock()
        cursor = self._db.execute(
            """
            INSERT OR IGNORE INTO habit_entries
                (habit_id, user_id, count, entry_date, logged_at)
            VALUES (?, ?, 1, ?, ?)
            """,
            (habit_id, user_id, now.strftime("%Y-%m-%d"), to_db(now)),
        )
        created = cursor.rowcount == 1
        if created:
            logger.info("Logged habit %r for user %d", name, user_id)
        return created

    def record_entry(self, user_id: int, habit_id: int, count: int = 1) -> bool:
        """Set today's count for an existing habit; ``False`` if the habit is not the user's."""
        owner = self._db.fetchone(
            "SELECT id FROM habits WHERE id = ? AND user_id = ?", (habit_id, user_id)
        )
        if owner is None:
            return False
        now = self._clock()
        self._db.execute(
            """
            INSERT INTO habit_entries (habit_id, user_id, count, entry_date, logged_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (habit_id, entry_date) DO UPDATE SET count = excluded.count
            """,
            (habit_id, user_id, count, now.strftime("%Y-%m-%d"), to_db(now)),
        )
        return True

    def _get_or_create(self, user_id: int, name: str) -> int:
        self._db.execute(
            """
            INSERT OR IGNORE INTO habits (user_id, habit_name, frequency, created_at)
            VALUES (?, ?, 'daily', ?)
            """,
            (user_id, name, to_db(self._clock())),
        )
        row = self._db.fetchone(
            "SELECT id FROM habits WHERE user_id = ? AND habit_name = ?", (user_id, name)
        )
        return row["id"]

    def get_user_habits(self, user_id: int) -> list[HabitSummary]:
        rows = self._db.fetchall(
            """
            SELECT h.id, h.habit_name, h.frequency,
                   COUNT(e.id) AS total_entries,
                   MAX(e.logged_at) AS last_logged
            FROM habits h
            LEFT JOIN habit_entries e ON e.habit_id = h.id
            WHERE h.user_id = ?
            GROUP BY h.id, h.habit_name, h.frequency
            ORDER BY total_entries DESC, h.habit_name
            """,
            (user_id,),
        )
        return [
            HabitSummary(
                id=r["id"],
                name=r["habit_name"],
                frequency=r["frequency"],
                total_entries=r["total_entries"],
                last_logged=r["last_logged"],
                streak=self.streak(r["id"]),
            )
            for r in rows
        ]

    def streak(self, habit_id: int) -> int:
        """Consecutive days with an entry, ending today or yesterday."""
        rows = self._db.fetchall(
            "SELECT entry_date FROM habit_entries WHERE habit_id = ? ORDER BY entry_date DESC",
            (habit_id,),
        )
        days = {date.fromisoformat(r["entry_date"]) for r in rows}
        cursor = self._clock().date()
        if cursor not in days:
            cursor -= timedelta(days=1)
        count = 0
        while cursor in days:
            count += 1
            cursor -= timedelta(days=1)
        return count

    def entries_on(self, user_id: int, day: str) -> list[str]:
        """Names of habits logged by *user_id* on *day* (``YYYY-MM-DD``)."""
        rows = self._db.fetchall(
            """
            SELECT h.habit_name FROM habit_entries e JOIN habits h ON h.id = e.habit_id
            WHERE e.user_id = ? AND e.entry_date = ?
            ORDER BY h.habit_name
            """,
            (user_id, day),
        )
        return [r["habit_name"] for r in rows]

    def top_since(self, user_id: int, since: str, limit: int = 5) -> list[tuple[str, int]]:
        """Most-logged habits with entries on or after *since*."""
        rows = self._db.fetchall(
            """
            SELECT h.habit_name, COUNT(e.id) AS n
            FROM habit_entries e JOIN habits h ON h.id = e.habit_id
            WHERE e.user_id = ? AND e.entry_date >= ?
            GROUP BY h.id
            ORDER BY n DESC, h.habit_name
            LIMIT ?
            """,
            (user_id, since, limit),
        )
        return [(r["habit_name"], r["n"]) for r in rows]

    def reset_habits(self, user_id: int) -> int:
        """Delete all habits (and, by cascade, entries) for *user_id*."""
        with self._db.transaction() as conn:
            conn.execute("DELETE FROM habit_entries WHERE user_id = ?", (user_id,))
            cursor = conn.execute("DELETE FROM habits WHERE user_id = ?", (user_id,))
        logger.info("Reset %d habits for user %d", cursor.rowcount, user_id)
        return cursor.rowcount
