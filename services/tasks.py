"""Tasks parsed from phrases like "I need to ..." or "todo: ..."."""

import logging
import re
from dataclasses import dataclass

from models import Task
from storage import Database
from timeutil import Clock, to_db

logger = logging.getLogger(__name__)

TITLE_LIMIT = 50

_HAS_TASK = re.compile(
    r"\btask\b|\badd\b.*\bto\b|\bneed\s+to\b|\bhave\s+to\b|\bshould\b|\bmust\b|\btodo\b",
    re.IGNORECASE,
)
_CONTENT_PATTERNS = (
    re.compile(r"(?:add|create)\s+(?:a\s+)?task(?:\s+to|:?)\s*(.+?)(?:\n|$)", re.IGNORECASE),
    re.compile(r"(?:need|have|want)\s+to\s+(.+?)(?:\n|$)", re.IGNORECASE),
    re.compile(r"(?:should|must)\s+(.+?)(?:\n|$)", re.IGNORECASE),
    re.compile(r"task:\s*(.+?)(?:\n|$)", re.IGNORECASE),
    re.compile(r"todo:?\s*(.+?)(?:\n|$)", re.IGNORECASE),
)
_KEYWORDS = re.compile(r"(?:add|create|need|have|want|should|must)\s+(?:a\s+)?(?:task|todo|:)?\s*", re.IGNORECASE)


@dataclass(frozen=True)
class ParsedTask:
    title: str
    description: str


def parse_task(text: str) -> ParsedTask | None:
    """Pull a task out of *text*; ``None`` when it does not read like one."""
    if not _HAS_TASK.search(text):
        return None
    content = None
    for pattern in _CONTENT_PATTERNS:
        match = pattern.search(text)
        if match:
            content = match.group(1).strip()
            break
    if not content:
        content = _KEYWORDS.sub("", text, count=1).strip()
    if len(content) < 2:
        return None
    title = re.split(r"[.!?]", content)[0].strip() or content
    if len(title) > TITLE_LIMIT:
        title = title[:TITLE_LIMIT] + "..."
    return ParsedTask(title=title, description=content)


class TaskService:
    def __init__(self, db: Database, clock: Clock) -> None:
        self._db = db
        self._clock = clock

    def create_from_message(self, user_id: int, text: str) -> Task | None:
        parsed = parse_task(text)
        if parsed is None:
            return None
        cursor = self._db.execute(
            """
            INSERT INTO tasks (user_id, title, description, status, priority, created_at)
            VALUES (?, ?, ?, 'pending', 'medium', ?)
            """,
            (user_id, parsed.title, parsed.description, to_db(self._clock())),
        )
        logger.info("Created task %d for user %d", cursor.lastrowid, user_id)
        row = self._db.fetchone("SELECT * FROM tasks WHERE id = ?", (cursor.lastrowid,))
        return Task.from_row(row)

    def list_pending(self, user_id: int, limit: int = 10) -> list[Task]:
        rows = self._db.fetchall(
            """
            SELECT * FROM tasks WHERE user_id = ? AND status = 'pending'
            ORDER BY created_at DESC, id DESC LIMIT ?
            """,
            (user_id, limit),
        )
        return [Task.from_row(r) for r in rows]

    def complete_task(self, user_id: int, task_id: int) -> bool:
        cursor = self._db.execute(
            """
            UPDATE tasks SET status = 'completed', completed_at = ?
            WHERE id = ? AND user_id = ? AND status = 'pending'
            """,
            (to_db(self._clock()), task_id, user_id),
        )
        return cursor.rowcount == 1

    def counts_on(self, user_id: int, day: str) -> tuple[int, int]:
        """Tasks created and tasks completed on *day*."""
        created = self._db.fetchone(
            "SELECT COUNT(*) FROM tasks WHERE user_id = ? AND date(created_at) = ?", (user_id, day)
        )[0]
        completed = self._db.fetchone(
            "SELECT COUNT(*) FROM tasks WHERE user_id = ? AND date(completed_at) = ?", (user_id, day)
        )[0]
        return created, completed

    def completion_since(self, user_id: int, since: str) -> tuple[int, int]:
        """Tasks created on or after *since*, and how many of those are completed."""
        row = self._db.fetchone(
            """
            SELECT COUNT(*) AS total,
                   COALESCE(SUM(status = 'completed'), 0) AS done
            FROM tasks WHERE user_id = ? AND date(created_at) >= ?
            """,
            (user_id, since),
        )
        return row["total"], row["done"]
