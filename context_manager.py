"""Per-user conversation history used as LLM context.

Each stored turn pairs a user message with the generated reply.  After every
insert the history is pruned so at most *retention* turns survive per user;
:meth:`ContextManager.get_context` returns the most recent *max_turns* of
them, oldest first, together with the user's preference blob.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from models import Turn
from storage import Database
from timeutil import Clock, to_db

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Context:
    recent_turns: list[Turn] = field(default_factory=list)
    preferences: dict[str, Any] = field(default_factory=dict)


class ContextManager:
    """Reads and writes conversation turns for a user."""

    def __init__(
        self,
        db: Database,
        clock: Clock,
        max_turns: int = 20,
        retention: int = 50,
    ) -> None:
        self._db = db
        self._clock = clock
        self._max_turns = max_turns
        self._retention = retention

    @property
    def retention(self) -> int:
        return self._retention

    def get_context(self, user_id: int, preferences: dict[str, Any] | None = None) -> Context:
        """Return the most recent turns for *user_id*, oldest first."""
        return Context(
            recent_turns=self.recent_turns(user_id, self._max_turns),
            preferences=dict(preferences or {}),
        )

    def recent_turns(self, user_id: int, limit: int) -> list[Turn]:
        rows = self._db.fetchall(
            """
            SELECT message, response, timestamp
            FROM conversations
            WHERE user_id = ?
            ORDER BY id DESC
            LIMIT ?
            """,
            (user_id, limit),
        )
        return [
            Turn(user=r["message"], assistant=r["response"], timestamp=r["timestamp"])
            for r in reversed(rows)
        ]

    def save_conversation(self, user_id: int, message: str, response: str) -> None:
        """Append a turn, then drop everything beyond the newest *retention* turns."""
        with self._db.transaction() as conn:
            conn.execute(
                "INSERT INTO conversations (user_id, message, response, timestamp)"
                " VALUES (?, ?, ?, ?)",
                (user_id, message, response, to_db(self._clock())),
            )
            conn.execute(
                """
                DELETE FROM conversations
                WHERE user_id = ? AND id NOT IN (
                    SELECT id FROM conversations
                    WHERE user_id = ?
                    ORDER BY id DESC
                    LIMIT ?
                )
                """,
                (user_id, user_id, self._retention),
            )

    def count(self, user_id: int) -> int:
        """Return the number of stored turns for *user_id*."""
        row = self._db.fetchone(
            "SELECT COUNT(*) FROM conversations WHERE user_id = ?", (user_id,)
        )
        return row[0]

    def clear(self, user_id: int) -> None:
        self._db.execute("DELETE FROM conversations WHERE user_id = ?", (user_id,))


def recent_summary(turns: list[Turn], n: int = 3, max_chars: int = 160) -> str:
    """Condense the last *n* turns into a short transcript for classification prompts."""
    lines = []
    for turn in turns[-n:]:
        lines.append(f"USER: {_clip(turn.user, max_chars)}")
        lines.append(f"ASSISTANT: {_clip(turn.assistant, max_chars)}")
    return "\n".join(lines)


def _clip(text: str, limit: int) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 1] + "…"
