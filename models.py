"""Record types shared by the storage layer, services and handlers."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Intent(str, Enum):
    """Classified purpose of a user message."""

    REMINDER = "reminder"
    HABIT_REPORT = "habit_report"
    QUESTION = "question"
    TASK = "task"
    GREETING = "greeting"
    REPORT_REQUEST = "report_request"
    GENERAL_CHAT = "general_chat"


class Action(str, Enum):
    """Side-effecting operation implied by an intent."""

    CREATE_REMINDER = "create_reminder"
    UPDATE_REMINDER = "update_reminder"
    TRACK_HABIT = "track_habit"
    CREATE_TASK = "create_task"
    NONE = "none"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class ReminderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReminderFilter(str, Enum):
    """Listing filters accepted by ``/reminders``."""

    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    TODAY = "today"
    ALL = "all"


@dataclass(frozen=True)
class Entities:
    times: list[str] = field(default_factory=list)
    dates: list[str] = field(default_factory=list)
    habits: list[str] = field(default_factory=list)
    tasks: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Analysis:
    """Result of classifying one message.

    ``source`` is ``"ai"`` when the LLM produced a valid classification and
    ``"heuristic"`` when the local keyword classifier was used instead.
    """

    intent: Intent
    entities: Entities
    sentiment: Sentiment
    action: Action
    source: str = "ai"


@dataclass(frozen=True)
class Turn:
    """One stored exchange: a user message and the generated reply."""

    user: str
    assistant: str
    timestamp: str


@dataclass(frozen=True)
class User:
    id: int
    telegram_id: str
    username: str
    first_name: str
    preferences: dict[str, Any]
    timezone: str
    created_at: str
    last_active: str

    @classmethod
    def from_row(cls, row) -> "User":
        try:
            prefs = json.loads(row["preferences"] or "{}")
        except ValueError:
            prefs = {}
        return cls(
            id=row["id"],
            telegram_id=row["telegram_id"],
            username=row["username"] or "",
            first_name=row["first_name"] or "",
            preferences=prefs if isinstance(prefs, dict) else {},
            timezone=row["timezone"] or "UTC",
            created_at=row["created_at"],
            last_active=row["last_active"],
        )


@dataclass(frozen=True)
class Reminder:
    id: int
    user_id: int
    description: str
    remind_at: str
    status: ReminderStatus
    notes: str | None
    created_at: str
    updated_at: str
    completed_at: str | None = None
    cancelled_at: str | None = None

    @classmethod
    def from_row(cls, row) -> "Reminder":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            description=row["description"],
            remind_at=row["remind_at"],
            status=ReminderStatus(row["status"]),
            notes=row["notes"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            completed_at=row["completed_at"],
            cancelled_at=row["cancelled_at"],
        )


@dataclass(frozen=True)
class HabitSummary:
    id: int
    name: str
    frequency: str
    total_entries: int
    last_logged: str | None
    streak: int = 0


@dataclass(frozen=True)
class Task:
    id: int
    user_id: int
    title: str
    description: str
    status: str
    priority: str
    created_at: str
    completed_at: str | None = None

    @classmethod
    def from_row(cls, row) -> "Task":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"] or "",
            status=row["status"],
            priority=row["priority"],
            created_at=row["created_at"],
            completed_at=row["completed_at"],
        )
