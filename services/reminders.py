"""Reminder lifecycle: extraction, creation, modification, listing and delivery.

A reminder starts ``pending`` and ends ``completed`` or ``cancelled``.
Reschedule, rename and note edits keep it pending.  Extraction goes through
the AI adapter and is gated on a confidence score; anything below the
threshold, or missing a required field, means "no reminder" rather than an
error.  The delivery sweep is at-least-once: a reminder is marked completed
only after its message was sent.
"""

import logging
import math
import sqlite3
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Awaitable, Callable
from zoneinfo import ZoneInfo

from ai_adapter import AIAdapter
from models import Reminder, ReminderFilter, ReminderStatus
from storage import Database
from timeutil import Clock, normalize_datetime, to_db

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 60


class ModifyAction(str, Enum):
    RESCHEDULE = "reschedule"
    RENAME = "rename"
    ADD_NOTES = "add_notes"
    COMPLETE = "complete"
    CANCEL = "cancel"


_PAST_TENSE = {
    ModifyAction.RESCHEDULE: "rescheduled",
    ModifyAction.RENAME: "renamed",
    ModifyAction.ADD_NOTES: "updated",
    ModifyAction.COMPLETE: "completed",
    ModifyAction.CANCEL: "cancelled",
}


@dataclass(frozen=True)
class CreateRequest:
    description: str
    remind_at: str
    notes: str | None = None


@dataclass(frozen=True)
class ModifyRequest:
    title: str
    action: str
    new_value: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ModifyResult:
    success: bool
    message: str
    reminder: Reminder | None = None


@dataclass
class DeliveryReport:
    """Outcome of one sweep."""

    due: int = 0
    sent: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    # Sent, but the status update did not stick; may be re-sent next sweep.
    unmarked: list[int] = field(default_factory=list)


Notify = Callable[[str, Reminder], Awaitable[None]]


class ReminderService:
    """Reminder operations for one database and one reference time zone."""

    def __init__(
        self,
        db: Database,
        adapter: AIAdapter,
        clock: Clock,
        tz: ZoneInfo,
        confidence_threshold: int = DEFAULT_CONFIDENCE_THRESHOLD,
    ) -> None:
        self._db = db
        self._adapter = adapter
        self._clock = clock
        self._tz = tz
        self._threshold = confidence_threshold

    # ── extraction ───────────────────────────────────────────────────────────

    async def parse_request(self, text: str) -> CreateRequest | ModifyRequest | None:
        """Extract a create or modify request from *text*, or ``None``."""
        data = await self._adapter.generate_json(self._extraction_prompt(), text)
        if data is None:
            return None

        intent = data.get("intent")
        try:
            confidence = float(data.get("confidence", 0))
        except (TypeError, ValueError):
            logger.warning("Non-numeric confidence in reminder extraction: %r", data.get("confidence"))
            return None
        if not math.isfinite(confidence):
            logger.warning("Non-finite confidence in reminder extraction: %r", data.get("confidence"))
            return None
        if confidence < self._threshold:
            logger.info("Reminder extraction below threshold (%s < %d)", confidence, self._threshold)
            return None

        if intent == "create_reminder":
            description = _clean(data.get("description"))
            remind_at = normalize_datetime(data.get("remindAt"), self._tz)
            if not description or not remind_at:
                logger.warning("Missing required fields for create_reminder: %s", data)
                return None
            return CreateRequest(description, remind_at, _clean(data.get("notes")))

        if intent == "modify_reminder":
            title = _clean(data.get("reminderTitle"))
            action = _clean(data.get("action"))
            if not title or not action:
                logger.warning("Missing required fields for modify_reminder: %s", data)
                return None
            return ModifyRequest(
                title=title,
                action=action,
                new_value=_clean(data.get("newValue")),
                notes=_clean(data.get("notes")),
            )
        return None

    def _extraction_prompt(self) -> str:
        now = self._clock()
        return f"""You are a JSON-only API. Analyze the user's message and return ONLY a valid JSON object.
No explanations and no text before or after the JSON.
Use the current date and time below to resolve the reminder time in the user's message.

Current context:
- Date: {now.strftime("%B %d, %Y")}
- Day: {now.strftime("%A")}
- Time: {now.strftime("%H:%M:%S")}
- Timezone: {self._tz.key}

Response shape:
{{
  "intent": "create_reminder|modify_reminder|not_reminder",
  "confidence": 0-100,
  "description": "full reminder description (create_reminder only)",
  "remindAt": "local date-time YYYY-MM-DD HH:MM:SS (create_reminder only)",
  "notes": "additional context, optional",
  "reminderTitle": "name of the reminder to change (modify_reminder only)",
  "action": "reschedule|rename|add_notes|complete|cancel (modify_reminder only)",
  "newValue": "new time or new name (modify_reminder only)"
}}

Examples:
{{"intent": "create_reminder", "confidence": 85, "description": "Call mom", "remindAt": "2025-10-06 15:00:00", "notes": null}}
{{"intent": "modify_reminder", "confidence": 90, "reminderTitle": "Call mom", "action": "reschedule", "newValue": "2025-10-07 15:00:00"}}
{{"intent": "not_reminder", "confidence": 0}}"""

    # ── create / modify ──────────────────────────────────────────────────────

    async def create_reminder(self, user_id: int, text: str) -> Reminder | None:
        """Create a pending reminder from *text*; ``None`` when nothing was extracted."""
        request = await self.parse_request(text)
        if not isinstance(request, CreateRequest):
            return None
        return self.insert(user_id, request)

    def insert(self, user_id: int, request: CreateRequest) -> Reminder:
        now = to_db(self._clock())
        cursor = self._db.execute(
            """
            INSERT INTO reminders
                (user_id, description, remind_at, status, notes, created_at, updated_at)
            VALUES (?, ?, ?, 'pending', ?, ?, ?)
            """,
            (user_id, request.description, request.remind_at, request.notes, now, now),
        )
        logger.info("Created reminder %d for user %d at %s", cursor.lastrowid, user_id, request.remind_at)
        reminder = self.get(user_id, cursor.lastrowid)
        if reminder is None:
            raise sqlite3.DatabaseError(f"reminder row {cursor.lastrowid} vanished after insert")
        return reminder

    async def modify_reminder(self, user_id: int, text: str) -> ModifyResult:
        request = await self.parse_request(text)
        if not isinstance(request, ModifyRequest):
            return ModifyResult(False, "I couldn't tell which reminder to change or how.")
        return self.apply_modification(user_id, request)

    async def handle_request(self, user_id: int, text: str) -> Reminder | ModifyResult | None:
        """Parse *text* once and create or modify accordingly."""
        request = await self.parse_request(text)
        if isinstance(request, CreateRequest):
            return self.insert(user_id, request)
        if isinstance(request, ModifyRequest):
            return self.apply_modification(user_id, request)
        return None

    def apply_modification(self, user_id: int, request: ModifyRequest) -> ModifyResult:
        try:
            action = ModifyAction(request.action)
        except ValueError:
            return ModifyResult(False, f"Unknown action: {request.action}")

        target = self.find_by_title(user_id, request.title)
        if target is None:
            return ModifyResult(
                False, f'No reminder found with description containing "{request.title}"'
            )

        now = to_db(self._clock())
        changes: dict[str, object] = {"updated_at": now}
        if action is ModifyAction.RESCHEDULE:
            remind_at = normalize_datetime(request.new_value, self._tz)
            if remind_at is None:
                return ModifyResult(False, "I couldn't understand the new time.", target)
            changes.update(remind_at=remind_at, status=ReminderStatus.PENDING.value,
                           completed_at=None, cancelled_at=None)
        elif action is ModifyAction.RENAME:
            if not request.new_value:
                return ModifyResult(False, "What should the reminder be called?", target)
            changes["description"] = request.new_value
        elif action is ModifyAction.ADD_NOTES:
            notes = request.notes or request.new_value
            if not notes:
                return ModifyResult(False, "There were no notes to add.", target)
            changes["notes"] = notes
        elif action is ModifyAction.COMPLETE:
            changes.update(status=ReminderStatus.COMPLETED.value, completed_at=now)
        elif action is ModifyAction.CANCEL:
            changes.update(status=ReminderStatus.CANCELLED.value, cancelled_at=now)

        self._update(target.id, changes)
        logger.info("Reminder %d %s", target.id, _PAST_TENSE[action])
        return ModifyResult(
            True,
            f'Reminder "{target.description}" has been {_PAST_TENSE[action]}.',
            self.get(user_id, target.id),
        )

    def find_by_title(self, user_id: int, title: str) -> Reminder | None:
        """Substring match on the description; pending rows first, then newest."""
        row = self._db.fetchone(
            """
            SELECT * FROM reminders
            WHERE user_id = ? AND instr(lower(description), lower(?)) > 0
            ORDER BY status = 'pending' DESC, created_at DESC, id DESC
            LIMIT 1
            """,
            (user_id, title),
        )
        return Reminder.from_row(row) if row else None

    def _update(self, reminder_id: int, changes: dict[str, object]) -> None:
        columns = ", ".join(f"{name} = ?" for name in changes)
        self._db.execute(
            f"UPDATE reminders SET {columns} WHERE id = ?",
            (*changes.values(), reminder_id),
        )

    # ── queries ──────────────────────────────────────────────────────────────

    def get(self, user_id: int, reminder_id: int) -> Reminder | None:
        row = self._db.fetchone(
            "SELECT * FROM reminders WHERE id = ? AND user_id = ?", (reminder_id, user_id)
        )
        return Reminder.from_row(row) if row else None

    def list_reminders(
        self, user_id: int, filter: ReminderFilter | str = ReminderFilter.PENDING
    ) -> list[Reminder]:
        """List reminders by fire time.

        Raises:
            ValueError: If *filter* is not a known :class:`ReminderFilter`.
        """
        kind = ReminderFilter(filter)
        where = "user_id = ?"
        params: list[object] = [user_id]
        if kind is ReminderFilter.TODAY:
            where += " AND status = 'pending' AND date(remind_at) = ?"
            params.append(self._clock().strftime("%Y-%m-%d"))
        elif kind is not ReminderFilter.ALL:
            where += " AND status = ?"
            params.append(kind.value)
        rows = self._db.fetchall(
            f"SELECT * FROM reminders WHERE {where} ORDER BY remind_at ASC, id ASC", params
        )
        return [Reminder.from_row(r) for r in rows]

    def count_pending_today(self, user_id: int) -> int:
        return len(self.list_reminders(user_id, ReminderFilter.TODAY))

    # ── inline button actions ────────────────────────────────────────────────

    def snooze(self, user_id: int, reminder_id: int, minutes: int) -> Reminder | None:
        """Re-arm a reminder *minutes* from now; cancelled reminders stay cancelled."""
        reminder = self.get(user_id, reminder_id)
        if reminder is None or reminder.status is ReminderStatus.CANCELLED:
            return None
        now = self._clock()
        self._update(reminder_id, {
            "remind_at": to_db(now + timedelta(minutes=minutes)),
            "status": ReminderStatus.PENDING.value,
            "completed_at": None,
            "updated_at": to_db(now),
        })
        return self.get(user_id, reminder_id)

    def complete(self, user_id: int, reminder_id: int) -> Reminder | None:
        reminder = self.get(user_id, reminder_id)
        if reminder is None or reminder.status is ReminderStatus.CANCELLED:
            return None
        if reminder.status is ReminderStatus.PENDING:
            now = to_db(self._clock())
            self._update(reminder_id, {
                "status": ReminderStatus.COMPLETED.value,
                "completed_at": now,
                "updated_at": now,
            })
        return self.get(user_id, reminder_id)

    # ── delivery sweep ───────────────────────────────────────────────────────

    def due(self) -> list[tuple[str, Reminder]]:
        """Return ``(telegram_id, reminder)`` pairs for every pending reminder due now."""
        rows = self._db.fetchall(
            """
            SELECT r.*, u.telegram_id AS chat_id
            FROM reminders r JOIN users u ON u.id = r.user_id
            WHERE r.status = 'pending' AND r.remind_at <= ?
            ORDER BY r.remind_at ASC, r.id ASC
            """,
            (to_db(self._clock()),),
        )
        return [(r["chat_id"], Reminder.from_row(r)) for r in rows]

    async def deliver_due(self, notify: Notify) -> DeliveryReport:
        """Send every due reminder, then mark it completed.

        A failed send leaves the reminder pending for the next sweep.  A failed
        status update after a successful send is logged and reported in
        ``unmarked``.  Per-reminder failures never propagate.
        """
        report = DeliveryReport()
        due = self.due()
        report.due = len(due)
        for chat_id, reminder in due:
            try:
                await notify(chat_id, reminder)
            except Exception:
                logger.exception("Failed to deliver reminder %d", reminder.id)
                report.failed.append(reminder.id)
                continue
            report.sent.append(reminder.id)
            try:
                now = to_db(self._clock())
                self._db.execute(
                    """
                    UPDATE reminders SET status = 'completed', completed_at = ?, updated_at = ?
                    WHERE id = ? AND status = 'pending'
                    """,
                    (now, now, reminder.id),
                )
            except sqlite3.Error:
                logger.exception("Reminder %d was sent but could not be marked completed", reminder.id)
                report.unmarked.append(reminder.id)
        if report.due:
            logger.info(
                "Reminder sweep: %d due, %d sent, %d failed, %d unmarked",
                report.due, len(report.sent), len(report.failed), len(report.unmarked),
            )
        return report


def _clean(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
