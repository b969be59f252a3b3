"""Work triggered by the external scheduler through ``POST /cron``."""

import logging
from dataclasses import asdict
from typing import Any, Iterable

from callbacks import reminder_keyboard
from formatting import escape, format_datetime
from messenger import Messenger
from models import Reminder
from services.prompts import PromptTask, ScheduledPrompts
from services.reminders import ReminderService

logger = logging.getLogger(__name__)


def reminder_message(reminder: Reminder) -> str:
    lines = [
        "⏰ *Reminder!*",
        "",
        f"📝 {escape(reminder.description)}",
        f"🕐 {format_datetime(reminder.remind_at)}",
    ]
    if reminder.notes:
        lines.append(f"📋 {escape(reminder.notes)}")
    return "\n".join(lines)


async def run_cron(
    reminders: ReminderService,
    prompts: ScheduledPrompts,
    messenger: Messenger,
    tasks: Iterable[str] = (),
) -> dict[str, Any]:
    """Run the reminder sweep, then each named prompt task.

    The sweep's own failures (e.g. the store being unreachable) propagate.
    A prompt task that fails or is unknown is recorded in the summary and the
    remaining tasks still run.
    """

    async def notify(chat_id: str, reminder: Reminder) -> None:
        await messenger.send(chat_id, reminder_message(reminder), reminder_keyboard(reminder.id))

    delivery = await reminders.deliver_due(notify)
    summary: dict[str, Any] = {"reminders": asdict(delivery), "tasks": {}}

    for name in tasks:
        try:
            task = PromptTask(name)
        except ValueError:
            logger.warning("Unknown scheduled task: %s", name)
            summary["tasks"][name] = {"error": "unknown task"}
            continue
        try:
            summary["tasks"][name] = asdict(await prompts.run(task))
        except Exception as exc:
            logger.exception("Scheduled task %s failed", name)
            summary["tasks"][name] = {"error": str(exc)}
    return summary
