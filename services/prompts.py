"""Proactive greetings and evening reflections pushed from the cron endpoint.

Each task targets recently active users and only messages those whose local
hour falls inside the task's window.  Users who switched report
notifications off are skipped.  Recipients are messaged concurrently and one
failure does not affect the others.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from formatting import escape
from messenger import Messenger
from models import User
from timeutil import Clock
from users import UserStore

logger = logging.getLogger(__name__)


class PromptTask(str, Enum):
    MORNING_GREETING = "morning_greeting"
    AFTERNOON_GREETING = "afternoon_greeting"
    EVENING_GREETING = "evening_greeting"
    EVENING_REFLECTION = "evening_reflection"


# task → (active within days, first local hour, end local hour exclusive)
_WINDOWS = {
    PromptTask.MORNING_GREETING: (7, 6, 12),
    PromptTask.AFTERNOON_GREETING: (7, 12, 18),
    PromptTask.EVENING_GREETING: (7, 18, 22),
    PromptTask.EVENING_REFLECTION: (30, 20, 24),
}

_GREETINGS = {
    PromptTask.MORNING_GREETING: (
        "🌅 Good morning, {name}! Rise and shine! How are you starting your day today?",
        "☀️ Morning, {name}! Ready to conquer the day? What's your plan for today?",
        "🌞 Top of the morning to you, {name}! How did you sleep?",
    ),
    PromptTask.AFTERNOON_GREETING: (
        "🌤️ Good afternoon, {name}! Hope your day is going well. How's your energy level?",
        "☀️ Afternoon, {name}! How has your day been so far?",
        "🌅 Hi {name}! How's everything going this afternoon?",
    ),
    PromptTask.EVENING_GREETING: (
        "🌙 Good evening, {name}! How was your day? Ready to wind down?",
        "🌆 Evening greetings, {name}! What was the highlight of your day?",
        "🌠 Hi {name}! How are you feeling as the day comes to a close?",
    ),
}

REFLECTION = """🌙 Good evening, {name}! Time for your daily reflection.

As the day winds down, let's take a moment to look back on today.

*Daily Reflection:*
• How was your mood today? 😊
• What did you accomplish? ✅
• How did you take care of your health? 💚
• What's something you're grateful for? 🙏
• What would you like to focus on tomorrow? 🎯

Reply with your thoughts, or use /report for a summary of your day.
Get some good sleep tonight! 🌟"""


@dataclass
class PromptReport:
    task: str
    candidates: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


def wants_reports(user: User) -> bool:
    notifications = user.preferences.get("notifications")
    if isinstance(notifications, dict):
        return notifications.get("reports", True) is not False
    return True


def local_time(now: datetime, timezone: str) -> datetime:
    try:
        return now.astimezone(ZoneInfo(timezone))
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown user timezone %r; using UTC", timezone)
        return now.astimezone(ZoneInfo("UTC"))


class ScheduledPrompts:
    def __init__(
        self,
        users: UserStore,
        messenger: Messenger,
        clock: Clock,
        rng: random.Random | None = None,
    ) -> None:
        self._users = users
        self._messenger = messenger
        self._clock = clock
        self._rng = rng or random.Random()

    async def run(self, task: PromptTask | str) -> PromptReport:
        """Send *task* to every eligible user.

        Raises:
            ValueError: If *task* is not a :class:`PromptTask` name.
        """
        task = PromptTask(task)
        days, start, end = _WINDOWS[task]
        now = self._clock()
        report = PromptReport(task=task.value)

        recipients = []
        for user in self._users.active_since(days):
            report.candidates += 1
            hour = local_time(now, user.timezone).hour
            if not wants_reports(user) or not start <= hour < end:
                report.skipped += 1
                continue
            recipients.append(user)

        results = await asyncio.gather(
            *(self._messenger.send(u.telegram_id, self.render(task, u)) for u in recipients),
            return_exceptions=True,
        )
        for user, result in zip(recipients, results):
            if isinstance(result, Exception):
                logger.error("Failed to send %s to user %d: %s", task.value, user.id, result)
                report.failed += 1
                report.errors.append(f"user {user.id}: {result}")
            else:
                report.sent += 1
        logger.info(
            "%s: %d candidates, %d sent, %d skipped, %d failed",
            task.value, report.candidates, report.sent, report.skipped, report.failed,
        )
        return report

    def render(self, task: PromptTask, user: User) -> str:
        name = escape(user.first_name or "there")
        if task is PromptTask.EVENING_REFLECTION:
            return REFLECTION.format(name=name)
        return self._rng.choice(_GREETINGS[task]).format(name=name)
