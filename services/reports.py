"""Daily, weekly and habit summaries rendered as Telegram Markdown."""

import logging
import random
from datetime import timedelta
from enum import Enum

from formatting import escape, format_datetime, progress_bar, streak_badge
from services.habits import HabitTracker
from services.health import HealthTracker
from services.reminders import ReminderService
from services.tasks import TaskService
from storage import Database
from timeutil import Clock

logger = logging.getLogger(__name__)

MOTIVATION = (
    "Great job staying productive! 🌟",
    "Keep up the excellent work! 💪",
    "You're making progress every day! 🚀",
    "Proud of your consistency! 🏆",
    "Another day of growth! 🌱",
)

_MEDALS = ("🥇", "🥈", "🥉", "🏅", "⭐")


class ReportType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    HABITS = "habits"


class ReportGenerator:
    def __init__(
        self,
        db: Database,
        habits: HabitTracker,
        tasks: TaskService,
        reminders: ReminderService,
        health: HealthTracker,
        clock: Clock,
        rng: random.Random | None = None,
    ) -> None:
        self._db = db
        self._habits = habits
        self._tasks = tasks
        self._reminders = reminders
        self._health = health
        self._clock = clock
        self._rng = rng or random.Random()

    def generate(self, user_id: int, kind: ReportType | str) -> str:
        """Render the report named by *kind*; raises ``ValueError`` for unknown kinds."""
        kind = ReportType(kind)
        if kind is ReportType.DAILY:
            return self.daily(user_id)
        if kind is ReportType.WEEKLY:
            return self.weekly(user_id)
        return self.habits(user_id)

    def daily(self, user_id: int) -> str:
        now = self._clock()
        today = now.strftime("%Y-%m-%d")
        messages = self._db.fetchone(
            "SELECT COUNT(*) FROM conversations WHERE user_id = ? AND date(timestamp) = ?",
            (user_id, today),
        )[0]
        habits = self._habits.entries_on(user_id, today)
        created, completed = self._tasks.counts_on(user_id, today)
        reminders = self._reminders.count_pending_today(user_id)
        health = self._health.daily_summary(user_id, today)

        lines = [f"📊 *Daily Report - {now.strftime('%b %d, %Y')}*", ""]
        lines.append(f"💬 *Activity*: {messages} messages exchanged")
        if habits:
            lines.append("")
            lines.append("💪 *Habits Completed Today*:")
            lines.extend(f"• {name}" for name in habits)
        else:
            lines.append("")
            lines.append("💪 *Habits*: No habits tracked today")
        if created or completed:
            lines.append("")
            lines.append(f"✅ *Tasks*: {created} created, {completed} completed")
        if reminders:
            lines.append("")
            lines.append(f"⏰ *Reminders*: {reminders} pending today")

        health_lines = []
        for meal in health["meals"]:
            health_lines.append(f"• {meal['meal_type']}: {escape(meal['description'] or '')}")
        if health["mood"]:
            latest = health["mood"][0]
            health_lines.append(f"• Mood: {latest['mood_type']} ({latest['mood_level']}/10)")
        for activity in health["activities"]:
            health_lines.append(f"• {_describe_activity(activity['log_type'], activity['value'])}")
        if health_lines:
            lines.append("")
            lines.append("💚 *Health*:")
            lines.extend(health_lines)

        lines.append("")
        lines.append(self._rng.choice(MOTIVATION))
        return "\n".join(lines)

    def weekly(self, user_id: int) -> str:
        since = (self._clock() - timedelta(days=6)).strftime("%Y-%m-%d")
        top = self._habits.top_since(user_id, since, limit=5)
        total, done = self._tasks.completion_since(user_id, since)

        lines = ["📈 *Weekly Report*", ""]
        if top:
            lines.append("🏆 *Top Habits This Week*:")
            for medal, (name, count) in zip(_MEDALS, top):
                lines.append(f"{medal} {name}: {count} times")
        else:
            lines.append("No habits tracked this week yet.")
        if total:
            lines.append("")
            lines.append(f"✅ *Task Completion*: {progress_bar(done, total)} ({done}/{total})")

        lines.append("")
        lines.append("🔍 *Insights*:")
        if top:
            lines.append(f"• Your strongest habit: {top[0][0]} 💪")
        if done:
            lines.append(f"• You completed {done} tasks this week! 🎯")
        if not top and not done:
            lines.append("• A fresh week is a fresh start.")
        lines.append("")
        lines.append("🌟 Keep building those positive habits!")
        return "\n".join(lines)

    def habits(self, user_id: int) -> str:
        summaries = self._habits.get_user_habits(user_id)
        if not summaries:
            return (
                "🌱 You haven't tracked any habits yet.\n\n"
                "Just tell me things like \"went to the gym\" or \"read for 30 minutes\"."
            )
        lines = ["💪 *Your Habits*", ""]
        for habit in summaries:
            last = format_datetime(habit.last_logged) if habit.last_logged else "never"
            lines.append(f"*{habit.name}*: {habit.total_entries} entries, last {last}")
            if habit.streak:
                lines.append(f"  {streak_badge(habit.name, habit.streak)}")
        return "\n".join(lines)


def _describe_activity(log_type: str, value: dict) -> str:
    if log_type == "fitness":
        return f"Activity: {value.get('activity', 'exercise')}"
    if log_type == "water":
        return f"Water: {value.get('amount')} {value.get('unit')}"
    if log_type == "sleep":
        hours = value.get("hours")
        quality = value.get("quality", "unknown")
        return f"Sleep: {hours}h ({quality})" if hours is not None else f"Sleep: {quality}"
    return log_type
