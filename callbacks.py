"""Inline-keyboard callback handling.

Callback data is a colon-delimited string ``action:param1:param2``.  The
action and, for the settings menu, the option are closed enums; both
dispatch tables are checked for totality when this module is imported.
"""

import logging
from enum import Enum
from typing import Awaitable, Callable

from telegram import CallbackQuery, InlineKeyboardMarkup, Update
from telegram.constants import ParseMode
from telegram.ext import ContextTypes

from formatting import escape
from messenger import keyboard
from models import User
from services.habits import HABIT_PATTERNS, HabitTracker
from services.reminders import ReminderService
from services.reports import ReportGenerator, ReportType
from users import UserStore

logger = logging.getLogger(__name__)


class CallbackAction(str, Enum):
    HABIT_CONFIRM = "habit_confirm"
    HABIT_TRACK = "habit_track"
    REMINDER_SNOOZE = "reminder_snooze"
    REMINDER_COMPLETE = "reminder_complete"
    REPORT_TYPE = "report_type"
    SETTINGS = "settings"


class SettingsOption(str, Enum):
    MAIN = "main"
    TIMEZONE = "timezone"
    SET_TIMEZONE = "set_timezone"
    NOTIFICATIONS = "notifications"
    SET_NOTIFICATIONS = "set_notifications"
    REPORTS = "reports"
    HABITS = "habits"
    RESET_HABITS = "reset_habits"
    CLEAR_DATA = "clear_data"
    CONFIRM_CLEAR = "confirm_clear"
    CLOSE = "close"


TIMEZONES = {
    "UTC": "UTC",
    "EST": "America/New_York",
    "PST": "America/Los_Angeles",
    "CET": "Europe/Paris",
}

NOTIFICATION_PRESETS = {
    "enable": {"reminders": True, "reports": True, "habits": True},
    "disable": {"reminders": False, "reports": False, "habits": False},
    "reminders": {"reminders": True, "reports": False, "habits": False},
    "reports": {"reminders": False, "reports": True, "habits": False},
}


class BadCallback(ValueError):
    """Callback data that does not match the protocol."""


def parse_callback(data: str) -> tuple[CallbackAction, list[str]]:
    """Split *data* into its action and parameters.

    Raises:
        BadCallback: If the action is not a :class:`CallbackAction`.
    """
    action, *params = data.split(":")
    try:
        return CallbackAction(action), params
    except ValueError:
        raise BadCallback(data)


def _param(params: list[str], index: int) -> str:
    if index >= len(params) or not params[index]:
        raise BadCallback(":".join(params))
    return params[index]


def _int_param(params: list[str], index: int) -> int:
    try:
        return int(_param(params, index))
    except ValueError:
        raise BadCallback(":".join(params))


# ── keyboards ────────────────────────────────────────────────────────────────


def settings_keyboard() -> InlineKeyboardMarkup:
    return keyboard([
        [("🌍 Timezone", "settings:timezone"), ("🔔 Notifications", "settings:notifications")],
        [("📊 Reports", "settings:reports"), ("💪 Habits", "settings:habits")],
        [("🗑️ Clear Data", "settings:clear_data"), ("❌ Close", "settings:close")],
    ])


def report_keyboard() -> InlineKeyboardMarkup:
    return keyboard([
        [("📊 Daily Report", "report_type:daily"), ("📈 Weekly Report", "report_type:weekly")],
        [("💪 Habits Overview", "report_type:habits")],
    ])


def reminder_keyboard(reminder_id: int) -> InlineKeyboardMarkup:
    return keyboard([
        [
            ("⏰ Snooze 15m", f"reminder_snooze:{reminder_id}:15"),
            ("⏰ Snooze 1h", f"reminder_snooze:{reminder_id}:60"),
        ],
        [("✅ Done", f"reminder_complete:{reminder_id}")],
    ])


def habit_confirm_keyboard(habit: str) -> InlineKeyboardMarkup:
    return keyboard([
        [("✅ Yes", f"habit_confirm:{habit}:yes"), ("❌ No", f"habit_confirm:{habit}:no")],
    ])


# ── action handlers ──────────────────────────────────────────────────────────

Handler = Callable[[CallbackQuery, ContextTypes.DEFAULT_TYPE, User, list[str]], Awaitable[None]]


async def _edit(query: CallbackQuery, text: str, markup: InlineKeyboardMarkup | None = None) -> None:
    await query.edit_message_text(text, parse_mode=ParseMode.MARKDOWN, reply_markup=markup)


async def habit_confirm(query, context, user, params) -> None:
    habit = _param(params, 0)
    if habit not in HABIT_PATTERNS:
        raise BadCallback(habit)
    if _param(params, 1) == "yes":
        tracker: HabitTracker = context.bot_data["habits"]
        tracker.record_habit(user.id, habit)
        await _edit(
            query,
            f"✅ Great! I've recorded your {habit} habit for today!",
            keyboard([[("View My Habits 📊", "report_type:habits")]]),
        )
    else:
        await _edit(query, "No worries! I won't track that as a habit.")
    await query.answer()


async def habit_track(query, context, user, params) -> None:
    habit_id = _int_param(params, 0)
    count = _int_param(params, 1) if len(params) > 1 else 1
    tracker: HabitTracker = context.bot_data["habits"]
    if not tracker.record_entry(user.id, habit_id, count):
        await query.answer("Habit not found.")
        return
    await _edit(query, f"✅ Recorded {count} for your habit today!")
    await query.answer("Habit tracked!")


async def reminder_snooze(query, context, user, params) -> None:
    reminder_id = _int_param(params, 0)
    minutes = _int_param(params, 1)
    service: ReminderService = context.bot_data["reminders"]
    if service.snooze(user.id, reminder_id, minutes) is None:
        await query.answer("Reminder not found.")
        return
    await _edit(query, f"⏰ Reminder snoozed for {minutes} minutes")
    await query.answer("Snoozed!")


async def reminder_complete(query, context, user, params) -> None:
    reminder_id = _int_param(params, 0)
    service: ReminderService = context.bot_data["reminders"]
    if service.complete(user.id, reminder_id) is None:
        await query.answer("Reminder not found.")
        return
    await _edit(query, "✅ Reminder marked as complete!")
    await query.answer("Completed!")


async def report_type(query, context, user, params) -> None:
    try:
        kind = ReportType(_param(params, 0))
    except ValueError:
        raise BadCallback(params[0])
    reports: ReportGenerator = context.bot_data["reports"]
    await query.message.reply_text(reports.generate(user.id, kind), parse_mode=ParseMode.MARKDOWN)
    await query.answer()


async def settings(query, context, user, params) -> None:
    option = SettingsOption(params[0]) if params and params[0] else SettingsOption.MAIN
    await _SETTINGS_HANDLERS[option](query, context, user, params[1:])


# ── settings menu ────────────────────────────────────────────────────────────


async def _settings_main(query, context, user, params) -> None:
    await _edit(query, "⚙️ *Settings Menu:*\n\nChoose an option below:", settings_keyboard())
    await query.answer()


async def _settings_timezone(query, context, user, params) -> None:
    await _edit(
        query,
        f"🌍 Your timezone is *{escape(user.timezone)}*. Select a new one:",
        keyboard([
            [("🌍 UTC", "settings:set_timezone:UTC"), ("🇺🇸 EST", "settings:set_timezone:EST")],
            [("🇺🇸 PST", "settings:set_timezone:PST"), ("🇪🇺 CET", "settings:set_timezone:CET")],
        ]),
    )
    await query.answer()


async def _settings_set_timezone(query, context, user, params) -> None:
    label = _param(params, 0)
    if label not in TIMEZONES:
        raise BadCallback(label)
    users: UserStore = context.bot_data["users"]
    users.set_timezone(user.id, TIMEZONES[label])
    await _edit(query, f"✅ Timezone set to {label} ({escape(TIMEZONES[label])})")
    await query.answer()


async def _settings_notifications(query, context, user, params) -> None:
    await _edit(
        query,
        "🔔 Notification preferences:",
        keyboard([
            [("🔔 Enable All", "settings:set_notifications:enable"),
             ("🔕 Disable All", "settings:set_notifications:disable")],
            [("⏰ Reminders Only", "settings:set_notifications:reminders"),
             ("📊 Reports Only", "settings:set_notifications:reports")],
        ]),
    )
    await query.answer()


async def _settings_set_notifications(query, context, user, params) -> None:
    preset = _param(params, 0)
    if preset not in NOTIFICATION_PRESETS:
        raise BadCallback(preset)
    users: UserStore = context.bot_data["users"]
    users.update_preferences(user.id, {"notifications": dict(NOTIFICATION_PRESETS[preset])})
    await _edit(query, "✅ Notification preferences updated")
    await query.answer()


async def _settings_reports(query, context, user, params) -> None:
    await _edit(query, "📊 Choose a report type:", report_keyboard())
    await query.answer()


async def _settings_habits(query, context, user, params) -> None:
    await _edit(
        query,
        "💪 Habit Management:",
        keyboard([
            [("👀 View Habits", "report_type:habits")],
            [("🗑️ Reset Habits", "settings:reset_habits")],
        ]),
    )
    await query.answer()


async def _settings_reset_habits(query, context, user, params) -> None:
    tracker: HabitTracker = context.bot_data["habits"]
    removed = tracker.reset_habits(user.id)
    await _edit(query, f"✅ Removed {removed} habits. Fresh start!")
    await query.answer()


async def _settings_clear_data(query, context, user, params) -> None:
    await _edit(
        query,
        "⚠️ *Warning*: This will delete all your data including conversations, "
        "habits, tasks and reminders. This action cannot be undone!",
        keyboard([[("⚠️ Yes, Clear All", "settings:confirm_clear"), ("❌ Cancel", "settings:main")]]),
    )
    await query.answer()


async def _settings_confirm_clear(query, context, user, params) -> None:
    users: UserStore = context.bot_data["users"]
    users.clear_user_data(user.id)
    await _edit(query, "✅ All your data has been cleared. You can start fresh!")
    await query.answer()


async def _settings_close(query, context, user, params) -> None:
    await query.edit_message_text("Settings menu closed.")
    await query.answer()


_SETTINGS_HANDLERS: dict[SettingsOption, Handler] = {
    SettingsOption.MAIN: _settings_main,
    SettingsOption.TIMEZONE: _settings_timezone,
    SettingsOption.SET_TIMEZONE: _settings_set_timezone,
    SettingsOption.NOTIFICATIONS: _settings_notifications,
    SettingsOption.SET_NOTIFICATIONS: _settings_set_notifications,
    SettingsOption.REPORTS: _settings_reports,
    SettingsOption.HABITS: _settings_habits,
    SettingsOption.RESET_HABITS: _settings_reset_habits,
    SettingsOption.CLEAR_DATA: _settings_clear_data,
    SettingsOption.CONFIRM_CLEAR: _settings_confirm_clear,
    SettingsOption.CLOSE: _settings_close,
}

ACTION_HANDLERS: dict[CallbackAction, Handler] = {
    CallbackAction.HABIT_CONFIRM: habit_confirm,
    CallbackAction.HABIT_TRACK: habit_track,
    CallbackAction.REMINDER_SNOOZE: reminder_snooze,
    CallbackAction.REMINDER_COMPLETE: reminder_complete,
    CallbackAction.REPORT_TYPE: report_type,
    CallbackAction.SETTINGS: settings,
}


def ensure_total(table: dict, kinds: type[Enum]) -> None:
    """Raise ``RuntimeError`` if *table* lacks a handler for any member of *kinds*."""
    missing = [k.value for k in kinds if k not in table]
    if missing:
        raise RuntimeError(f"No handler registered for {kinds.__name__}: {', '.join(missing)}")


ensure_total(ACTION_HANDLERS, CallbackAction)
ensure_total(_SETTINGS_HANDLERS, SettingsOption)


async def callback_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Route an inline-keyboard press to its action handler."""
    query = update.callback_query
    if query is None:
        return
    users: UserStore = context.bot_data["users"]
    user = users.get_by_telegram_id(query.from_user.id)
    if user is None:
        await query.answer("User not found. Please send /start first.")
        return

    try:
        action, params = parse_callback(query.data or "")
        await ACTION_HANDLERS[action](query, context, user, params)
    except ValueError as exc:
        logger.warning("Rejected callback %r from user %d: %s", query.data, user.id, exc)
        await query.answer("Unknown action")
