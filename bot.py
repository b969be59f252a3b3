"""Telegram bot command and message handlers.

All handler functions follow the signature required by ``python-telegram-bot``
v21+.  Shared state (stores, services, AI adapter) is stored in
``context.bot_data`` so handlers remain stateless functions rather than
methods on a class.
"""

import logging
import sqlite3
from dataclasses import dataclass
from enum import Enum

from telegram import Message, Update
from telegram.constants import ChatAction, ParseMode
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from ai_adapter import AIAdapter
from callbacks import (
    callback_handler,
    ensure_total,
    habit_confirm_keyboard,
    report_keyboard,
    settings_keyboard,
)
from config import Config
from context_manager import ContextManager
from formatting import decorate, escape, format_datetime, truncate
from messenger import keyboard
from models import Action, Analysis, Intent, Reminder, ReminderFilter, User
from providers.base import ChatContext, ProviderError
from services.habits import HABIT_PATTERNS, HabitTracker
from services.health import HealthTracker
from services.reminders import ModifyResult, ReminderService
from services.reports import ReportGenerator
from services.tasks import TaskService
from users import UserStore

logger = logging.getLogger(__name__)

REMINDER_HINT = (
    "Try: 'Remind me to [task] at [time]' or 'Move my [reminder] to [new time]'."
)

_REMINDER_FILTER_TITLES = {
    ReminderFilter.PENDING: "⏰ *Your Pending Reminders:*",
    ReminderFilter.COMPLETED: "✅ *Your Completed Reminders:*",
    ReminderFilter.CANCELLED: "❌ *Your Cancelled Reminders:*",
    ReminderFilter.TODAY: "⏰ *Today's Pending Reminders:*",
    ReminderFilter.ALL: "⏰ *All Your Reminders:*",
}

_REMINDERS_USAGE = "*Usage:* `/reminders pending|completed|cancelled|today|all`"


class Command(str, Enum):
    START = "start"
    HELP = "help"
    HABITS = "habits"
    REMINDERS = "reminders"
    REPORT = "report"
    TASKS = "tasks"
    SETTINGS = "settings"


def _current_user(update: Update, context: ContextTypes.DEFAULT_TYPE) -> User:
    """Return the sender's user record, creating it on first contact, and mark activity."""
    users: UserStore = context.bot_data["users"]
    config: Config = context.bot_data["config"]
    sender = update.effective_user
    user = users.get_or_create(
        sender.id,  # type: ignore[union-attr]
        username=sender.username,  # type: ignore[union-attr]
        first_name=sender.first_name,  # type: ignore[union-attr]
        timezone=config.timezone,
    )
    users.touch(user.id)
    return user


async def _reply(update: Update, text: str, **kwargs) -> None:
    await update.message.reply_text(  # type: ignore[union-attr]
        truncate(text), parse_mode=ParseMode.MARKDOWN, **kwargs
    )


# ── Command handlers ──────────────────────────────────────────────────────────

async def start_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle the /start command: register the user and introduce the bot."""
    user = _current_user(update, context)
    name = escape(user.first_name or "there")
    await _reply(
        update,
        f"Hey {name}! 👋 I'm your AI personal assistant. I can help you with:\n\n"
        "📝 Task management\n⏰ Reminders\n💪 Habit tracking\n📊 Daily reports\n💬 Just chatting!\n\n"
        "Try saying something like \"remind me to call mom tomorrow at 6pm\" "
        "or tell me about your day!",
    )


async def help_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle the /help command: list all available commands."""
    await _reply(
        update,
        "Here's what I can do:\n\n"
        "🤖 *Chat*: just talk to me naturally!\n"
        "⏰ *Reminders*: \"remind me to X at Y\"\n"
        "📝 *Tasks*: \"I need to buy milk\"\n"
        "💪 *Habits*: I'll track habits from your messages\n"
        "📊 *Reports*: daily and weekly summaries\n\n"
        "*Commands:*\n"
        "/tasks - view your tasks\n"
        "/habits - view your habits\n"
        "/reminders - view reminders (pending, completed, cancelled, today, all)\n"
        "/report - today's summary\n"
        "/settings - adjust preferences",
    )


async def habits_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /habits: habit overview with a one-tap log button per habit."""
    user = _current_user(update, context)
    reports: ReportGenerator = context.bot_data["reports"]
    tracker: HabitTracker = context.bot_data["habits"]
    habits = tracker.get_user_habits(user.id)
    markup = None
    if habits:
        markup = keyboard(
            [[(f"✅ Log {h.name} today", f"habit_track:{h.id}:1")] for h in habits[:8]]
        )
    await _reply(update, reports.habits(user.id), reply_markup=markup)


async def reminders_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /reminders [filter]."""
    user = _current_user(update, context)
    service: ReminderService = context.bot_data["reminders"]
    arg = context.args[0].lower() if context.args else ReminderFilter.PENDING.value
    try:
        kind = ReminderFilter(arg)
    except ValueError:
        await _reply(update, f"Unknown filter `{escape(arg)}`.\n\n{_REMINDERS_USAGE}")
        return

    reminders = service.list_reminders(user.id, kind)
    if not reminders:
        label = {ReminderFilter.TODAY: "for today", ReminderFilter.ALL: ""}.get(kind, kind.value)
        text = f"⏰ No {label} reminders found. Try saying 'remind me to X at Y'!"
        await _reply(update, " ".join(text.split()))
        return
    await _reply(update, format_reminder_list(kind, reminders))


def format_reminder_list(kind: ReminderFilter, reminders: list[Reminder]) -> str:
    lines = [_REMINDER_FILTER_TITLES[kind], ""]
    for reminder in reminders:
        lines.append(f"📝 *{escape(reminder.description)}*")
        lines.append(f"   📅 {format_datetime(reminder.remind_at)}")
        if reminder.notes:
            lines.append(f"   📋 {escape(reminder.notes)}")
        if kind is ReminderFilter.ALL:
            lines.append(f"   Status: {reminder.status.value}")
        lines.append(f"   🆔 ID: {reminder.id}")
        lines.append("")
    lines.append(_REMINDERS_USAGE)
    return "\n".join(lines)


async def report_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /report: today's summary plus buttons for the other reports."""
    user = _current_user(update, context)
    reports: ReportGenerator = context.bot_data["reports"]
    await _reply(update, reports.daily(user.id), reply_markup=report_keyboard())


async def tasks_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /tasks: list pending tasks, newest first."""
    user = _current_user(update, context)
    service: TaskService = context.bot_data["tasks"]
    tasks = service.list_pending(user.id)
    if not tasks:
        await _reply(update, "📝 No tasks yet. Try saying 'I need to buy milk'!")
        return
    lines = ["📝 *Your Tasks:*", ""]
    for i, task in enumerate(tasks, 1):
        lines.append(f"{i}. {escape(task.title)}")
        if task.description and task.description != task.title:
            lines.append(f"   {escape(task.description)}")
    await _reply(update, "\n".join(lines))


async def settings_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /settings: open the settings menu."""
    _current_user(update, context)
    await _reply(update, "⚙️ *Settings Menu:*\n\nChoose an option below:", reply_markup=settings_keyboard())


async def unknown_command_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(  # type: ignore[union-attr]
        "Unknown command. Type /help to see available commands."
    )


COMMAND_HANDLERS = {
    Command.START: start_handler,
    Command.HELP: help_handler,
    Command.HABITS: habits_handler,
    Command.REMINDERS: reminders_handler,
    Command.REPORT: report_handler,
    Command.TASKS: tasks_handler,
    Command.SETTINGS: settings_handler,
}

ensure_total(COMMAND_HANDLERS, Command)


# ── Natural language handler ──────────────────────────────────────────────────

async def message_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle plain-text messages.

    The message is classified, acted on (reminder, habit, task), scanned for
    health mentions, and finally answered by the LLM with recent conversation
    as context.  The exchange is stored as one conversation turn.
    """
    text = (update.message.text or "").strip()  # type: ignore[union-attr]
    if not text:
        return
    contexts: ContextManager = context.bot_data["contexts"]
    adapter: AIAdapter = context.bot_data["adapter"]
    health: HealthTracker = context.bot_data["health"]

    user = _current_user(update, context)
    await context.bot.send_chat_action(chat_id=update.effective_chat.id, action=ChatAction.TYPING)  # type: ignore[union-attr]

    history = contexts.get_context(user.id, user.preferences)
    analysis = await adapter.analyze_message(text, history.recent_turns)
    logger.info(
        "User %d: intent=%s action=%s source=%s",
        user.id, analysis.intent.value, analysis.action.value, analysis.source,
    )

    if analysis.action in (Action.CREATE_REMINDER, Action.UPDATE_REMINDER):
        await _handle_reminder(update, context, user, text)
    if analysis.action is Action.TRACK_HABIT or analysis.intent is Intent.HABIT_REPORT:
        await _handle_habits(update, context, user, text, analysis)
    if analysis.action is Action.CREATE_TASK:
        await _handle_task(update, context, user, text)

    health.analyze_message(user.id, text)

    try:
        reply = await adapter.generate(
            text,
            ChatContext(
                user_info={"name": user.first_name, "preferences": user.preferences},
                recent_turns=history.recent_turns,
                analysis=analysis,
            ),
        )
    except ProviderError as exc:
        logger.error("Provider error for user %d: %s", user.id, exc)
        await update.message.reply_text(  # type: ignore[union-attr]
            "🤖 My AI brain is taking a quick break. Please try again in a moment!"
        )
        return

    contexts.save_conversation(user.id, text, reply.content)
    await update.message.reply_text(truncate(decorate(reply.content)))  # type: ignore[union-attr]


async def _handle_reminder(
    update: Update, context: ContextTypes.DEFAULT_TYPE, user: User, text: str
) -> None:
    service: ReminderService = context.bot_data["reminders"]
    result = await service.handle_request(user.id, text)
    if isinstance(result, Reminder):
        lines = [
            "✅ Reminder set!",
            "",
            f"📝 *{escape(result.description)}*",
            f"⏰ {format_datetime(result.remind_at)}",
        ]
        if result.notes:
            lines.append(f"📋 {escape(result.notes)}")
        await _reply(update, "\n".join(lines))
    elif isinstance(result, ModifyResult) and result.success:
        await _reply(update, f"✅ {escape(result.message)}")
    elif isinstance(result, ModifyResult):
        await _reply(update, f"❌ {escape(result.message)}\n\n{REMINDER_HINT}")
    else:
        await _reply(update, f"❌ I couldn't understand that reminder. {REMINDER_HINT}")


async def _handle_habits(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    user: User,
    text: str,
    analysis: Analysis,
) -> None:
    tracker: HabitTracker = context.bot_data["habits"]
    tracked = tracker.track_from_message(user.id, text)
    if tracked:
        logger.info("Tracked habits %s for user %d", tracked, user.id)
        return
    suggested = [h for h in analysis.entities.habits if h in HABIT_PATTERNS]
    if suggested:
        await _reply(
            update,
            f"💪 Sounds like {suggested[0]}! Should I log it as a habit for today?",
            reply_markup=habit_confirm_keyboard(suggested[0]),
        )


async def _handle_task(
    update: Update, context: ContextTypes.DEFAULT_TYPE, user: User, text: str
) -> None:
    service: TaskService = context.bot_data["tasks"]
    task = service.create_from_message(user.id, text)
    if task:
        await _reply(update, f"✅ Task added: \"{escape(task.title)}\"")
    else:
        logger.warning("Could not extract a task for user %d from %r", user.id, text)


@dataclass(frozen=True)
class SharedFile:
    file_id: str
    file_type: str
    file_size: int | None
    description: str
    label: str
    prompt: str


def shared_file(message: Message) -> SharedFile | None:
    """Describe the photo, document or voice note carried by *message*."""
    if message.photo:
        largest = message.photo[-1]
        caption = message.caption or ""
        with_caption = f' with caption: "{caption}"' if caption else ""
        return SharedFile(
            largest.file_id, "photo", largest.file_size, caption, "photo",
            f"User shared a photo{with_caption}. "
            "Respond encouragingly and ask relevant questions if appropriate.",
        )
    if message.document:
        name = message.document.file_name or "document"
        return SharedFile(
            message.document.file_id, "document", message.document.file_size, name, "document",
            f'User shared a document named "{name}". '
            "Respond encouragingly and offer to help with document-related tasks.",
        )
    if message.voice:
        duration = message.voice.duration
        return SharedFile(
            message.voice.file_id, "voice", message.voice.file_size,
            f"Voice message ({duration}s)", "voice message",
            f"User sent a voice message ({duration} seconds). "
            "Respond encouragingly and mention that you heard them.",
        )
    return None


async def media_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle photos, documents and voice messages: log the file, then answer via the LLM."""
    message = update.message
    shared = shared_file(message)  # type: ignore[arg-type]
    if shared is None:
        return
    users: UserStore = context.bot_data["users"]
    adapter: AIAdapter = context.bot_data["adapter"]
    user = _current_user(update, context)

    try:
        users.log_file(user.id, shared.file_id, shared.file_type, shared.file_size, shared.description)
    except sqlite3.Error:
        logger.exception("Could not save %s for user %d", shared.file_type, user.id)
        await message.reply_text(  # type: ignore[union-attr]
            f"Sorry, I couldn't save your {shared.label}. Please try again."
        )
        return
    logger.info("Saved %s for user %d: %s", shared.file_type, user.id, shared.file_id)

    try:
        reply = await adapter.generate(shared.prompt, ChatContext(user_info={"name": user.first_name}))
    except ProviderError as exc:
        logger.error("Provider error for user %d: %s", user.id, exc)
        await message.reply_text(  # type: ignore[union-attr]
            f"Got your {shared.label}! 📎 My AI brain is taking a quick break, but it's saved."
        )
        return
    await message.reply_text(truncate(decorate(reply.content)))  # type: ignore[union-attr]


# ── Error handler ─────────────────────────────────────────────────────────────

async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log any unhandled exception and send the user a best-effort apology."""
    logger.error("Unhandled error while processing update", exc_info=context.error)
    if not isinstance(update, Update) or update.effective_chat is None:
        return
    if isinstance(context.error, sqlite3.Error):
        text = "Sorry, I'm having trouble accessing my memory right now. Please try again later."
    else:
        text = "Sorry, I encountered an error. Please try again."
    try:
        await context.bot.send_message(chat_id=update.effective_chat.id, text=text)
    except TelegramError as exc:
        logger.warning("Could not send error apology: %s", exc)


# ── Application factory ───────────────────────────────────────────────────────

def build_application(
    config: Config,
    users: UserStore,
    contexts: ContextManager,
    adapter: AIAdapter,
    reminders: ReminderService,
    habits: HabitTracker,
    health: HealthTracker,
    tasks: TaskService,
    reports: ReportGenerator,
) -> Application:
    """Build and configure the Telegram :class:`Application`.

    Registers all command, message and callback handlers and stores shared
    state in ``bot_data`` so every handler can access it without globals.
    Updates are fed in by the webhook endpoint, so no updater is attached.

    Returns:
        A configured :class:`Application`; call ``initialize()`` before
        passing it updates.
    """
    app: Application = (
        Application.builder()
        .token(config.telegram_bot_token)
        .updater(None)
        .build()
    )

    app.bot_data["config"] = config
    app.bot_data["users"] = users
    app.bot_data["contexts"] = contexts
    app.bot_data["adapter"] = adapter
    app.bot_data["reminders"] = reminders
    app.bot_data["habits"] = habits
    app.bot_data["health"] = health
    app.bot_data["tasks"] = tasks
    app.bot_data["reports"] = reports

    for command, handler in COMMAND_HANDLERS.items():
        app.add_handler(CommandHandler(command.value, handler))
    app.add_handler(MessageHandler(filters.COMMAND, unknown_command_handler))
    app.add_handler(CallbackQueryHandler(callback_handler))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, message_handler))
    app.add_handler(
        MessageHandler(filters.PHOTO | filters.Document.ALL | filters.VOICE, media_handler)
    )
    app.add_error_handler(error_handler)

    return app
