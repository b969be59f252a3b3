"""Tests for bot.py: command and message handlers with mocked Telegram objects."""

import sqlite3
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from telegram import Update

import bot
from conftest import UTC
from context_manager import ContextManager
from models import Action, Analysis, Entities, Intent, Sentiment
from providers.base import Generation, ProviderError
from services.habits import HabitTracker
from services.health import HealthTracker
from services.reminders import CreateRequest, ReminderService
from services.reports import ReportGenerator
from services.tasks import TaskService


def _analysis(intent: Intent, action: Action, habits: list[str] | None = None) -> Analysis:
    return Analysis(
        intent=intent,
        entities=Entities(habits=habits or []),
        sentiment=Sentiment.NEUTRAL,
        action=action,
    )


def _update(text: str = "", telegram_id: int = 1001):
    update = MagicMock()
    update.message.text = text
    update.message.reply_text = AsyncMock()
    update.effective_user.id = telegram_id
    update.effective_user.username = "ada"
    update.effective_user.first_name = "Ada"
    update.effective_chat.id = telegram_id
    return update


def _replies(update) -> list[str]:
    return [c.args[0] for c in update.message.reply_text.await_args_list]


@pytest.fixture
def adapter():
    adapter = MagicMock()
    adapter.analyze_message = AsyncMock(return_value=_analysis(Intent.GENERAL_CHAT, Action.NONE))
    adapter.generate_json = AsyncMock(return_value=None)
    adapter.generate = AsyncMock(return_value=Generation(content="Sounds good!", model="test"))
    return adapter


@pytest.fixture
def context(db, clock, users, adapter):
    config = MagicMock()
    config.timezone = "UTC"
    habits = HabitTracker(db, clock)
    tasks = TaskService(db, clock)
    reminders = ReminderService(db, adapter, clock, UTC)
    health = HealthTracker(db, clock)
    context = MagicMock()
    context.args = []
    context.bot.send_chat_action = AsyncMock()
    context.bot.send_message = AsyncMock()
    context.bot_data = {
        "config": config,
        "users": users,
        "contexts": ContextManager(db, clock),
        "adapter": adapter,
        "reminders": reminders,
        "habits": habits,
        "health": health,
        "tasks": tasks,
        "reports": ReportGenerator(db, habits, tasks, reminders, health, clock),
    }
    return context


def _count(db, table: str) -> int:
    return db.fetchone(f"SELECT COUNT(*) FROM {table}")[0]


# ── natural language ──────────────────────────────────────────────────────────

class TestMessageHandler:
    @pytest.mark.asyncio
    async def test_reminder_is_created_and_confirmed(self, db, context, adapter):
        adapter.analyze_message.return_value = _analysis(Intent.REMINDER, Action.CREATE_REMINDER)
        adapter.generate_json.return_value = {
            "intent": "create_reminder",
            "confidence": 85,
            "description": "Call mom",
            "remindAt": "2025-10-07 15:00:00",
        }
        update = _update("remind me to call mom tomorrow at 3pm")

        await bot.message_handler(update, context)

        confirmation, ai_reply = _replies(update)
        assert confirmation.startswith("✅ Reminder set!")
        assert "📝 *Call mom*" in confirmation
        assert "⏰ Tue, Oct 07 at 03:00 PM" in confirmation
        assert ai_reply == "Sounds good!"
        assert _count(db, "reminders") == 1
        context.bot.send_chat_action.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_low_confidence_reminder_explains(self, db, context, adapter):
        adapter.analyze_message.return_value = _analysis(Intent.REMINDER, Action.CREATE_REMINDER)
        adapter.generate_json.return_value = {"intent": "create_reminder", "confidence": 20}
        update = _update("remind me... something")

        await bot.message_handler(update, context)

        assert _replies(update)[0].startswith("❌ I couldn't understand that reminder.")
        assert _count(db, "reminders") == 0

    @pytest.mark.asyncio
    async def test_habit_report_logs_one_entry(self, db, context, adapter, user):
        adapter.analyze_message.return_value = _analysis(Intent.HABIT_REPORT, Action.TRACK_HABIT)
        update = _update("went to the gym today")

        await bot.message_handler(update, context)
        await bot.message_handler(update, context)

        habits = context.bot_data["habits"].get_user_habits(user.id)
        assert [(h.name, h.total_entries) for h in habits] == [("exercise", 1)]
        assert _count(db, "reminders") == 0
        assert _count(db, "tasks") == 0
        adapter.generate_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_habit_suggestion_offers_buttons(self, context, adapter):
        adapter.analyze_message.return_value = _analysis(
            Intent.HABIT_REPORT, Action.NONE, habits=["reading"]
        )
        update = _update("spent the evening with a novel")

        await bot.message_handler(update, context)

        first = update.message.reply_text.await_args_list[0]
        assert "Sounds like reading" in first.args[0]
        markup = first.kwargs["reply_markup"]
        assert markup.inline_keyboard[0][0].callback_data == "habit_confirm:reading:yes"

    @pytest.mark.asyncio
    async def test_task_is_created(self, db, context, adapter):
        adapter.analyze_message.return_value = _analysis(Intent.TASK, Action.CREATE_TASK)
        update = _update("I need to buy milk")

        await bot.message_handler(update, context)

        assert _replies(update)[0] == '✅ Task added: "buy milk"'
        assert _count(db, "tasks") == 1

    @pytest.mark.asyncio
    async def test_conversation_is_saved(self, context, user):
        update = _update("how's it going")
        await bot.message_handler(update, context)
        turns = context.bot_data["contexts"].recent_turns(user.id, 5)
        assert [(t.user, t.assistant) for t in turns] == [("how's it going", "Sounds good!")]

    @pytest.mark.asyncio
    async def test_health_mentions_are_logged(self, db, context):
        await bot.message_handler(_update("had pizza for dinner"), context)
        assert _count(db, "meals") == 1

    @pytest.mark.asyncio
    async def test_provider_failure_gets_friendly_reply(self, context, adapter, user):
        adapter.generate.side_effect = ProviderError("all", "everything is down")
        update = _update("hello")

        await bot.message_handler(update, context)

        assert _replies(update) == [
            "🤖 My AI brain is taking a quick break. Please try again in a moment!"
        ]
        assert context.bot_data["contexts"].count(user.id) == 0

    @pytest.mark.asyncio
    async def test_first_message_registers_user(self, context, users):
        await bot.message_handler(_update("hi", telegram_id=555), context)
        assert users.get_by_telegram_id(555).first_name == "Ada"

    @pytest.mark.asyncio
    async def test_blank_message_is_ignored(self, context, adapter):
        update = _update("   ")
        await bot.message_handler(update, context)
        adapter.analyze_message.assert_not_awaited()
        update.message.reply_text.assert_not_awaited()


# ── media ─────────────────────────────────────────────────────────────────────

def _media_update(photo=None, document=None, voice=None, caption=None):
    update = _update()
    update.message.photo = photo or []
    update.message.document = document
    update.message.voice = voice
    update.message.caption = caption
    return update


class TestMediaHandler:
    @pytest.mark.asyncio
    async def test_photo_is_logged_and_answered(self, context, adapter, users, user):
        sizes = [MagicMock(file_id="thumb", file_size=100), MagicMock(file_id="full", file_size=2048)]
        update = _media_update(photo=sizes, caption="my new bike")

        await bot.media_handler(update, context)

        assert users.files(user.id) == [{
            "file_id": "full",
            "file_type": "photo",
            "file_size": 2048,
            "description": "my new bike",
            "created_at": "2025-10-06 12:00:00",
        }]
        prompt = adapter.generate.await_args.args[0]
        assert 'with caption: "my new bike"' in prompt
        assert adapter.generate.await_args.args[1].user_info == {"name": "Ada"}
        assert _replies(update) == ["Sounds good!"]

    @pytest.mark.asyncio
    async def test_document_uses_file_name(self, context, adapter, users, user):
        document = MagicMock(file_id="doc-1", file_size=512, file_name="cv.pdf")
        update = _media_update(document=document)

        await bot.media_handler(update, context)

        [row] = users.files(user.id)
        assert (row["file_type"], row["description"]) == ("document", "cv.pdf")
        assert 'document named "cv.pdf"' in adapter.generate.await_args.args[0]

    @pytest.mark.asyncio
    async def test_voice_records_duration(self, context, adapter, users, user):
        update = _media_update(voice=MagicMock(file_id="v-1", file_size=64, duration=7))

        await bot.media_handler(update, context)

        [row] = users.files(user.id)
        assert (row["file_type"], row["description"]) == ("voice", "Voice message (7s)")
        assert "(7 seconds)" in adapter.generate.await_args.args[0]

    @pytest.mark.asyncio
    async def test_storage_failure_skips_the_reply(self, context, adapter, users, user):
        update = _media_update(voice=MagicMock(file_id="v-1", file_size=64, duration=7))

        with patch.object(users, "log_file", side_effect=sqlite3.OperationalError("locked")):
            await bot.media_handler(update, context)

        assert _replies(update) == ["Sorry, I couldn't save your voice message. Please try again."]
        adapter.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_failure_still_keeps_the_file(self, context, adapter, users, user):
        adapter.generate.side_effect = ProviderError("all", "everything is down")
        update = _media_update(document=MagicMock(file_id="d", file_size=1, file_name="a.txt"))

        await bot.media_handler(update, context)

        assert len(users.files(user.id)) == 1
        assert _replies(update)[0].startswith("Got your document!")

    @pytest.mark.asyncio
    async def test_files_are_cleared_with_user_data(self, context, users, user):
        update = _media_update(document=MagicMock(file_id="d", file_size=1, file_name="a.txt"))
        await bot.media_handler(update, context)

        users.clear_user_data(user.id)

        assert users.files(user.id) == []


# ── commands ──────────────────────────────────────────────────────────────────

class TestCommands:
    @pytest.mark.asyncio
    async def test_start_greets_by_name(self, context):
        update = _update()
        await bot.start_handler(update, context)
        assert _replies(update)[0].startswith("Hey Ada! 👋")

    @pytest.mark.asyncio
    async def test_reminders_today(self, context, user):
        service = context.bot_data["reminders"]
        service.insert(user.id, CreateRequest("Tonight", "2025-10-06 23:59:00"))
        service.insert(user.id, CreateRequest("Tomorrow", "2025-10-07 00:00:00"))
        context.args = ["today"]
        update = _update()

        await bot.reminders_handler(update, context)

        text = _replies(update)[0]
        assert text.startswith("⏰ *Today's Pending Reminders:*")
        assert "Tonight" in text
        assert "Tomorrow" not in text

    @pytest.mark.asyncio
    async def test_reminders_empty(self, context, user):
        update = _update()
        await bot.reminders_handler(update, context)
        assert _replies(update)[0] == "⏰ No pending reminders found. Try saying 'remind me to X at Y'!"

    @pytest.mark.asyncio
    async def test_reminders_unknown_filter(self, context, user):
        context.args = ["someday"]
        update = _update()
        await bot.reminders_handler(update, context)
        assert "*Usage:*" in _replies(update)[0]

    @pytest.mark.asyncio
    async def test_tasks(self, context, user):
        context.bot_data["tasks"].create_from_message(user.id, "todo: renew passport")
        update = _update()
        await bot.tasks_handler(update, context)
        assert "1. renew passport" in _replies(update)[0]

    @pytest.mark.asyncio
    async def test_report_has_buttons(self, context, user):
        update = _update()
        await bot.report_handler(update, context)
        call = update.message.reply_text.await_args
        assert call.args[0].startswith("📊 *Daily Report")
        assert call.kwargs["reply_markup"] is not None

    @pytest.mark.asyncio
    async def test_habits_lists_log_buttons(self, context, user):
        context.bot_data["habits"].record_habit(user.id, "reading")
        update = _update()
        await bot.habits_handler(update, context)
        markup = update.message.reply_text.await_args.kwargs["reply_markup"]
        assert markup.inline_keyboard[0][0].callback_data.startswith("habit_track:")

    @pytest.mark.asyncio
    async def test_unknown_command(self, context):
        update = _update("/dance")
        await bot.unknown_command_handler(update, context)
        assert _replies(update) == ["Unknown command. Type /help to see available commands."]

    def test_every_command_has_a_handler(self):
        assert set(bot.COMMAND_HANDLERS) == set(bot.Command)


# ── errors ────────────────────────────────────────────────────────────────────

class TestErrorHandler:
    @pytest.mark.asyncio
    async def test_database_errors_get_specific_apology(self, context):
        update = MagicMock(spec=Update)
        update.effective_chat.id = 42
        context.error = sqlite3.OperationalError("disk I/O error")

        await bot.error_handler(update, context)

        kwargs = context.bot.send_message.await_args.kwargs
        assert kwargs["chat_id"] == 42
        assert "trouble accessing my memory" in kwargs["text"]

    @pytest.mark.asyncio
    async def test_non_update_is_only_logged(self, context):
        context.error = RuntimeError("boom")
        await bot.error_handler(None, context)
        context.bot.send_message.assert_not_awaited()
