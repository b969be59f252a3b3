"""Tests for services/prompts.py and cron.py: scheduled pushes and the cron run."""

import random
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import UTC
from cron import reminder_message, run_cron
from services.prompts import PromptTask, ScheduledPrompts, local_time, wants_reports
from services.reminders import CreateRequest, ReminderService


def _messenger(side_effect=None):
    messenger = MagicMock()
    messenger.send = AsyncMock(side_effect=side_effect)
    return messenger


@pytest.fixture
def world(users):
    """Three users at noon UTC: local 12:00, 08:00 and 21:00."""
    london = users.get_or_create(1, first_name="Lon", timezone="UTC")
    new_york = users.get_or_create(2, first_name="Nyc", timezone="America/New_York")
    tokyo = users.get_or_create(3, first_name="Tok", timezone="Asia/Tokyo")
    return london, new_york, tokyo


class TestScheduledPrompts:
    @pytest.mark.asyncio
    async def test_only_users_inside_the_window(self, users, clock, world):
        _, new_york, _ = world
        messenger = _messenger()
        prompts = ScheduledPrompts(users, messenger, clock, rng=random.Random(1))

        report = await prompts.run(PromptTask.MORNING_GREETING)

        assert (report.candidates, report.sent, report.skipped) == (3, 1, 2)
        chat_id, text = messenger.send.await_args.args
        assert chat_id == new_york.telegram_id
        assert "Nyc" in text

    @pytest.mark.asyncio
    async def test_reflection_window(self, users, clock, world):
        _, _, tokyo = world
        messenger = _messenger()
        report = await ScheduledPrompts(users, messenger, clock).run("evening_reflection")
        assert report.sent == 1
        chat_id, text = messenger.send.await_args.args
        assert chat_id == tokyo.telegram_id
        assert "*Daily Reflection:*" in text

    @pytest.mark.asyncio
    async def test_opted_out_users_are_skipped(self, users, clock, world):
        _, new_york, _ = world
        users.update_preferences(new_york.id, {"notifications": {"reports": False}})
        messenger = _messenger()
        report = await ScheduledPrompts(users, messenger, clock).run(PromptTask.MORNING_GREETING)
        assert report.sent == 0
        messenger.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_others(self, users, clock):
        first = users.get_or_create(10, first_name="A")
        users.get_or_create(11, first_name="B")

        async def send(chat_id, text):
            if chat_id == first.telegram_id:
                raise RuntimeError("bot was blocked by the user")

        messenger = _messenger(side_effect=send)
        report = await ScheduledPrompts(users, messenger, clock).run(PromptTask.AFTERNOON_GREETING)
        assert report.sent == 1
        assert report.failed == 1
        assert "blocked" in report.errors[0]

    @pytest.mark.asyncio
    async def test_inactive_users_only_get_reflections(self, users, clock):
        users.get_or_create(20, first_name="Quiet", timezone="Asia/Tokyo")
        clock.now += timedelta(days=10)
        messenger = _messenger()
        prompts = ScheduledPrompts(users, messenger, clock)

        evening = await prompts.run(PromptTask.EVENING_GREETING)
        reflection = await prompts.run(PromptTask.EVENING_REFLECTION)
        assert evening.candidates == 0
        assert reflection.sent == 1

    @pytest.mark.asyncio
    async def test_unknown_task(self, users, clock):
        with pytest.raises(ValueError):
            await ScheduledPrompts(users, _messenger(), clock).run("midnight_snack")

    def test_helpers(self, users, clock, user):
        assert wants_reports(user)
        assert local_time(clock(), "Not/AZone").tzinfo == UTC
        assert local_time(clock(), "Asia/Tokyo").hour == 21


class TestRunCron:
    @pytest.mark.asyncio
    async def test_sweep_and_tasks(self, db, users, clock, world):
        london, *_ = world
        reminders = ReminderService(db, MagicMock(), clock, UTC)
        due = reminders.insert(london.id, CreateRequest("Stretch", "2025-10-06 11:55:00"))
        messenger = _messenger()
        prompts = ScheduledPrompts(users, messenger, clock)

        summary = await run_cron(
            reminders, prompts, messenger, ["afternoon_greeting", "bogus"]
        )

        assert summary["reminders"]["sent"] == [due.id]
        assert summary["tasks"]["afternoon_greeting"]["sent"] == 1
        assert summary["tasks"]["bogus"] == {"error": "unknown task"}
        reminder_call = messenger.send.await_args_list[0]
        assert reminder_call.args[0] == london.telegram_id
        assert "Stretch" in reminder_call.args[1]

    @pytest.mark.asyncio
    async def test_failing_task_is_recorded(self, db, users, clock):
        reminders = ReminderService(db, MagicMock(), clock, UTC)
        prompts = MagicMock()
        prompts.run = AsyncMock(side_effect=RuntimeError("boom"))
        summary = await run_cron(reminders, prompts, _messenger(), ["morning_greeting"])
        assert summary["tasks"]["morning_greeting"] == {"error": "boom"}

    def test_reminder_message(self, db, clock, user):
        reminders = ReminderService(db, MagicMock(), clock, UTC)
        reminder = reminders.insert(
            user.id, CreateRequest("Take_pills", "2025-10-06 18:00:00", notes="with food")
        )
        text = reminder_message(reminder)
        assert "📝 Take\\_pills" in text
        assert "Mon, Oct 06 at 06:00 PM" in text
        assert "📋 with food" in text
