"""Tests for services/reminders.py: extraction gate, lifecycle and the delivery sweep."""

import sqlite3
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import UTC
from models import ReminderFilter, ReminderStatus
from services.reminders import (
    CreateRequest,
    ModifyRequest,
    ModifyResult,
    ReminderService,
)


def _service(db, clock, extraction=None) -> ReminderService:
    adapter = MagicMock()
    adapter.generate_json = AsyncMock(return_value=extraction)
    return ReminderService(db, adapter, clock, UTC)


def _create(service, user, description="Call mom", remind_at="2025-10-06 15:00:00"):
    return service.insert(user.id, CreateRequest(description, remind_at))


def _count(db) -> int:
    return db.fetchone("SELECT COUNT(*) FROM reminders")[0]


class TestParseRequest:
    @pytest.mark.asyncio
    async def test_create_above_threshold(self, db, clock, user):
        service = _service(db, clock, {
            "intent": "create_reminder",
            "confidence": 85,
            "description": "Call mom",
            "remindAt": "2025-10-06T15:00:00",
        })
        reminder = await service.create_reminder(user.id, "remind me to call mom at 3pm")
        assert reminder is not None
        assert reminder.description == "Call mom"
        assert reminder.remind_at == "2025-10-06 15:00:00"
        assert reminder.status is ReminderStatus.PENDING

    @pytest.mark.asyncio
    async def test_below_threshold_creates_nothing(self, db, clock, user):
        service = _service(db, clock, {
            "intent": "create_reminder",
            "confidence": 59,
            "description": "Call mom",
            "remindAt": "2025-10-06 15:00:00",
        })
        assert await service.create_reminder(user.id, "maybe call mom") is None
        assert _count(db) == 0

    @pytest.mark.asyncio
    async def test_threshold_is_inclusive(self, db, clock, user):
        service = _service(db, clock, {
            "intent": "create_reminder",
            "confidence": 60,
            "description": "Water plants",
            "remindAt": "2025-10-06 18:00:00",
        })
        assert await service.create_reminder(user.id, "water plants at 6pm") is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["description", "remindAt"])
    async def test_missing_field_creates_nothing(self, db, clock, user, missing):
        data = {
            "intent": "create_reminder",
            "confidence": 95,
            "description": "Call mom",
            "remindAt": "2025-10-06 15:00:00",
        }
        del data[missing]
        service = _service(db, clock, data)
        assert await service.create_reminder(user.id, "remind me") is None
        assert _count(db) == 0

    @pytest.mark.asyncio
    async def test_unparseable_time_creates_nothing(self, db, clock, user):
        service = _service(db, clock, {
            "intent": "create_reminder",
            "confidence": 95,
            "description": "Call mom",
            "remindAt": "sometime soon",
        })
        assert await service.create_reminder(user.id, "remind me") is None

    @pytest.mark.asyncio
    async def test_non_numeric_confidence(self, db, clock):
        service = _service(db, clock, {"intent": "create_reminder", "confidence": "high"})
        assert await service.parse_request("x") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("confidence", [float("nan"), "nan", float("inf"), "-inf"])
    async def test_non_finite_confidence_is_rejected(self, db, clock, confidence):
        service = _service(db, clock, {
            "intent": "create_reminder",
            "confidence": confidence,
            "description": "call mom",
            "remindAt": "2025-10-07 18:00:00",
        })
        assert await service.parse_request("remind me to call mom") is None

    @pytest.mark.asyncio
    async def test_extraction_failure(self, db, clock):
        assert await _service(db, clock, None).parse_request("x") is None

    @pytest.mark.asyncio
    async def test_offset_time_is_converted_to_reference_zone(self, db, clock):
        service = _service(db, clock, {
            "intent": "create_reminder",
            "confidence": 90,
            "description": "Standup",
            "remindAt": "2025-10-07T09:00:00+02:00",
        })
        request = await service.parse_request("standup tomorrow 9am Paris time")
        assert request == CreateRequest("Standup", "2025-10-07 07:00:00", None)

    @pytest.mark.asyncio
    async def test_modify_request(self, db, clock):
        service = _service(db, clock, {
            "intent": "modify_reminder",
            "confidence": 90,
            "reminderTitle": "mom",
            "action": "reschedule",
            "newValue": "2025-10-07 15:00:00",
        })
        request = await service.parse_request("move the mom reminder to tomorrow")
        assert request == ModifyRequest("mom", "reschedule", "2025-10-07 15:00:00", None)

    @pytest.mark.asyncio
    async def test_not_reminder(self, db, clock):
        service = _service(db, clock, {"intent": "not_reminder", "confidence": 100})
        assert await service.parse_request("hello") is None


class TestModify:
    def test_reschedule_round_trip(self, db, clock, user):
        service = _service(db, clock)
        reminder = _create(service, user)
        result = service.apply_modification(
            user.id, ModifyRequest("call", "reschedule", "2025-10-08 09:30:00")
        )
        assert result.success
        assert result.message == 'Reminder "Call mom" has been rescheduled.'
        stored = service.get(user.id, reminder.id)
        assert stored.remind_at == "2025-10-08 09:30:00"
        assert stored.status is ReminderStatus.PENDING

    def test_vanished_insert_raises(self, db, clock, user):
        service = _service(db, clock, None)
        with patch.object(service, "get", return_value=None):
            with pytest.raises(sqlite3.DatabaseError):
                service.insert(user.id, CreateRequest("Call mom", "2025-10-07 18:00:00"))

    def test_reschedule_reopens_completed_reminder(self, db, clock, user):
        service = _service(db, clock)
        reminder = _create(service, user)
        service.complete(user.id, reminder.id)
        service.apply_modification(user.id, ModifyRequest("mom", "reschedule", "2025-10-09 10:00"))
        stored = service.get(user.id, reminder.id)
        assert stored.status is ReminderStatus.PENDING
        assert stored.completed_at is None

    def test_rename_and_notes(self, db, clock, user):
        service = _service(db, clock)
        reminder = _create(service, user)
        service.apply_modification(user.id, ModifyRequest("mom", "rename", "Call grandma"))
        service.apply_modification(user.id, ModifyRequest("grandma", "add_notes", notes="bring photos"))
        stored = service.get(user.id, reminder.id)
        assert stored.description == "Call grandma"
        assert stored.notes == "bring photos"

    def test_cancel(self, db, clock, user):
        service = _service(db, clock)
        reminder = _create(service, user)
        result = service.apply_modification(user.id, ModifyRequest("MOM", "cancel"))
        assert result.success
        stored = service.get(user.id, reminder.id)
        assert stored.status is ReminderStatus.CANCELLED
        assert stored.cancelled_at == "2025-10-06 12:00:00"

    def test_unknown_action(self, db, clock, user):
        service = _service(db, clock)
        _create(service, user)
        result = service.apply_modification(user.id, ModifyRequest("mom", "teleport"))
        assert result == ModifyResult(False, "Unknown action: teleport")

    def test_no_match(self, db, clock, user):
        service = _service(db, clock)
        result = service.apply_modification(user.id, ModifyRequest("dentist", "cancel"))
        assert not result.success
        assert result.message == 'No reminder found with description containing "dentist"'

    def test_prefers_pending_over_newer_closed(self, db, clock, user):
        service = _service(db, clock)
        pending = _create(service, user, "Pay rent")
        clock.now += timedelta(minutes=5)
        closed = _create(service, user, "Pay rent again")
        service.complete(user.id, closed.id)
        assert service.find_by_title(user.id, "pay rent").id == pending.id

    def test_other_users_reminders_are_invisible(self, db, clock, users, user):
        service = _service(db, clock)
        _create(service, user)
        other = users.get_or_create(2002)
        result = service.apply_modification(other.id, ModifyRequest("mom", "cancel"))
        assert not result.success

    @pytest.mark.asyncio
    async def test_handle_request_dispatches_modify(self, db, clock, user):
        service = _service(db, clock)
        _create(service, user)
        service._adapter.generate_json.return_value = {
            "intent": "modify_reminder",
            "confidence": 80,
            "reminderTitle": "mom",
            "action": "complete",
        }
        result = await service.handle_request(user.id, "I called mom")
        assert isinstance(result, ModifyResult)
        assert result.reminder.status is ReminderStatus.COMPLETED


class TestListing:
    def test_today_filter_uses_calendar_day(self, db, clock, user):
        service = _service(db, clock)
        tonight = _create(service, user, "Tonight", "2025-10-06 23:59:00")
        _create(service, user, "Tomorrow", "2025-10-07 00:00:00")

        today = service.list_reminders(user.id, ReminderFilter.TODAY)
        assert [r.id for r in today] == [tonight.id]
        assert service.count_pending_today(user.id) == 1

    def test_status_filters(self, db, clock, user):
        service = _service(db, clock)
        first = _create(service, user, "A", "2025-10-06 13:00:00")
        second = _create(service, user, "B", "2025-10-06 14:00:00")
        service.complete(user.id, first.id)

        assert [r.id for r in service.list_reminders(user.id)] == [second.id]
        assert [r.id for r in service.list_reminders(user.id, "completed")] == [first.id]
        assert len(service.list_reminders(user.id, ReminderFilter.ALL)) == 2

    def test_unknown_filter(self, db, clock, user):
        with pytest.raises(ValueError):
            _service(db, clock).list_reminders(user.id, "someday")


class TestButtons:
    def test_snooze_moves_time_forward(self, db, clock, user):
        service = _service(db, clock)
        reminder = _create(service, user)
        snoozed = service.snooze(user.id, reminder.id, 15)
        assert snoozed.remind_at == "2025-10-06 12:15:00"
        assert snoozed.status is ReminderStatus.PENDING

    def test_snooze_ignores_cancelled_and_missing(self, db, clock, user):
        service = _service(db, clock)
        reminder = _create(service, user)
        service.apply_modification(user.id, ModifyRequest("mom", "cancel"))
        assert service.snooze(user.id, reminder.id, 15) is None
        assert service.snooze(user.id, 9999, 15) is None

    def test_complete_is_idempotent(self, db, clock, user):
        service = _service(db, clock)
        reminder = _create(service, user)
        first = service.complete(user.id, reminder.id)
        clock.now += timedelta(hours=1)
        second = service.complete(user.id, reminder.id)
        assert first.completed_at == second.completed_at == "2025-10-06 12:00:00"


class TestDeliverySweep:
    @pytest.mark.asyncio
    async def test_due_reminders_sent_once(self, db, clock, user):
        service = _service(db, clock)
        due = _create(service, user, "Due", "2025-10-06 11:59:00")
        _create(service, user, "Later", "2025-10-06 12:30:00")
        notify = AsyncMock()

        first = await service.deliver_due(notify)
        second = await service.deliver_due(notify)

        assert first.sent == [due.id]
        assert second.due == 0
        notify.assert_awaited_once()
        chat_id, sent = notify.await_args.args
        assert chat_id == user.telegram_id
        assert sent.description == "Due"
        assert service.get(user.id, due.id).status is ReminderStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_send_failure_keeps_reminder_pending(self, db, clock, user):
        service = _service(db, clock)
        failing = _create(service, user, "Fails", "2025-10-06 11:00:00")
        works = _create(service, user, "Works", "2025-10-06 11:30:00")

        async def notify(chat_id, reminder):
            if reminder.id == failing.id:
                raise RuntimeError("telegram down")

        report = await service.deliver_due(notify)
        assert report.failed == [failing.id]
        assert report.sent == [works.id]
        assert service.get(user.id, failing.id).status is ReminderStatus.PENDING

    @pytest.mark.asyncio
    async def test_status_update_failure_is_reported(self, db, clock, user):
        service = _service(db, clock)
        reminder = _create(service, user, "Due", "2025-10-06 11:00:00")
        notify = AsyncMock()

        with patch.object(db, "execute", side_effect=sqlite3.OperationalError("database is locked")):
            report = await service.deliver_due(notify)

        assert report.sent == [reminder.id]
        assert report.unmarked == [reminder.id]
        assert service.get(user.id, reminder.id).status is ReminderStatus.PENDING

    @pytest.mark.asyncio
    async def test_cancelled_reminders_are_not_sent(self, db, clock, user):
        service = _service(db, clock)
        _create(service, user, "Old", "2025-10-06 10:00:00")
        service.apply_modification(user.id, ModifyRequest("old", "cancel"))
        notify = AsyncMock()
        report = await service.deliver_due(notify)
        assert report.due == 0
        notify.assert_not_awaited()

    def test_due_uses_clock(self, db, clock, user):
        service = _service(db, clock)
        _create(service, user, "Later", "2025-10-06 18:00:00")
        assert service.due() == []
        clock.now = datetime(2025, 10, 6, 18, 0, tzinfo=UTC)
        assert len(service.due()) == 1
