from datetime import date, datetime
from types import SimpleNamespace

import pytest
from dateutil import tz

from healthpal import reminders
from healthpal.domain.notifications.service import ReminderType

VIETNAM = tz.gettz("Asia/Ho_Chi_Minh")


def test_appointment_start_is_in_clinic_timezone():
    start = reminders.appointment_start(date(2030, 1, 15), "09:30")
    assert start.utcoffset().total_seconds() == 7 * 3600
    assert (start.hour, start.minute) == (9, 30)


def test_all_three_reminders_when_far_ahead():
    now = datetime(2030, 1, 10, 8, 0, tzinfo=VIETNAM)
    schedule = reminders.reminder_schedule(date(2030, 1, 15), "09:30", now=now)

    assert [(t, at.strftime("%d %H:%M")) for t, at in schedule] == [
        (ReminderType.APPOINTMENT_24H, "14 09:30"),
        (ReminderType.APPOINTMENT_1H, "15 08:30"),
        (ReminderType.APPOINTMENT_15M, "15 09:15"),
    ]


def test_past_reminders_are_dropped():
    now = datetime(2030, 1, 15, 9, 0, tzinfo=VIETNAM)
    schedule = reminders.reminder_schedule(date(2030, 1, 15), "09:30", now=now)
    assert [t for t, _ in schedule] == [ReminderType.APPOINTMENT_15M]


def test_nothing_left_for_started_appointment():
    now = datetime(2030, 1, 15, 9, 31, tzinfo=VIETNAM)
    assert reminders.reminder_schedule(date(2030, 1, 15), "09:30", now=now) == []


def test_job_id_is_stable_per_appointment_and_type():
    assert reminders.reminder_job_id("a-1", ReminderType.APPOINTMENT_1H) == "reminder:a-1:APPOINTMENT_1H"


@pytest.mark.asyncio
async def test_disabled_reminders_queue_nothing():
    appointment = SimpleNamespace(id="a-1", appointment_date=date(2099, 1, 1), start_time="09:00")
    assert await reminders.enqueue_appointment_reminders(appointment) == []


@pytest.mark.asyncio
async def test_enqueue_uses_deferred_jobs(monkeypatch):
    queued = []

    class FakePool:
        async def enqueue_job(self, function, *args, _job_id=None, _defer_until=None):
            queued.append((function, args, _job_id, _defer_until))
            return object()

        async def close(self):
            queued.append("closed")

    async def fake_create_pool(settings):
        return FakePool()

    monkeypatch.setattr(reminders, "REMINDERS_ENABLED", True)
    monkeypatch.setattr(reminders, "create_pool", fake_create_pool)
    appointment = SimpleNamespace(id="a-1", appointment_date=date(2099, 1, 1), start_time="09:00")

    job_ids = await reminders.enqueue_appointment_reminders(appointment)

    assert job_ids == [
        "reminder:a-1:APPOINTMENT_24H",
        "reminder:a-1:APPOINTMENT_1H",
        "reminder:a-1:APPOINTMENT_15M",
    ]
    assert queued[0][0] == "send_appointment_reminder_task"
    assert queued[0][1] == ("a-1", "APPOINTMENT_24H")
    assert queued[-1] == "closed"
