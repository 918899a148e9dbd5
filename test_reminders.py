from datetime import datetime, timedelta, timezone

import pytest

from patient_portal.core.config import settings
from patient_portal.models.database_models import (
    Appointment, AppointmentDetails, AppointmentReminders, PatientInfo
)
from patient_portal.services.appointment_service import AppointmentService
from patient_portal.services.notification_service import NotificationService
from patient_portal.services.reminder_service import ReminderService, appointment_start, due_reminder

NOW = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def utc_hospital(monkeypatch):
    monkeypatch.setattr(settings, "TZ_OFFSET", 0)


def appointment(date="03/10/2025", time_slot="10:30 AM", **reminders):
    return Appointment(
        doctor_id="doctor_001",
        appointment_details=AppointmentDetails(date=date, time_slot=time_slot, location="Main Building"),
        patient_info=PatientInfo(name="Pat Doe", phone_number="+1555000111", email="pat@example.com"),
        reminders=AppointmentReminders(**reminders),
    )


def test_appointment_start_parses_date_and_slot():
    assert appointment_start(appointment()) == datetime(2025, 3, 10, 10, 30, tzinfo=timezone.utc)
    assert appointment_start(appointment(time_slot="morning")) is None


def test_due_reminder_windows():
    # 2.5 hours away: inside the 24h window only
    assert due_reminder(appointment(), NOW) == 'sent24h'
    # 1 day and 1 hour away: nothing yet
    assert due_reminder(appointment(date="03/11/2025", time_slot="09:00 AM"), NOW) is None
    # 90 minutes away
    assert due_reminder(appointment(time_slot="09:30 AM"), NOW) == 'sent2h'
    # Already started
    assert due_reminder(appointment(time_slot="07:30 AM"), NOW) is None


def test_reminders_are_sent_once():
    assert due_reminder(appointment(sent_24h=True), NOW) is None
    assert due_reminder(appointment(time_slot="09:30 AM", sent_2h=True, sent_24h=True), NOW) is None


@pytest.mark.asyncio
async def test_send_due_reminders_notifies_and_marks(gateway):
    appointments = AppointmentService(gateway)
    soon = await appointments.create_appointment("user_1", appointment(time_slot="09:30 AM"))
    later = await appointments.create_appointment("user_2", appointment(date="04/01/2025"))

    service = ReminderService(appointments, NotificationService(gateway))
    result = await service.send_due_reminders(now=NOW)

    assert result == {'checked': 2, 'reminders_sent': 1, 'failed': 0}
    reminders = gateway.get(f"users/user_1/appointments/{soon.id}/reminders")
    assert reminders['sent2h'] is True
    assert reminders['sent24h'] is True
    assert gateway.get(f"users/user_2/appointments/{later.id}/reminders")['sent2h'] is False

    notifications = list(gateway.get("users/user_1/notifications").values())
    assert notifications[0]['type'] == "appointment_reminder"
    assert notifications[0]['priority'] == "high"

    # A second run finds nothing new
    again = await service.send_due_reminders(now=NOW)
    assert again['reminders_sent'] == 0


@pytest.mark.asyncio
async def test_failed_notification_is_counted_and_not_marked(gateway):
    appointments = AppointmentService(gateway)
    booked = await appointments.create_appointment("user_1", appointment())
    gateway.fail('create', "users/user_1/notifications")

    result = await ReminderService(appointments, NotificationService(gateway)).send_due_reminders(now=NOW)

    assert result['failed'] == 1
    assert gateway.get(f"users/user_1/appointments/{booked.id}/reminders")['sent24h'] is False


def test_slot_times_are_hospital_wall_clock():
    dhaka = timezone(timedelta(hours=6))
    start = appointment_start(appointment(), tz_offset=6)
    assert start == datetime(2025, 3, 10, 10, 30, tzinfo=dhaka)
    assert start == datetime(2025, 3, 10, 4, 30, tzinfo=timezone.utc)


def test_due_reminder_uses_configured_offset(monkeypatch):
    # 09:00 local at UTC+6 is 03:00 UTC, 90 minutes before a 10:30 AM slot
    now = datetime(2025, 3, 10, 3, 0, tzinfo=timezone.utc)
    assert due_reminder(appointment(), now) == 'sent24h'

    monkeypatch.setattr(settings, "TZ_OFFSET", 6)
    assert due_reminder(appointment(), now) == 'sent2h'


@pytest.mark.asyncio
async def test_reminder_service_offset_overrides_settings(gateway):
    appointments = AppointmentService(gateway)
    booked = await appointments.create_appointment("user_1", appointment())
    now = datetime(2025, 3, 10, 3, 0, tzinfo=timezone.utc)

    result = await ReminderService(appointments, NotificationService(gateway), tz_offset=6).send_due_reminders(now=now)

    assert result['reminders_sent'] == 1
    assert gateway.get(f"users/user_1/appointments/{booked.id}/reminders")['sent2h'] is True
