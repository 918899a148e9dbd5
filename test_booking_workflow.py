"""
Booking workflow against the in-memory gateway seeded with the sample doctors.
doctor_001 has monday slot2 at 10:30 AM.
"""
from datetime import date

import pytest

from conftest import FakeGateway
from patient_portal.core.exceptions import (
    BookingPartialFailure, BookingValidationError, GatewayError, SlotUnavailableError
)
from patient_portal.database.seed import initialize_database
from patient_portal.models.database_models import AppointmentStatus
from patient_portal.services.analytics_service import AnalyticsService, today_key
from patient_portal.services.appointment_service import AppointmentService
from patient_portal.services.booking_workflow import (
    CONFLICT_NOTE, BookingState, BookingWorkflow, next_date_for_weekday
)
from patient_portal.services.doctor_service import DoctorService
from patient_portal.services.notification_service import NotificationService

SLOT_PATH = "doctors/doctor_001/schedule/monday/timeSlots/slot2"
APPOINTMENTS_PATH = "users/user_1/appointments"


async def seeded_gateway():
    gateway = FakeGateway()
    await initialize_database(gateway)
    gateway.writes.clear()
    return gateway


def make_workflow(gateway, session, **overrides):
    kwargs = dict(
        notification_service=NotificationService(gateway),
        analytics_service=AnalyticsService(gateway),
    )
    kwargs.update(overrides)
    return BookingWorkflow(session, DoctorService(gateway), AppointmentService(gateway), **kwargs)


def fill_form(workflow):
    workflow.open_confirmation()
    workflow.update_form(phone_number="+1555000111", reason_for_visit="Chest pain follow-up")


class RacingDoctorService(DoctorService):
    """Another patient takes the slot between our pre-check and our reservation"""

    async def reserve_time_slot(self, doctor_id, day, slot_id, user_id):
        await self.update_time_slot(doctor_id, day, slot_id, available=False, booked_by="user_2")
        return await super().reserve_time_slot(doctor_id, day, slot_id, user_id)


@pytest.mark.asyncio
async def test_successful_booking_reserves_slot_and_records_appointment(patient_session):
    gateway = await seeded_gateway()
    workflow = make_workflow(gateway, patient_session)

    assert workflow.select_slot("doctor_001", "monday", "slot2")
    fill_form(workflow)
    assert workflow.form.patient_name == "Pat Doe"
    assert workflow.form.email == "pat@example.com"

    appointment = await workflow.confirm()

    assert workflow.state == BookingState.BOOKED
    assert workflow.selection is None
    stored = gateway.get(f"{APPOINTMENTS_PATH}/{appointment.id}")
    assert stored['doctorId'] == "doctor_001"
    assert stored['appointmentDetails']['timeSlot'] == "10:30 AM"
    assert stored['appointmentDetails']['status'] == "upcoming"
    assert stored['appointmentDetails']['date'] == next_date_for_weekday("monday")
    assert stored['patientInfo']['phoneNumber'] == "+1555000111"
    assert stored['notes']['patientNotes'] == "Chest pain follow-up"

    slot = gateway.get(SLOT_PATH)
    assert slot['available'] is False
    assert slot['bookedBy'] == "user_1"

    notifications = gateway.get("users/user_1/notifications")
    assert len(notifications) == 1
    assert list(notifications.values())[0]['type'] == "appointment_reminder"
    assert gateway.get(f"analytics/dailyStats/{today_key()}")['appointments']['total'] == 1


@pytest.mark.asyncio
async def test_appointment_is_written_before_the_slot(patient_session):
    gateway = await seeded_gateway()
    workflow = make_workflow(gateway, patient_session)
    workflow.select_slot("doctor_001", "monday", "slot2")
    fill_form(workflow)

    await workflow.confirm()

    operations = [op for op, path in gateway.writes if path.startswith(APPOINTMENTS_PATH) or path == SLOT_PATH]
    assert operations == ['create', 'transaction']


@pytest.mark.asyncio
async def test_appointment_write_failure_leaves_slot_untouched(patient_session):
    gateway = await seeded_gateway()
    gateway.fail('create', APPOINTMENTS_PATH)
    workflow = make_workflow(gateway, patient_session)
    workflow.select_slot("doctor_001", "monday", "slot2")
    fill_form(workflow)

    with pytest.raises(GatewayError):
        await workflow.confirm()

    assert workflow.state == BookingState.CONFIRMING
    assert gateway.get(SLOT_PATH)['available'] is True
    assert gateway.writes_under("doctors") == []


@pytest.mark.asyncio
async def test_slot_write_failure_is_a_partial_failure(patient_session, caplog):
    gateway = await seeded_gateway()
    gateway.fail('transaction', SLOT_PATH)
    workflow = make_workflow(gateway, patient_session)
    workflow.select_slot("doctor_001", "monday", "slot2")
    fill_form(workflow)

    with pytest.raises(BookingPartialFailure) as exc_info:
        await workflow.confirm()

    appointment_id = exc_info.value.appointment_id
    assert workflow.state == BookingState.FAILED_ROLLBACK_NEEDED
    # Not rolled back
    assert gateway.get(f"{APPOINTMENTS_PATH}/{appointment_id}") is not None
    assert gateway.get(SLOT_PATH)['available'] is True
    assert f"BOOKING_PARTIAL_FAILURE appointment={appointment_id}" in caplog.text


@pytest.mark.asyncio
async def test_losing_the_race_cancels_our_appointment(patient_session):
    gateway = await seeded_gateway()
    workflow = make_workflow(gateway, patient_session, analytics_service=None)
    workflow.doctors = RacingDoctorService(gateway)
    workflow.select_slot("doctor_001", "monday", "slot2")
    fill_form(workflow)

    with pytest.raises(SlotUnavailableError) as exc_info:
        await workflow.confirm()

    appointment = gateway.get(f"{APPOINTMENTS_PATH}/{exc_info.value.appointment_id}")
    assert appointment['appointmentDetails']['status'] == "cancelled"
    assert appointment['notes']['adminNotes'] == CONFLICT_NOTE
    assert gateway.get(SLOT_PATH)['bookedBy'] == "user_2"
    assert workflow.state == BookingState.FREE


@pytest.mark.asyncio
async def test_taken_slot_is_rejected_before_any_write(patient_session):
    gateway = await seeded_gateway()
    await DoctorService(gateway).update_time_slot("doctor_001", "monday", "slot2", False, "user_2")
    gateway.writes.clear()

    workflow = make_workflow(gateway, patient_session)
    workflow.select_slot("doctor_001", "monday", "slot2")
    fill_form(workflow)

    with pytest.raises(SlotUnavailableError) as exc_info:
        await workflow.confirm()

    assert exc_info.value.appointment_id is None
    assert gateway.writes == []
    assert workflow.state == BookingState.FREE


@pytest.mark.asyncio
async def test_second_patient_cannot_book_the_same_slot(patient_session):
    from patient_portal.models.user import Session

    gateway = await seeded_gateway()
    first = make_workflow(gateway, patient_session)
    first.select_slot("doctor_001", "monday", "slot2")
    fill_form(first)
    await first.confirm()

    other = Session(uid="user_2", email="sam@example.com", display_name="Sam Roe")
    second = make_workflow(gateway, other)
    second.select_slot("doctor_001", "monday", "slot2")
    fill_form(second)
    with pytest.raises(SlotUnavailableError):
        await second.confirm()

    assert gateway.get("users/user_2/appointments") is None
    assert gateway.get(SLOT_PATH)['bookedBy'] == "user_1"


@pytest.mark.asyncio
async def test_validation_happens_before_any_remote_call(patient_session):
    gateway = await seeded_gateway()

    anonymous = make_workflow(gateway, None)
    anonymous.select_slot("doctor_001", "monday", "slot2")
    anonymous.open_confirmation()
    with pytest.raises(BookingValidationError, match="Please log in to book an appointment"):
        await anonymous.confirm()

    incomplete = make_workflow(gateway, patient_session)
    incomplete.select_slot("doctor_001", "monday", "slot2")
    incomplete.open_confirmation()  # no phone number in the session
    with pytest.raises(BookingValidationError, match="Please fill in all required fields"):
        await incomplete.confirm()
    assert incomplete.state == BookingState.CONFIRMING

    unselected = make_workflow(gateway, patient_session)
    with pytest.raises(BookingValidationError, match="Please select a doctor and time slot"):
        await unselected.confirm()

    assert gateway.writes == []


@pytest.mark.asyncio
async def test_selecting_a_slot_shown_as_taken_is_ignored(patient_session):
    gateway = await seeded_gateway()
    doctor_service = DoctorService(gateway)
    await doctor_service.update_time_slot("doctor_001", "monday", "slot3", False, "user_2")
    doctor = await doctor_service.get_doctor("doctor_001")

    workflow = make_workflow(gateway, patient_session)
    assert workflow.select_slot("doctor_001", "monday", "slot3", doctor=doctor) is False
    assert workflow.state == BookingState.FREE
    assert workflow.select_slot("doctor_001", "monday", "slot2", doctor=doctor) is True


@pytest.mark.asyncio
async def test_book_cancel_then_filter(patient_session):
    gateway = await seeded_gateway()
    workflow = make_workflow(gateway, patient_session)
    workflow.select_slot("doctor_001", "monday", "slot2")
    fill_form(workflow)
    appointment = await workflow.confirm()

    appointments = AppointmentService(gateway)
    await appointments.cancel("user_1", appointment.id)

    assert await appointments.list_appointments("user_1", "upcoming") == []
    everything = await appointments.list_appointments("user_1", "all")
    assert len(everything) == 1
    assert everything[0].status == AppointmentStatus.CANCELLED
    assert everything[0].timestamps.cancelled_at is not None
    # Cancelling does not free the slot
    assert gateway.get(SLOT_PATH)['available'] is False


def test_next_date_for_weekday():
    wednesday = date(2025, 1, 1)
    assert next_date_for_weekday("monday", today=wednesday) == "01/06/2025"
    assert next_date_for_weekday("wednesday", today=wednesday) == "01/01/2025"
    assert next_date_for_weekday("someday", today=wednesday) == "01/01/2025"
