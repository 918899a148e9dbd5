"""
Booking Workflow - from a free doctor slot to a booked appointment.

    FREE -> SELECTED -> CONFIRMING -> COMMITTING -> BOOKED
                                               `-> FAILED_ROLLBACK_NEEDED

Selection and the confirmation form are local only. Committing writes the
appointment first and then reserves the slot with an atomic conditional
transaction, so two patients can never both hold the same slot:

* slot already taken before any write   -> SlotUnavailableError, nothing written
* appointment write fails               -> error propagates, slot untouched
* slot taken between the two writes     -> our appointment is marked cancelled
                                           (never deleted), SlotUnavailableError
* slot write fails for any other reason -> BOOKING_PARTIAL_FAILURE logged,
                                           BookingPartialFailure, no rollback
"""

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Optional
import logging

from pydantic import BaseModel

from ..core.config import settings
from ..core.exceptions import BookingPartialFailure, BookingValidationError, SlotUnavailableError
from ..database.paths import WEEKDAYS
from ..models.database_models import (
    Appointment, AppointmentDetails, AppointmentNotes, AppointmentType, Doctor, PatientInfo
)
from ..models.user import Session, UserProfile
from .doctor_service import find_slot

logger = logging.getLogger(__name__)

CONFLICT_NOTE = "Auto-cancelled: the time slot was booked by another patient while this booking was in progress"


class BookingState(str, Enum):
    FREE = "free"
    SELECTED = "selected"
    CONFIRMING = "confirming"
    COMMITTING = "committing"
    BOOKED = "booked"
    FAILED_ROLLBACK_NEEDED = "failed_rollback_needed"


@dataclass(frozen=True)
class SlotSelection:
    doctor_id: str
    day: str
    slot_id: str


class BookingForm(BaseModel):
    patient_name: str = ""
    phone_number: str = ""
    email: str = ""
    reason_for_visit: str = ""

    def missing_fields(self):
        return [
            name for name in ('patient_name', 'phone_number', 'email')
            if not getattr(self, name).strip()
        ]


def next_date_for_weekday(day: str, today: Optional[date] = None) -> str:
    """MM/DD/YYYY of the next `day` (today counts). Unknown day names fall back to today."""
    today = today or date.today()
    try:
        target = WEEKDAYS.index(day.lower())
    except ValueError:
        return today.strftime('%m/%d/%Y')
    ahead = (target - today.weekday()) % 7
    return (today + timedelta(days=ahead)).strftime('%m/%d/%Y')


class BookingWorkflow:
    def __init__(
        self,
        session: Optional[Session],
        doctor_service,
        appointment_service,
        notification_service=None,
        analytics_service=None,
        profile: Optional[UserProfile] = None
    ):
        self.session = session
        self.doctors = doctor_service
        self.appointments = appointment_service
        self.notifications = notification_service
        self.analytics = analytics_service
        self.profile = profile

        self.state = BookingState.FREE
        self.selection: Optional[SlotSelection] = None
        self.form = BookingForm()
        self.appointment: Optional[Appointment] = None

    # ===== Local transitions =====

    def select_slot(self, doctor_id: str, day: str, slot_id: str, doctor: Optional[Doctor] = None) -> bool:
        """
        Remember the clicked slot. When a doctor snapshot is given, slots it shows
        as taken are ignored. Returns whether the selection was taken.
        """
        if self.state == BookingState.COMMITTING:
            return False
        if doctor is not None:
            slot = find_slot(doctor, day, slot_id)
            if slot is None or not slot.available:
                return False

        self.selection = SlotSelection(doctor_id, day, slot_id)
        self.state = BookingState.SELECTED
        return True

    def open_confirmation(self) -> BookingForm:
        """Open the form, pre-filled from the session and profile when known."""
        if self.selection is None:
            raise BookingValidationError("Please select a doctor and time slot")

        if self.profile:
            self.form = BookingForm(
                patient_name=self.profile.display_name or "",
                phone_number=self.profile.phone_number or "",
                email=self.profile.email or "",
            )
        elif self.session:
            self.form = BookingForm(
                patient_name=self.session.display_name or "",
                email=self.session.email or "",
            )
        else:
            self.form = BookingForm()
        self.state = BookingState.CONFIRMING
        return self.form

    def update_form(self, **fields) -> BookingForm:
        unknown = set(fields) - set(BookingForm.model_fields)
        if unknown:
            raise BookingValidationError(f"Unknown form field(s): {', '.join(sorted(unknown))}")
        self.form = self.form.model_copy(update={k: (v or "") for k, v in fields.items()})
        return self.form

    def reset(self):
        """Close the form and drop the selection."""
        self.state = BookingState.FREE
        self.selection = None
        self.form = BookingForm()

    # ===== Commit =====

    def _validate(self):
        if self.session is None:
            raise BookingValidationError("Please log in to book an appointment")
        if self.selection is None:
            raise BookingValidationError("Please select a doctor and time slot")
        if self.form.missing_fields():
            raise BookingValidationError("Please fill in all required fields")

    def _build_appointment(self, time_label: str) -> Appointment:
        selection = self.selection
        reason = self.form.reason_for_visit.strip()
        return Appointment(
            doctor_id=selection.doctor_id,
            appointment_details=AppointmentDetails(
                date=next_date_for_weekday(selection.day),
                time_slot=time_label,
                duration=30,
                type=AppointmentType.CONSULTATION,
                location=settings.HOSPITAL_LOCATION,
                room_number=settings.DEFAULT_ROOM,
            ),
            patient_info=PatientInfo(
                name=self.form.patient_name.strip(),
                phone_number=self.form.phone_number.strip(),
                email=self.form.email.strip(),
                reason_for_visit=reason,
                priority="normal",
            ),
            notes=AppointmentNotes(patient_notes=reason),
        )

    async def confirm(self) -> Appointment:
        """
        Commit the booking. Validation errors leave the form open with no remote
        call made; see the module docstring for the failure outcomes.
        """
        self._validate()
        if self.state == BookingState.COMMITTING:
            raise BookingValidationError("A booking is already in progress")

        uid = self.session.uid
        selection = self.selection
        slot_ref = f"{selection.doctor_id}/{selection.day}/{selection.slot_id}"
        self.state = BookingState.COMMITTING

        try:
            slot = await self.doctors.get_time_slot(selection.doctor_id, selection.day, selection.slot_id)
        except Exception:
            self.state = BookingState.CONFIRMING
            raise
        if slot is None or not slot.available:
            logger.info(f"[Booking] Slot {slot_ref} already taken; nothing written")
            self.reset()
            raise SlotUnavailableError(selection.doctor_id, selection.day, selection.slot_id)

        try:
            appointment = await self.appointments.create_appointment(uid, self._build_appointment(slot.time))
        except Exception as e:
            logger.error(f"[Booking] Appointment write failed for {uid} on {slot_ref}: {e}")
            self.state = BookingState.CONFIRMING
            raise

        try:
            await self.doctors.reserve_time_slot(selection.doctor_id, selection.day, selection.slot_id, uid)
        except SlotUnavailableError:
            await self._cancel_conflicting(uid, appointment.id, slot_ref)
            self.reset()
            raise SlotUnavailableError(
                selection.doctor_id, selection.day, selection.slot_id, appointment_id=appointment.id
            )
        except Exception as e:
            logger.error(
                f"BOOKING_PARTIAL_FAILURE appointment={appointment.id} user={uid} slot={slot_ref}: {e}"
            )
            self.appointment = appointment
            self.state = BookingState.FAILED_ROLLBACK_NEEDED
            raise BookingPartialFailure(appointment.id, e) from e

        logger.info(f"[Booking] {uid} booked {slot_ref} as appointment {appointment.id}")
        self.appointment = appointment
        self.state = BookingState.BOOKED
        self.selection = None
        self.form = BookingForm()

        await self._after_booking(uid, appointment)
        return appointment

    async def _cancel_conflicting(self, uid: str, appointment_id: str, slot_ref: str):
        try:
            await self.appointments.cancel(uid, appointment_id, admin_note=CONFLICT_NOTE)
            logger.warning(f"[Booking] Lost race for {slot_ref}; appointment {appointment_id} cancelled")
        except Exception as e:
            logger.error(
                f"BOOKING_PARTIAL_FAILURE appointment={appointment_id} user={uid} slot={slot_ref}: "
                f"lost the slot and could not cancel the appointment: {e}"
            )

    async def _after_booking(self, uid: str, appointment: Appointment):
        """Confirmation notification and counters; failures here never undo a booking."""
        if self.notifications is not None:
            details = appointment.appointment_details
            try:
                await self.notifications.create_notification(
                    uid,
                    title="Appointment confirmed",
                    message=f"Your appointment on {details.date} at {details.time_slot} is confirmed.",
                    notification_type="appointment_reminder",
                    data={'appointmentId': appointment.id, 'doctorId': appointment.doctor_id},
                )
            except Exception as e:
                logger.warning(f"[Booking] Confirmation notification failed for {appointment.id}: {e}")

        if self.analytics is not None:
            await self.analytics.increment('appointments_total')
