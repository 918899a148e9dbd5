"""
Appointment Service - appointments owned by a user at users/{userId}/appointments
"""

from typing import Any, Callable, Dict, List, Optional
import logging

from ..core.clock import now_iso
from ..database.gateway import Subscription, get_gateway
from ..database.paths import COLLECTIONS, path_for
from ..models.database_models import Appointment, AppointmentStatus

logger = logging.getLogger(__name__)

# Timestamp field stamped together with each status
STATUS_TIMESTAMPS = {
    AppointmentStatus.COMPLETED: 'completedAt',
    AppointmentStatus.CANCELLED: 'cancelledAt',
}


def parse_appointments(raw: Optional[Dict[str, Any]]) -> List[Appointment]:
    appointments = []
    for appointment_id, data in (raw or {}).items():
        if not isinstance(data, dict):
            continue
        try:
            appointments.append(Appointment.model_validate({**data, 'id': appointment_id}))
        except Exception as e:
            logger.warning(f"Skipping malformed appointment {appointment_id}: {e}")
    appointments.sort(key=lambda a: a.timestamps.created_at or "", reverse=True)
    return appointments


def filter_by_status(appointments: List[Appointment], status: Optional[str] = None) -> List[Appointment]:
    """`None` or "all" keeps everything."""
    if not status or status == "all":
        return list(appointments)
    wanted = AppointmentStatus(status)
    return [a for a in appointments if a.status == wanted]


class AppointmentService:
    def __init__(self, gateway=None):
        self.db = gateway or get_gateway()

    async def create_appointment(self, user_id: str, appointment: Appointment) -> Appointment:
        """New appointments always start as `upcoming`."""
        now = now_iso()
        data = appointment.model_copy(deep=True)
        data.id = None
        data.appointment_details.status = AppointmentStatus.UPCOMING
        data.timestamps.created_at = now
        data.timestamps.updated_at = now
        data.timestamps.scheduled_at = data.timestamps.scheduled_at or now
        data.timestamps.completed_at = None
        data.timestamps.cancelled_at = None

        appointment_id = await self.db.create(
            path_for('appointments', user_id=user_id),
            data.to_store()
        )
        data.id = appointment_id
        logger.info(f"Created appointment {appointment_id} for user {user_id} with doctor {data.doctor_id}")
        return data

    async def get_appointment(self, user_id: str, appointment_id: str) -> Optional[Appointment]:
        data = await self.db.read(path_for('appointment', user_id=user_id, appointment_id=appointment_id))
        if not data:
            return None
        return Appointment.model_validate({**data, 'id': appointment_id})

    async def list_appointments(self, user_id: str, status: Optional[str] = None) -> List[Appointment]:
        raw = await self.db.list(path_for('appointments', user_id=user_id))
        return filter_by_status(parse_appointments(raw), status)

    async def update_status(self, user_id: str, appointment_id: str, status: AppointmentStatus) -> None:
        """Status and its paired timestamp go out in one merge."""
        status = AppointmentStatus(status)
        now = now_iso()
        updates = {
            'appointmentDetails/status': status.value,
            'timestamps/updatedAt': now,
        }
        paired = STATUS_TIMESTAMPS.get(status)
        if paired:
            updates[f'timestamps/{paired}'] = now

        await self.db.update(
            path_for('appointment', user_id=user_id, appointment_id=appointment_id),
            updates
        )
        logger.info(f"Appointment {appointment_id} of user {user_id} -> {status.value}")

    async def cancel(self, user_id: str, appointment_id: str, admin_note: Optional[str] = None) -> None:
        if admin_note is None:
            await self.update_status(user_id, appointment_id, AppointmentStatus.CANCELLED)
            return
        now = now_iso()
        await self.db.update(
            path_for('appointment', user_id=user_id, appointment_id=appointment_id),
            {
                'appointmentDetails/status': AppointmentStatus.CANCELLED.value,
                'timestamps/updatedAt': now,
                'timestamps/cancelledAt': now,
                'notes/adminNotes': admin_note,
            }
        )
        logger.info(f"Appointment {appointment_id} of user {user_id} cancelled: {admin_note}")

    async def complete(self, user_id: str, appointment_id: str) -> None:
        await self.update_status(user_id, appointment_id, AppointmentStatus.COMPLETED)

    async def reschedule(self, user_id: str, appointment_id: str, new_date: str, new_time_slot: str) -> None:
        await self.db.update(
            path_for('appointment', user_id=user_id, appointment_id=appointment_id),
            {
                'appointmentDetails/date': new_date,
                'appointmentDetails/timeSlot': new_time_slot,
                'appointmentDetails/status': AppointmentStatus.UPCOMING.value,
                'timestamps/updatedAt': now_iso(),
            }
        )

    async def mark_reminder_sent(self, user_id: str, appointment_id: str, *flags: str) -> None:
        await self.db.update(
            path_for('appointment', user_id=user_id, appointment_id=appointment_id),
            {f'reminders/{flag}': True for flag in flags}
        )

    async def watch_appointments(
        self,
        user_id: str,
        on_change: Callable[[List[Appointment]], Any]
    ) -> Subscription:
        return await self.db.subscribe(
            path_for('appointments', user_id=user_id),
            lambda raw: on_change(parse_appointments(raw))
        )

    async def get_appointments_by_doctor(self, doctor_id: str) -> List[Dict[str, Any]]:
        """Admin view: scan every user's appointments for one doctor."""
        users = await self.db.list(COLLECTIONS['users'])
        results = []
        for user_id, user in users.items():
            if not isinstance(user, dict):
                continue
            for appointment in parse_appointments(user.get('appointments')):
                if appointment.doctor_id == doctor_id:
                    results.append({'user_id': user_id, 'appointment': appointment})
        return results

    async def list_all_upcoming(self) -> List[Dict[str, Any]]:
        """Every `upcoming` appointment across users (reminder scan)."""
        users = await self.db.list(COLLECTIONS['users'])
        results = []
        for user_id, user in users.items():
            if not isinstance(user, dict):
                continue
            for appointment in parse_appointments(user.get('appointments')):
                if appointment.status == AppointmentStatus.UPCOMING:
                    results.append({'user_id': user_id, 'appointment': appointment})
        return results


# Singleton instance
_appointment_service = None

def get_appointment_service() -> AppointmentService:
    global _appointment_service
    if _appointment_service is None:
        _appointment_service = AppointmentService()
    return _appointment_service
