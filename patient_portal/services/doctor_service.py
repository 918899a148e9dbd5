"""
Doctor Service - doctor profiles, weekly schedules and time-slot availability
"""

from typing import Any, Callable, Dict, List, Optional
import logging

from ..core.exceptions import SlotUnavailableError
from ..database.gateway import Subscription, get_gateway
from ..database.paths import COLLECTIONS, path_for
from ..models.database_models import Doctor, DoctorStatus, TimeSlot

logger = logging.getLogger(__name__)


def parse_doctors(raw: Optional[Dict[str, Any]]) -> Dict[str, Doctor]:
    """Turn a raw `doctors` node into typed models keyed by doctor id."""
    doctors = {}
    for doctor_id, data in (raw or {}).items():
        if not isinstance(data, dict) or 'profile' not in data:
            continue
        try:
            doctors[doctor_id] = Doctor.model_validate({**data, 'id': doctor_id})
        except Exception as e:
            logger.warning(f"Skipping malformed doctor {doctor_id}: {e}")
    return doctors


class DoctorService:
    """Read doctors and mutate their availability"""

    def __init__(self, gateway=None):
        self.db = gateway or get_gateway()

    async def list_doctors(self) -> Dict[str, Doctor]:
        raw = await self.db.list(COLLECTIONS['doctors'])
        return parse_doctors(raw)

    async def get_doctor(self, doctor_id: str) -> Optional[Doctor]:
        data = await self.db.read(path_for('doctor', doctor_id=doctor_id))
        if not data:
            return None
        return Doctor.model_validate({**data, 'id': doctor_id})

    async def get_doctors_by_department(self, department: str) -> Dict[str, Doctor]:
        raw = await self.db.query_by_child(COLLECTIONS['doctors'], 'profile/department', department)
        return parse_doctors(raw)

    async def update_doctor_status(self, doctor_id: str, status: DoctorStatus) -> None:
        await self.db.update(
            path_for('doctor_profile', doctor_id=doctor_id),
            {'status': DoctorStatus(status).value}
        )
        logger.info(f"Doctor {doctor_id} status set to {DoctorStatus(status).value}")

    async def get_time_slot(self, doctor_id: str, day: str, slot_id: str) -> Optional[TimeSlot]:
        data = await self.db.read(path_for('time_slot', doctor_id=doctor_id, day=day, slot_id=slot_id))
        return TimeSlot.model_validate(data) if data else None

    async def update_time_slot(
        self,
        doctor_id: str,
        day: str,
        slot_id: str,
        available: bool,
        booked_by: Optional[str] = None
    ) -> None:
        """Set `available` and `bookedBy` together in one merge."""
        await self.db.update(
            path_for('time_slot', doctor_id=doctor_id, day=day, slot_id=slot_id),
            {'available': available, 'bookedBy': booked_by}
        )

    async def reserve_time_slot(self, doctor_id: str, day: str, slot_id: str, user_id: str) -> TimeSlot:
        """
        Atomically mark a slot booked by `user_id`, only if it is currently available.
        Raises SlotUnavailableError when the slot is missing or already taken.
        """

        def _reserve(current):
            if not isinstance(current, dict) or not current.get('available', False):
                raise SlotUnavailableError(doctor_id, day, slot_id)
            return {**current, 'available': False, 'bookedBy': user_id}

        result = await self.db.transaction(
            path_for('time_slot', doctor_id=doctor_id, day=day, slot_id=slot_id),
            _reserve
        )
        logger.info(f"Slot {doctor_id}/{day}/{slot_id} reserved by {user_id}")
        return TimeSlot.model_validate(result)

    async def release_time_slot(self, doctor_id: str, day: str, slot_id: str) -> None:
        await self.update_time_slot(doctor_id, day, slot_id, available=True, booked_by=None)

    async def watch_doctors(self, on_change: Callable[[Dict[str, Doctor]], Any]) -> Subscription:
        """Full doctor list on every change beneath `doctors`."""
        return await self.db.subscribe(
            COLLECTIONS['doctors'],
            lambda raw: on_change(parse_doctors(raw))
        )


def find_slot(doctor: Doctor, day: str, slot_id: str) -> Optional[TimeSlot]:
    schedule = doctor.schedule.get(day)
    if not schedule:
        return None
    return schedule.time_slots.get(slot_id)


def available_slots(doctor: Doctor, day: str) -> List[tuple]:
    """(slot_id, TimeSlot) pairs still open on `day`, in slot-id order."""
    schedule = doctor.schedule.get(day)
    if not schedule or not schedule.is_available:
        return []
    return [(sid, slot) for sid, slot in sorted(schedule.time_slots.items()) if slot.available]


# Singleton instance
_doctor_service = None

def get_doctor_service() -> DoctorService:
    global _doctor_service
    if _doctor_service is None:
        _doctor_service = DoctorService()
    return _doctor_service
