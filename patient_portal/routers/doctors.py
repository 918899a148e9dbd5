"""
Doctor Router - doctor availability and slot booking
"""

from fastapi import APIRouter, HTTPException, Depends, Query, status
from typing import Optional
from pydantic import BaseModel, Field
import logging

from ..auth.dependencies import get_current_user, require_admin
from ..core.exceptions import BookingPartialFailure, BookingValidationError, SlotUnavailableError
from ..models.database_models import DoctorStatus
from ..models.user import Session
from ..services.analytics_service import get_analytics_service
from ..services.appointment_service import get_appointment_service
from ..services.booking_workflow import BookingWorkflow
from ..services.doctor_service import available_slots, get_doctor_service
from ..services.notification_service import get_notification_service
from ..services.user_service import get_user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/doctors", tags=["doctors"])

# ===== Request Models =====

class BookSlotRequest(BaseModel):
    day: str = Field(..., description="Weekday key of the schedule, e.g. monday")
    slot_id: str
    patient_name: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    reason_for_visit: Optional[str] = None

class DoctorStatusUpdate(BaseModel):
    status: DoctorStatus

# ===== Endpoints =====

@router.get("")
async def list_doctors(department: Optional[str] = Query(None)):
    """All doctors, optionally only one department"""
    doctor_service = get_doctor_service()
    if department:
        doctors = await doctor_service.get_doctors_by_department(department)
    else:
        doctors = await doctor_service.list_doctors()
    return {
        "success": True,
        "data": {doctor_id: doctor.to_store() for doctor_id, doctor in doctors.items()},
        "count": len(doctors)
    }

@router.get("/{doctor_id}")
async def get_doctor(doctor_id: str):
    doctor = await get_doctor_service().get_doctor(doctor_id)
    if not doctor:
        raise HTTPException(status_code=404, detail="Doctor not found")
    return {"success": True, "data": doctor.to_store()}

@router.get("/{doctor_id}/slots")
async def get_available_slots(doctor_id: str, day: str = Query(..., description="e.g. monday")):
    doctor = await get_doctor_service().get_doctor(doctor_id)
    if not doctor:
        raise HTTPException(status_code=404, detail="Doctor not found")
    slots = available_slots(doctor, day.lower())
    return {
        "success": True,
        "data": [{"slot_id": slot_id, **slot.to_store()} for slot_id, slot in slots],
        "count": len(slots)
    }

@router.post("/{doctor_id}/book", status_code=status.HTTP_201_CREATED)
async def book_slot(
    doctor_id: str,
    request: BookSlotRequest,
    current_user: Session = Depends(get_current_user)
):
    """
    Book a slot for the caller. The form is pre-filled from the caller's profile;
    fields sent in the request override it.
    """
    doctor_service = get_doctor_service()
    doctor = await doctor_service.get_doctor(doctor_id)
    if not doctor:
        raise HTTPException(status_code=404, detail="Doctor not found")

    profile = await get_user_service().get_profile(current_user.uid)
    workflow = BookingWorkflow(
        current_user,
        doctor_service,
        get_appointment_service(),
        notification_service=get_notification_service(),
        analytics_service=get_analytics_service(),
        profile=profile,
    )

    day = request.day.lower()
    if not workflow.select_slot(doctor_id, day, request.slot_id, doctor=doctor):
        raise HTTPException(status_code=409, detail="This time slot is no longer available. Please choose another slot.")

    try:
        workflow.open_confirmation()
        workflow.update_form(**request.model_dump(
            include={'patient_name', 'phone_number', 'email', 'reason_for_visit'},
            exclude_none=True
        ))
        appointment = await workflow.confirm()
    except BookingValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SlotUnavailableError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except BookingPartialFailure as e:
        # Appointment exists; slot state unknown. Staff reconcile from the log.
        raise HTTPException(
            status_code=502,
            detail={"message": str(e), "appointment_id": e.appointment_id, "state": workflow.state.value}
        )

    return {
        "success": True,
        "message": "Appointment booked successfully!",
        "data": appointment.to_store()
    }

@router.patch("/{doctor_id}/status")
async def update_doctor_status(
    doctor_id: str,
    request: DoctorStatusUpdate,
    current_user: Session = Depends(require_admin)
):
    doctor_service = get_doctor_service()
    if not await doctor_service.get_doctor(doctor_id):
        raise HTTPException(status_code=404, detail="Doctor not found")
    await doctor_service.update_doctor_status(doctor_id, request.status)
    return {"success": True, "message": f"Doctor status set to {request.status.value}"}

@router.post("/{doctor_id}/slots/{day}/{slot_id}/release")
async def release_slot(
    doctor_id: str,
    day: str,
    slot_id: str,
    current_user: Session = Depends(require_admin)
):
    """Admin reconciliation: make a slot bookable again"""
    await get_doctor_service().release_time_slot(doctor_id, day.lower(), slot_id)
    logger.info(f"Admin {current_user.uid} released slot {doctor_id}/{day}/{slot_id}")
    return {"success": True, "message": "Slot released"}
