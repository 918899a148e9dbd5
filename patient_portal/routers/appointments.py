from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional
from pydantic import BaseModel
import logging

from ..auth.dependencies import get_current_user, require_admin
from ..models.database_models import AppointmentStatus
from ..models.user import Session
from ..services.analytics_service import get_analytics_service
from ..services.appointment_service import get_appointment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["appointments"])


class RescheduleRequest(BaseModel):
    date: str  # MM/DD/YYYY
    time_slot: str  # e.g. "10:30 AM"


class CancelRequest(BaseModel):
    reason: Optional[str] = None


async def _require_appointment(user_id: str, appointment_id: str):
    appointment = await get_appointment_service().get_appointment(user_id, appointment_id)
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return appointment


@router.get("")
async def list_my_appointments(
    status: Optional[str] = Query(None, description="upcoming, completed, cancelled, rescheduled or all"),
    current_user: Session = Depends(get_current_user)
):
    try:
        appointments = await get_appointment_service().list_appointments(current_user.uid, status)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown status filter: {status}")
    return {
        "success": True,
        "data": [a.to_store() for a in appointments],
        "count": len(appointments)
    }


@router.get("/doctor/{doctor_id}")
async def list_doctor_appointments(doctor_id: str, current_user: Session = Depends(require_admin)):
    """Admin view across all patients"""
    entries = await get_appointment_service().get_appointments_by_doctor(doctor_id)
    return {
        "success": True,
        "data": [{"user_id": e['user_id'], **e['appointment'].to_store()} for e in entries],
        "count": len(entries)
    }


@router.get("/{appointment_id}")
async def get_appointment(appointment_id: str, current_user: Session = Depends(get_current_user)):
    appointment = await _require_appointment(current_user.uid, appointment_id)
    return {"success": True, "data": appointment.to_store()}


@router.post("/{appointment_id}/cancel")
async def cancel_appointment(
    appointment_id: str,
    request: Optional[CancelRequest] = None,
    current_user: Session = Depends(get_current_user)
):
    appointment = await _require_appointment(current_user.uid, appointment_id)
    if appointment.status == AppointmentStatus.CANCELLED:
        return {"success": True, "message": "Appointment already cancelled"}

    service = get_appointment_service()
    reason = request.reason if request else None
    if reason:
        await service.cancel(current_user.uid, appointment_id, admin_note=f"Cancelled by patient: {reason}")
    else:
        await service.cancel(current_user.uid, appointment_id)
    await get_analytics_service().increment('appointments_cancelled')
    return {"success": True, "message": "Appointment cancelled"}


@router.post("/{appointment_id}/reschedule")
async def reschedule_appointment(
    appointment_id: str,
    request: RescheduleRequest,
    current_user: Session = Depends(get_current_user)
):
    await _require_appointment(current_user.uid, appointment_id)
    await get_appointment_service().reschedule(current_user.uid, appointment_id, request.date, request.time_slot)
    return {"success": True, "message": "Appointment rescheduled"}


@router.post("/users/{user_id}/{appointment_id}/complete")
async def complete_appointment(
    user_id: str,
    appointment_id: str,
    current_user: Session = Depends(require_admin)
):
    await _require_appointment(user_id, appointment_id)
    await get_appointment_service().complete(user_id, appointment_id)
    await get_analytics_service().increment('appointments_completed')
    logger.info(f"Admin {current_user.uid} completed appointment {appointment_id} of {user_id}")
    return {"success": True, "message": "Appointment marked completed"}
