from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional
import logging

from ..auth.dependencies import require_admin
from ..models.database_models import AppointmentSettings, ChatSettings, HospitalInfo
from ..models.user import Session
from ..services.analytics_service import get_analytics_service
from ..services.department_service import get_department_service, get_global_settings_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/hospital", tags=["hospital"])


# ===== Departments =====

@router.get("/departments")
async def list_departments(include_inactive: bool = Query(False)):
    departments = await get_department_service().list_departments(active_only=not include_inactive)
    return {
        "success": True,
        "data": [d.to_store() for d in departments],
        "count": len(departments)
    }


@router.get("/departments/{department_id}")
async def get_department(department_id: str):
    department = await get_department_service().get_department(department_id)
    if not department:
        raise HTTPException(status_code=404, detail="Department not found")
    return {"success": True, "data": department.to_store()}


# ===== Global settings =====

@router.get("/settings")
async def get_global_settings():
    global_settings = await get_global_settings_service().get_settings()
    if not global_settings:
        raise HTTPException(status_code=404, detail="Hospital settings have not been initialized")
    return {"success": True, "data": global_settings.to_store()}


@router.put("/settings/hospital-info")
async def update_hospital_info(info: HospitalInfo, current_user: Session = Depends(require_admin)):
    await get_global_settings_service().update_hospital_info(info)
    return {"success": True, "message": "Hospital info updated"}


@router.put("/settings/chat")
async def update_chat_settings(chat_settings: ChatSettings, current_user: Session = Depends(require_admin)):
    await get_global_settings_service().update_chat_settings(chat_settings)
    return {"success": True, "message": "Chat settings updated"}


@router.put("/settings/appointments")
async def update_appointment_settings(
    appointment_settings: AppointmentSettings,
    current_user: Session = Depends(require_admin)
):
    await get_global_settings_service().update_appointment_settings(appointment_settings)
    return {"success": True, "message": "Appointment settings updated"}


# ===== Analytics =====

@router.get("/analytics/daily")
async def get_daily_stats(
    day: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today (UTC)"),
    current_user: Session = Depends(require_admin)
):
    stats = await get_analytics_service().get_daily_stats(day)
    return {"success": True, "data": stats.to_store()}
