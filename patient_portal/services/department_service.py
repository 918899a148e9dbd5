"""
Department and hospital-wide settings (read mostly; settings editable by admins)
"""

from typing import Any, Dict, List, Optional
import logging

from ..database.gateway import get_gateway
from ..database.paths import COLLECTIONS, path_for
from ..models.database_models import (
    AppointmentSettings, ChatSettings, Department, GlobalSettings, HospitalInfo
)

logger = logging.getLogger(__name__)


class DepartmentService:
    def __init__(self, gateway=None):
        self.db = gateway or get_gateway()

    async def list_departments(self, active_only: bool = True) -> List[Department]:
        raw = await self.db.list(COLLECTIONS['departments'])
        departments = []
        for department_id, data in raw.items():
            if not isinstance(data, dict):
                continue
            try:
                department = Department.model_validate({**data, 'id': department_id})
            except Exception as e:
                logger.warning(f"Skipping malformed department {department_id}: {e}")
                continue
            if active_only and not department.is_active:
                continue
            departments.append(department)
        departments.sort(key=lambda d: d.name)
        return departments

    async def get_department(self, department_id: str) -> Optional[Department]:
        data = await self.db.read(path_for('department', department_id=department_id))
        if not data:
            return None
        return Department.model_validate({**data, 'id': department_id})


class GlobalSettingsService:
    def __init__(self, gateway=None):
        self.db = gateway or get_gateway()

    async def get_settings(self) -> Optional[GlobalSettings]:
        data = await self.db.read(COLLECTIONS['global_settings'])
        if not data:
            return None
        return GlobalSettings.model_validate(data)

    async def _replace_section(self, key: str, value: Dict[str, Any]) -> None:
        await self.db.update(COLLECTIONS['global_settings'], {key: value})
        logger.info(f"Global settings section '{key}' updated")

    async def update_hospital_info(self, info: HospitalInfo) -> None:
        await self._replace_section('hospitalInfo', info.to_store())

    async def update_chat_settings(self, chat_settings: ChatSettings) -> None:
        await self._replace_section('chatSettings', chat_settings.to_store())

    async def update_appointment_settings(self, appointment_settings: AppointmentSettings) -> None:
        await self._replace_section('appointmentSettings', appointment_settings.to_store())


# Singleton instances
_department_service = None
_global_settings_service = None

def get_department_service() -> DepartmentService:
    global _department_service
    if _department_service is None:
        _department_service = DepartmentService()
    return _department_service

def get_global_settings_service() -> GlobalSettingsService:
    global _global_settings_service
    if _global_settings_service is None:
        _global_settings_service = GlobalSettingsService()
    return _global_settings_service
