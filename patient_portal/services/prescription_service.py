from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from ..core.clock import now_iso
from ..database.gateway import Subscription, get_gateway
from ..database.paths import path_for
from ..models.database_models import Prescription, PrescriptionDocument, PrescriptionStatus, PrescriptionType
from .file_utils import base64_to_bytes

logger = logging.getLogger(__name__)


def parse_prescriptions(raw: Optional[Dict[str, Any]]) -> List[Prescription]:
    prescriptions = []
    for prescription_id, data in (raw or {}).items():
        if not isinstance(data, dict):
            continue
        try:
            prescriptions.append(Prescription.model_validate({**data, 'id': prescription_id}))
        except Exception as e:
            logger.warning(f"Skipping malformed prescription {prescription_id}: {e}")
    prescriptions.sort(key=lambda p: p.timestamps.created_at or "", reverse=True)
    return prescriptions


class PrescriptionService:
    def __init__(self, gateway=None):
        self.db = gateway or get_gateway()

    async def create_prescription(self, user_id: str, prescription: Prescription) -> Prescription:
        now = now_iso()
        data = prescription.model_copy(deep=True)
        data.id = None
        data.timestamps.created_at = now
        data.timestamps.updated_at = now

        prescription_id = await self.db.create(
            path_for('prescriptions', user_id=user_id),
            data.to_store()
        )
        data.id = prescription_id
        logger.info(f"Created prescription {prescription_id} for user {user_id} ({len(data.documents)} document(s))")
        return data

    async def get_prescription(self, user_id: str, prescription_id: str) -> Optional[Prescription]:
        data = await self.db.read(path_for('prescription', user_id=user_id, prescription_id=prescription_id))
        if not data:
            return None
        return Prescription.model_validate({**data, 'id': prescription_id})

    async def list_prescriptions(self, user_id: str) -> List[Prescription]:
        raw = await self.db.list(path_for('prescriptions', user_id=user_id))
        return parse_prescriptions(raw)

    async def update_status(self, user_id: str, prescription_id: str, status: PrescriptionStatus) -> None:
        await self.db.update(
            path_for('prescription', user_id=user_id, prescription_id=prescription_id),
            {
                'prescriptionDetails/status': PrescriptionStatus(status).value,
                'timestamps/updatedAt': now_iso(),
            }
        )

    async def update_details(
        self,
        user_id: str,
        prescription_id: str,
        title: Optional[str] = None,
        type: Optional[PrescriptionType] = None,
        status: Optional[PrescriptionStatus] = None,
        instructions: Optional[str] = None,
        notes: Optional[str] = None
    ) -> None:
        """Apply an edit form; fields left as None are not touched."""
        updates = {}
        if title is not None:
            updates['prescriptionDetails/title'] = title
        if type is not None:
            updates['prescriptionDetails/type'] = PrescriptionType(type).value
        if status is not None:
            updates['prescriptionDetails/status'] = PrescriptionStatus(status).value
        if instructions is not None:
            updates['prescriptionDetails/instructions'] = instructions
        if notes is not None:
            updates['notes'] = notes
        if not updates:
            return
        updates['timestamps/updatedAt'] = now_iso()

        await self.db.update(
            path_for('prescription', user_id=user_id, prescription_id=prescription_id),
            updates
        )
        logger.info(f"Updated prescription {prescription_id}: {sorted(updates)}")

    async def add_document(
        self,
        user_id: str,
        prescription_id: str,
        document_id: str,
        document: PrescriptionDocument
    ) -> None:
        await self.db.update(
            path_for('prescription', user_id=user_id, prescription_id=prescription_id),
            {
                f'documents/{document_id}': document.to_store(),
                'timestamps/updatedAt': now_iso(),
            }
        )

    async def get_document_bytes(
        self,
        user_id: str,
        prescription_id: str,
        document_id: str
    ) -> Optional[Tuple[bytes, str, str]]:
        """(content, file name, MIME type) of an inline document, or None."""
        prescription = await self.get_prescription(user_id, prescription_id)
        if not prescription:
            return None
        document = prescription.documents.get(document_id)
        if not document or not document.file_content:
            return None
        return base64_to_bytes(document.file_content), document.file_name, document.file_type

    async def watch_prescriptions(
        self,
        user_id: str,
        on_change: Callable[[List[Prescription]], Any]
    ) -> Subscription:
        return await self.db.subscribe(
            path_for('prescriptions', user_id=user_id),
            lambda raw: on_change(parse_prescriptions(raw))
        )


# Singleton instance
_prescription_service = None

def get_prescription_service() -> PrescriptionService:
    global _prescription_service
    if _prescription_service is None:
        _prescription_service = PrescriptionService()
    return _prescription_service
