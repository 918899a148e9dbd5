from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form, status
from fastapi.responses import Response
from typing import List, Optional
from pydantic import BaseModel
import logging

from ..auth.dependencies import get_current_user
from ..core.clock import now_iso
from ..core.exceptions import FileValidationError
from ..models.database_models import (
    Prescription, PrescriptionDetails, PrescriptionStatus, PrescriptionType
)
from ..models.user import Session
from ..services.analytics_service import get_analytics_service
from ..services.file_utils import build_document, generate_document_id, prepare_file_for_upload
from ..services.prescription_service import get_prescription_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/prescriptions", tags=["prescriptions"])


class PrescriptionDetailsUpdate(BaseModel):
    title: Optional[str] = None
    type: Optional[PrescriptionType] = None
    status: Optional[PrescriptionStatus] = None
    instructions: Optional[str] = None
    notes: Optional[str] = None


async def _read_upload(file: UploadFile, uploaded_by: str):
    content = await file.read()
    prepared = prepare_file_for_upload(file.filename or "upload", file.content_type, content)
    return generate_document_id(), build_document(prepared, uploaded_by)


async def _require_prescription(user_id: str, prescription_id: str) -> Prescription:
    prescription = await get_prescription_service().get_prescription(user_id, prescription_id)
    if not prescription:
        raise HTTPException(status_code=404, detail="Prescription not found")
    return prescription


@router.get("")
async def list_prescriptions(current_user: Session = Depends(get_current_user)):
    prescriptions = await get_prescription_service().list_prescriptions(current_user.uid)
    return {
        "success": True,
        "data": [p.to_store() for p in prescriptions],
        "count": len(prescriptions)
    }


@router.get("/{prescription_id}")
async def get_prescription(prescription_id: str, current_user: Session = Depends(get_current_user)):
    prescription = await _require_prescription(current_user.uid, prescription_id)
    return {"success": True, "data": prescription.to_store()}


@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_prescription(
    title: str = Form(..., description="Prescription title"),
    doctor_id: str = Form(..., description="Prescribing doctor"),
    type: PrescriptionType = Form(PrescriptionType.OTHER),
    appointment_id: str = Form(""),
    instructions: str = Form(""),
    notes: str = Form(""),
    files: List[UploadFile] = File(..., description="PDF, JPG, PNG, DOC or DOCX"),
    current_user: Session = Depends(get_current_user)
):
    """
    Create a prescription record with one or more documents.

    Files are validated (type and size) before anything is written; images wider
    than the configured maximum are downscaled. Content is stored inline as base64.
    """
    try:
        documents = {}
        for upload in files:
            document_id, document = await _read_upload(upload, current_user.uid)
            documents[document_id] = document
    except FileValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)

    prescription = Prescription(
        doctor_id=doctor_id,
        appointment_id=appointment_id,
        prescription_details=PrescriptionDetails(
            title=title,
            type=type,
            status=PrescriptionStatus.ACTIVE,
            prescribed_date=now_iso(),
            instructions=instructions,
        ),
        documents=documents,
        notes=notes,
    )
    created = await get_prescription_service().create_prescription(current_user.uid, prescription)
    await get_analytics_service().increment('prescriptions_uploaded')

    return {
        "success": True,
        "message": "Prescription uploaded successfully",
        "data": created.to_store()
    }


@router.patch("/{prescription_id}")
async def update_prescription(
    prescription_id: str,
    request: PrescriptionDetailsUpdate,
    current_user: Session = Depends(get_current_user)
):
    await _require_prescription(current_user.uid, prescription_id)
    await get_prescription_service().update_details(
        current_user.uid,
        prescription_id,
        title=request.title,
        type=request.type,
        status=request.status,
        instructions=request.instructions,
        notes=request.notes,
    )
    return {"success": True, "message": "Prescription updated"}


@router.post("/{prescription_id}/documents", status_code=status.HTTP_201_CREATED)
async def add_prescription_document(
    prescription_id: str,
    file: UploadFile = File(...),
    current_user: Session = Depends(get_current_user)
):
    await _require_prescription(current_user.uid, prescription_id)
    try:
        document_id, document = await _read_upload(file, current_user.uid)
    except FileValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)

    await get_prescription_service().add_document(current_user.uid, prescription_id, document_id, document)
    return {
        "success": True,
        "document_id": document_id,
        "file_name": document.file_name,
        "file_size": document.file_size,
        "content_type": document.file_type
    }


@router.get("/{prescription_id}/documents/{document_id}")
async def download_prescription_document(
    prescription_id: str,
    document_id: str,
    current_user: Session = Depends(get_current_user)
):
    result = await get_prescription_service().get_document_bytes(current_user.uid, prescription_id, document_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Document not found")

    content, file_name, content_type = result
    return Response(
        content=content,
        media_type=content_type,
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'}
    )
