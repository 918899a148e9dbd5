from fastapi import APIRouter, HTTPException, Depends, Path
from typing import Any, Dict
import logging

from ..auth.dependencies import get_current_user, get_session_provider, require_self_or_admin
from ..auth.session import SessionProvider
from ..models.user import ProfileUpdate, Session
from ..services.user_service import SETTINGS_SECTIONS, get_user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profile", tags=["profiles"])


@router.get("/me")
async def get_my_profile(current_user: Session = Depends(get_current_user)):
    profile = await get_user_service().get_profile(current_user.uid)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return {"success": True, "data": profile.to_store()}


@router.patch("/me")
async def update_my_profile(
    update: ProfileUpdate,
    current_user: Session = Depends(get_current_user),
    provider: SessionProvider = Depends(get_session_provider)
):
    """Merge the edited fields into the caller's profile."""
    try:
        await provider.update_profile(current_user.uid, update)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    profile = await provider.get_profile(current_user.uid)
    return {
        "success": True,
        "message": "Profile updated successfully",
        "data": profile.to_store() if profile else None
    }


@router.get("/me/settings")
async def get_my_settings(current_user: Session = Depends(get_current_user)):
    system_settings = await get_user_service().get_system_settings(current_user.uid)
    return {"success": True, "data": system_settings.to_store()}


@router.patch("/me/settings/{section}")
async def update_my_settings(
    values: Dict[str, Any],
    section: str = Path(..., description=f"One of: {', '.join(SETTINGS_SECTIONS)}"),
    current_user: Session = Depends(get_current_user)
):
    try:
        await get_user_service().update_settings_section(current_user.uid, section, values)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    system_settings = await get_user_service().get_system_settings(current_user.uid)
    return {"success": True, "data": system_settings.to_store()}


@router.get("/{user_id}")
async def get_user_profile(
    user_id: str,
    current_user: Session = Depends(require_self_or_admin)
):
    profile = await get_user_service().get_profile(user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return {"success": True, "data": profile.to_store()}
