"""
Notification Router - in-app notifications for the signed-in user
"""

import logging
from fastapi import APIRouter, Depends, Query

from ..auth.dependencies import get_current_user
from ..models.user import Session
from ..services.notification_service import get_notification_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    include_dismissed: bool = Query(False),
    current_user: Session = Depends(get_current_user)
):
    service = get_notification_service()
    notifications = await service.list_notifications(current_user.uid, include_dismissed=include_dismissed)
    return {
        "success": True,
        "data": [n.to_store() for n in notifications],
        "count": len(notifications)
    }


@router.get("/unread-count")
async def get_unread_count(current_user: Session = Depends(get_current_user)):
    count = await get_notification_service().unread_count(current_user.uid)
    return {"success": True, "unread_count": count}


@router.post("/read-all")
async def mark_all_notifications_read(current_user: Session = Depends(get_current_user)):
    updated = await get_notification_service().mark_all_read(current_user.uid)
    return {"success": True, "message": f"{updated} notification(s) marked as read", "updated": updated}


@router.post("/{notification_id}/read")
async def mark_notification_read(notification_id: str, current_user: Session = Depends(get_current_user)):
    await get_notification_service().mark_read(current_user.uid, notification_id)
    return {"success": True, "message": "Notification marked as read"}


@router.post("/{notification_id}/dismiss")
async def dismiss_notification(notification_id: str, current_user: Session = Depends(get_current_user)):
    await get_notification_service().mark_dismissed(current_user.uid, notification_id)
    return {"success": True, "message": "Notification dismissed"}
