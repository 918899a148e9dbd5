from typing import Any, Callable, Dict, List, Optional
import logging

from ..core.clock import now_iso
from ..database.gateway import Subscription, get_gateway
from ..database.paths import path_for
from ..models.database_models import Notification, NotificationAction, NotificationStatus

logger = logging.getLogger(__name__)


def parse_notifications(raw: Optional[Dict[str, Any]]) -> List[Notification]:
    notifications = []
    for notification_id, data in (raw or {}).items():
        if not isinstance(data, dict):
            continue
        try:
            notifications.append(Notification.model_validate({**data, 'id': notification_id}))
        except Exception as e:
            logger.warning(f"Skipping malformed notification {notification_id}: {e}")
    notifications.sort(key=lambda n: n.timestamps.created_at or "", reverse=True)
    return notifications


class NotificationService:
    def __init__(self, gateway=None):
        self.db = gateway or get_gateway()

    async def create_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        notification_type: str = "system_update",
        data: Optional[Dict[str, Any]] = None,
        priority: str = "normal",
        actions: Optional[List[NotificationAction]] = None,
        scheduled_for: Optional[str] = None
    ) -> Notification:
        """Create an unread in-app notification"""
        now = now_iso()
        notification = Notification(
            type=notification_type,
            title=title,
            message=message,
            data=data or {},
            priority=priority,
            actions=actions or [],
        )
        notification.timestamps.created_at = now
        notification.timestamps.sent_at = now
        notification.timestamps.scheduled_for = scheduled_for

        notification_id = await self.db.create(
            path_for('notifications', user_id=user_id),
            notification.to_store()
        )
        notification.id = notification_id
        logger.info(f"Notification {notification_id} ({notification_type}) created for {user_id}")
        return notification

    async def list_notifications(self, user_id: str, include_dismissed: bool = False) -> List[Notification]:
        raw = await self.db.list(path_for('notifications', user_id=user_id))
        notifications = parse_notifications(raw)
        if include_dismissed:
            return notifications
        return [n for n in notifications if n.status != NotificationStatus.DISMISSED]

    async def unread_count(self, user_id: str) -> int:
        notifications = await self.list_notifications(user_id)
        return sum(1 for n in notifications if n.status == NotificationStatus.UNREAD)

    async def mark_read(self, user_id: str, notification_id: str) -> None:
        await self.db.update(
            path_for('notification', user_id=user_id, notification_id=notification_id),
            {
                'status': NotificationStatus.READ.value,
                'timestamps/readAt': now_iso(),
            }
        )

    async def mark_dismissed(self, user_id: str, notification_id: str) -> None:
        await self.db.update(
            path_for('notification', user_id=user_id, notification_id=notification_id),
            {
                'status': NotificationStatus.DISMISSED.value,
                'timestamps/dismissedAt': now_iso(),
            }
        )

    async def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification read in one merge. Returns how many changed."""
        notifications = await self.list_notifications(user_id)
        now = now_iso()
        updates = {}
        for notification in notifications:
            if notification.status == NotificationStatus.UNREAD:
                updates[f'{notification.id}/status'] = NotificationStatus.READ.value
                updates[f'{notification.id}/timestamps/readAt'] = now
        if not updates:
            return 0
        await self.db.update(path_for('notifications', user_id=user_id), updates)
        return len(updates) // 2

    async def watch_notifications(
        self,
        user_id: str,
        on_change: Callable[[List[Notification]], Any]
    ) -> Subscription:
        return await self.db.subscribe(
            path_for('notifications', user_id=user_id),
            lambda raw: on_change(parse_notifications(raw))
        )


# Singleton instance
_notification_service = None

def get_notification_service() -> NotificationService:
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service
