"""
Reserveo - Notification Service
Stores in-app notifications, pushes them over WebSocket and e-mails them.
"""

from typing import Optional, Dict, Any, List
import logging

from database.firebase_db import get_db, FirebaseDB
from models.notification import (
    NotificationType,
    NotificationPriority,
    NOTIFICATION_CATEGORIES,
)
from services.email_service import get_email_service
from services.websocket_service import get_websocket_manager
from utils.errors import NotFoundError, PermissionDeniedError
from utils.helpers import utcnow, serialize_document, full_name

# Configure logging
logger = logging.getLogger(__name__)


class NotificationService:
    """
    Service class for user notifications.
    Delivery side effects (WebSocket, e-mail) never fail the caller.
    """

    def __init__(self, db: FirebaseDB = None):
        self.db = db or get_db()

    async def notify(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        send_email: bool = True
    ) -> str:
        """
        Create a notification for a user.

        Args:
            user_id: Recipient
            notification_type: Kind of notification
            title: Short title (also the e-mail subject)
            message: Body text
            data: Extra structured payload
            priority: low / medium / high / urgent
            send_email: Also e-mail the user when they accept e-mails

        Returns:
            str: Notification ID
        """
        category = NOTIFICATION_CATEGORIES.get(notification_type)
        notification = {
            "user_id": user_id,
            "type": notification_type.value,
            "category": category.value if category else "system",
            "priority": priority.value,
            "title": title,
            "message": message,
            "data": data or {},
            "is_read": False,
            "read_at": None,
            "created_at": utcnow(),
        }
        notification_id = await self.db.create_document(
            FirebaseDB.COLLECTION_NOTIFICATIONS, notification
        )
        notification["id"] = notification_id

        try:
            await get_websocket_manager().send_to_user(user_id, {
                "type": "notification",
                "data": serialize_document(notification),
            })
        except Exception as e:
            logger.error(f"WebSocket push failed for notification {notification_id}: {e}")

        if send_email:
            await self._email(notification)

        logger.info(f"Notification {notification_type.value} sent to {user_id}")
        return notification_id

    async def notify_admins(
        self,
        notification_type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        priority: NotificationPriority = NotificationPriority.HIGH
    ) -> int:
        """Notify every administrator, returns how many were notified."""
        admins = await self.db.query_documents(
            FirebaseDB.COLLECTION_PROFILES,
            filters=[("roles", "array_contains", "admin")]
        )
        for admin in admins:
            await self.notify(admin["id"], notification_type, title, message, data, priority)
        return len(admins)

    async def _email(self, notification: Dict[str, Any]):
        try:
            profile = await self.db.get_document(
                FirebaseDB.COLLECTION_PROFILES, notification["user_id"]
            )
            if not profile or not profile.get("email"):
                return
            if profile.get("email_notifications") is False:
                return

            email_id = await get_email_service().send_notification_email(
                notification_id=notification["id"],
                to_email=profile["email"],
                user_name=full_name(profile),
                notification_type=notification["type"],
                title=notification["title"],
                message=notification["message"],
                category=notification["category"],
                priority=notification["priority"],
            )
            if email_id:
                await self.db.update_document(
                    FirebaseDB.COLLECTION_NOTIFICATIONS,
                    notification["id"],
                    {"email_sent": True, "email_id": email_id, "email_sent_at": utcnow()}
                )
        except Exception as e:
            logger.error(f"Email step failed for notification {notification['id']}: {e}")

    async def list_notifications(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 50
    ) -> List[Dict[str, Any]]:
        filters = [("user_id", "==", user_id)]
        if unread_only:
            filters.append(("is_read", "==", False))
        docs = await self.db.query_documents(
            FirebaseDB.COLLECTION_NOTIFICATIONS,
            filters=filters,
            order_by="created_at",
            descending=True,
            limit=limit
        )
        return docs

    async def unread_count(self, user_id: str) -> int:
        docs = await self.db.query_documents(
            FirebaseDB.COLLECTION_NOTIFICATIONS,
            filters=[("user_id", "==", user_id), ("is_read", "==", False)]
        )
        return len(docs)

    async def mark_as_read(self, user_id: str, notification_id: str) -> Dict[str, Any]:
        notification = await self.db.get_document(
            FirebaseDB.COLLECTION_NOTIFICATIONS, notification_id
        )
        if not notification:
            raise NotFoundError("Notificación no encontrada")
        if notification.get("user_id") != user_id:
            raise PermissionDeniedError("Esta notificación no te pertenece")

        if not notification.get("is_read"):
            now = utcnow()
            await self.db.update_document(
                FirebaseDB.COLLECTION_NOTIFICATIONS,
                notification_id,
                {"is_read": True, "read_at": now}
            )
            notification.update({"is_read": True, "read_at": now})
        return notification

    async def mark_all_as_read(self, user_id: str) -> int:
        unread = await self.db.query_documents(
            FirebaseDB.COLLECTION_NOTIFICATIONS,
            filters=[("user_id", "==", user_id), ("is_read", "==", False)]
        )
        now = utcnow()
        for notification in unread:
            await self.db.update_document(
                FirebaseDB.COLLECTION_NOTIFICATIONS,
                notification["id"],
                {"is_read": True, "read_at": now}
            )
        return len(unread)


# Singleton instance
_notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """Get singleton notification service instance."""
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service
