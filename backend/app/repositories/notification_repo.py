"""Notification Repository - Data access for notification outbox

Notifications produced by workflow actions are written here; delivery is
handled by whichever worker drains the outbox.
"""
from typing import List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING

from .mongo_client import get_collection
from ..domain.models import NotificationOutbox
from ..domain.enums import NotificationStatus
from ..utils.logger import get_logger

logger = get_logger(__name__)


class NotificationRepository:
    """Repository for notification outbox operations"""

    def __init__(self, collection: Optional[Collection] = None):
        self._outbox: Collection = (
            collection if collection is not None else get_collection("notification_outbox")
        )

    def create_notification(self, notification: NotificationOutbox) -> NotificationOutbox:
        """Create a notification in outbox"""
        doc = notification.model_dump(mode="json")
        doc["_id"] = notification.notification_id
        doc["created_at"] = notification.created_at

        self._outbox.insert_one(doc)
        logger.info(
            f"Created notification: {notification.template_key.value}",
            extra={
                "notification_id": notification.notification_id,
                "request_id": notification.request_id
            }
        )
        return notification

    def get_pending_notifications(self, limit: int = 100) -> List[NotificationOutbox]:
        """Pending notifications, oldest first"""
        cursor = self._outbox.find(
            {"status": NotificationStatus.PENDING.value}
        ).sort("created_at", ASCENDING).limit(limit)

        notifications = []
        for doc in cursor:
            doc.pop("_id", None)
            notifications.append(NotificationOutbox.model_validate(doc))
        return notifications
