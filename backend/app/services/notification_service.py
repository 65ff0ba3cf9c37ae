"""Notification Service - Queue workflow notifications in the outbox

Only enqueueing happens here. Delivery (email, chat, in-app) belongs to
whatever drains ``notification_outbox``.
"""
from typing import Any, Dict, List, Optional

from ..domain.models import NotificationOutbox
from ..domain.enums import NotificationStatus, NotificationTemplateKey
from ..repositories.notification_repo import NotificationRepository
from ..utils.idgen import generate_notification_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class NotificationService:
    """Service for queueing notifications"""

    def __init__(self, repo: Optional[NotificationRepository] = None):
        self.repo = repo or NotificationRepository()

    @staticmethod
    def resolve_template(notification_type: Optional[str]) -> NotificationTemplateKey:
        """Map a rule's notification type onto a template key"""
        if not notification_type:
            return NotificationTemplateKey.GENERIC
        try:
            return NotificationTemplateKey(str(notification_type).upper())
        except ValueError:
            logger.warning(f"No template for notification type {notification_type}, using GENERIC")
            return NotificationTemplateKey.GENERIC

    def enqueue_notification(
        self,
        template_key: NotificationTemplateKey,
        recipients: List[str],
        payload: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None
    ) -> Optional[NotificationOutbox]:
        """
        Queue a notification in outbox

        Recipients are de-duplicated preserving order. Returns None when no
        recipient remains.
        """
        unique_recipients: List[str] = []
        for recipient in recipients:
            if recipient and recipient not in unique_recipients:
                unique_recipients.append(recipient)

        if not unique_recipients:
            logger.warning(
                f"Skipping notification {template_key.value}: no recipients",
                extra={"request_id": request_id}
            )
            return None

        notification = NotificationOutbox(
            notification_id=generate_notification_id(),
            request_id=request_id,
            template_key=template_key,
            recipients=unique_recipients,
            payload=payload or {},
            status=NotificationStatus.PENDING,
            created_at=utc_now()
        )

        return self.repo.create_notification(notification)
