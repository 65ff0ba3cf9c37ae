"""Service modules - Business logic layer"""
from .service_request_service import ServiceRequestService
from .action_dispatcher import ActionDispatcher
from .notification_service import NotificationService

__all__ = [
    "ServiceRequestService",
    "ActionDispatcher",
    "NotificationService",
]
