"""Repository modules - Data access layer"""
from .mongo_client import get_database, get_collection
from .service_request_repo import ServiceRequestRepository
from .transition_log_repo import TransitionLogRepository
from .audit_repo import AuditRepository
from .notification_repo import NotificationRepository

__all__ = [
    "get_database",
    "get_collection",
    "ServiceRequestRepository",
    "TransitionLogRepository",
    "AuditRepository",
    "NotificationRepository",
]
