"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class RequestStatus(str, Enum):
    """Service request lifecycle status"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    IN_PROGRESS = "IN_PROGRESS"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


TERMINAL_STATUSES = frozenset({
    RequestStatus.COMPLETED,
    RequestStatus.CANCELLED,
    RequestStatus.REJECTED,
})


class RequestPriority(str, Enum):
    """Service request priority"""
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class WorkflowEventType(str, Enum):
    """Events that trigger transitions"""
    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    ASSIGN = "ASSIGN"
    START = "START"
    COMPLETE = "COMPLETE"
    CANCEL = "CANCEL"
    HOLD = "HOLD"
    RESUME = "RESUME"


class TransitionOutcome(str, Enum):
    """Result of processing a workflow event"""
    SUCCESS = "SUCCESS"
    NO_TRANSITION = "NO_TRANSITION"
    GUARD_REJECTED = "GUARD_REJECTED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class WorkflowActionType(str, Enum):
    """Side effects a rule can ask the caller to perform"""
    AUTO_APPROVE = "AUTO_APPROVE"
    AUTO_ASSIGN = "AUTO_ASSIGN"
    PRIORITY_ESCALATION = "PRIORITY_ESCALATION"
    NOTIFICATION = "NOTIFICATION"


class RecipientRole(str, Enum):
    """Symbolic notification recipients resolved against a request"""
    REQUESTER = "requester"
    ASSIGNEE = "assignee"
    MANAGER = "manager"


class ConditionOperator(str, Enum):
    """Operators for condition evaluation"""
    EQUALS = "EQUALS"
    LESS_THAN = "LESS_THAN"
    IS_EMPTY = "IS_EMPTY"


class NotificationStatus(str, Enum):
    """Notification outbox status"""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class NotificationTemplateKey(str, Enum):
    """Notification template identifiers"""
    URGENT_ESCALATION = "URGENT_ESCALATION"
    OVERDUE_REQUEST = "OVERDUE_REQUEST"
    PRIORITY_ESCALATION = "PRIORITY_ESCALATION"
    ASSIGNMENT_NEEDED = "ASSIGNMENT_NEEDED"
    GENERIC = "GENERIC"  # Fallback for notification types without a template


class AuditEventType(str, Enum):
    """Types of audit events"""
    REQUEST_CREATED = "REQUEST_CREATED"
    WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"
    TRANSITION_REJECTED = "TRANSITION_REJECTED"
    ACTION_DISPATCHED = "ACTION_DISPATCHED"
    AUTO_APPROVAL_ELIGIBLE = "AUTO_APPROVAL_ELIGIBLE"
    PRIORITY_ESCALATED = "PRIORITY_ESCALATED"
