"""Permission Guard - Transition guards for service requests

Guards are plain predicates over ``(context, event)``. They never raise and
never touch storage, so they can be reused by event processing, validation
and the available-actions listing alike.

Rules:
- Nobody approves or rejects their own request
- Assignment is open here; the assigner role is enforced upstream
- Only the assignee (or anyone, while unassigned) starts work
- Only the assignee completes
- Assignee or requester can hold, resume and cancel
"""
from typing import Dict, Optional

from ..domain.models import RequestContext, WorkflowEvent
from ..domain.enums import WorkflowEventType


PERMISSION_APPROVE = "service.approve"
PERMISSION_ASSIGN = "service.assign"

REQUIRED_PERMISSIONS: Dict[WorkflowEventType, str] = {
    WorkflowEventType.APPROVE: PERMISSION_APPROVE,
    WorkflowEventType.REJECT: PERMISSION_APPROVE,
    WorkflowEventType.ASSIGN: PERMISSION_ASSIGN,
}


def _is_same_user(actor_id: str, user_id: Optional[str]) -> bool:
    """Match an actor against a stored user ID (exact, IDs are opaque)"""
    if not user_id or not actor_id:
        return False
    return actor_id == user_id


def is_requester(context: RequestContext, actor_id: str) -> bool:
    return _is_same_user(actor_id, context.requester_id)


def is_assignee(context: RequestContext, actor_id: str) -> bool:
    return _is_same_user(actor_id, context.assigned_to)


def skips_approval(context: RequestContext, event: WorkflowEvent) -> bool:
    """SUBMIT goes straight to APPROVED"""
    return not context.requires_approval


def awaits_approval(context: RequestContext, event: WorkflowEvent) -> bool:
    """SUBMIT stays PENDING until someone approves"""
    return context.requires_approval


def can_approve(context: RequestContext, event: WorkflowEvent) -> bool:
    """No self-approval (also used for rejection)"""
    return not is_requester(context, event.actor_id)


def can_assign(context: RequestContext, event: WorkflowEvent) -> bool:
    return True


def can_start(context: RequestContext, event: WorkflowEvent) -> bool:
    return not context.assigned_to or is_assignee(context, event.actor_id)


def can_complete(context: RequestContext, event: WorkflowEvent) -> bool:
    return is_assignee(context, event.actor_id)


def can_hold(context: RequestContext, event: WorkflowEvent) -> bool:
    return is_assignee(context, event.actor_id) or is_requester(context, event.actor_id)


def can_resume(context: RequestContext, event: WorkflowEvent) -> bool:
    return is_assignee(context, event.actor_id) or is_requester(context, event.actor_id)


def can_cancel(context: RequestContext, event: WorkflowEvent) -> bool:
    return is_requester(context, event.actor_id) or is_assignee(context, event.actor_id)


def get_required_permission(event_type: WorkflowEventType) -> Optional[str]:
    """Permission a caller should hold before submitting this event"""
    return REQUIRED_PERMISSIONS.get(event_type)
