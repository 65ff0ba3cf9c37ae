"""Audit Writer - Append-only audit events"""
from typing import Any, Dict, List, Optional

from ..domain.models import ActionDescriptor, AuditEvent, ServiceRequest
from ..domain.enums import AuditEventType, RequestStatus, WorkflowEventType
from ..repositories.audit_repo import AuditRepository
from ..utils.idgen import generate_audit_event_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AuditWriter:
    """
    Write audit events (append-only)

    Every successful transition produces a WORKFLOW_TRANSITION event carrying
    request, from/to status, event and actor.
    """

    def __init__(self, repo: Optional[AuditRepository] = None):
        self.repo = repo or AuditRepository()

    def write_event(
        self,
        request_id: str,
        event_type: AuditEventType,
        actor_id: str,
        tenant_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Write a single audit event"""
        event = AuditEvent(
            audit_event_id=generate_audit_event_id(),
            request_id=request_id,
            tenant_id=tenant_id,
            event_type=event_type,
            actor_id=actor_id,
            details=details or {},
            timestamp=utc_now(),
            correlation_id=correlation_id
        )

        return self.repo.create_event(event)

    def write_request_created(
        self,
        request: ServiceRequest,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Write request creation event"""
        return self.write_event(
            request_id=request.request_id,
            tenant_id=request.tenant_id,
            event_type=AuditEventType.REQUEST_CREATED,
            actor_id=request.context.requester_id,
            details={
                "service_id": request.context.service_id,
                "status": request.status.value,
                "priority": request.context.priority.value
            },
            correlation_id=correlation_id
        )

    def write_transition(
        self,
        request: ServiceRequest,
        from_status: RequestStatus,
        to_status: RequestStatus,
        event: WorkflowEventType,
        actor_id: str,
        triggered_rules: Optional[List[str]] = None,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Write a successful transition"""
        return self.write_event(
            request_id=request.request_id,
            tenant_id=request.tenant_id,
            event_type=AuditEventType.WORKFLOW_TRANSITION,
            actor_id=actor_id,
            details={
                "from": from_status.value,
                "to": to_status.value,
                "event": event.value,
                "triggered_rules": triggered_rules or []
            },
            correlation_id=correlation_id
        )

    def write_transition_rejected(
        self,
        request: ServiceRequest,
        event: WorkflowEventType,
        actor_id: str,
        reason: str,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Write a refused event (no transition, guard rejection, engine fault)"""
        return self.write_event(
            request_id=request.request_id,
            tenant_id=request.tenant_id,
            event_type=AuditEventType.TRANSITION_REJECTED,
            actor_id=actor_id,
            details={
                "status": request.status.value,
                "event": event.value,
                "reason": reason
            },
            correlation_id=correlation_id
        )

    def write_action_dispatched(
        self,
        request: ServiceRequest,
        action: ActionDescriptor,
        succeeded: bool,
        error: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Write the outcome of dispatching one action descriptor"""
        return self.write_event(
            request_id=request.request_id,
            tenant_id=request.tenant_id,
            event_type=AuditEventType.ACTION_DISPATCHED,
            actor_id="system",
            details={
                "action": action.type.value,
                "rule": action.rule_name,
                "parameters": action.parameters,
                "succeeded": succeeded,
                "error": error
            },
            correlation_id=correlation_id
        )

    def write_auto_approval_eligible(
        self,
        request: ServiceRequest,
        reason: Optional[str],
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Record that a request qualified for low-value auto-approval"""
        return self.write_event(
            request_id=request.request_id,
            tenant_id=request.tenant_id,
            event_type=AuditEventType.AUTO_APPROVAL_ELIGIBLE,
            actor_id="system",
            details={
                "status": request.status.value,
                "total_amount": request.context.total_amount,
                "reason": reason
            },
            correlation_id=correlation_id
        )

    def write_priority_escalated(
        self,
        request: ServiceRequest,
        escalate_to: str,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Record an escalation of an urgent request"""
        return self.write_event(
            request_id=request.request_id,
            tenant_id=request.tenant_id,
            event_type=AuditEventType.PRIORITY_ESCALATED,
            actor_id="system",
            details={
                "priority": request.context.priority.value,
                "escalate_to": escalate_to
            },
            correlation_id=correlation_id
        )
