"""Action Dispatcher - Execute action descriptors reported by the engine

The workflow engine only describes side effects. This dispatcher performs
them through a registry of handlers keyed by action type. Each descriptor is
dispatched independently: a failing handler is logged, audited and reported
in its DispatchOutcome, and the remaining descriptors still run.
"""
from typing import Callable, Dict, Iterable, List, Optional

from ..config.settings import Settings, settings as default_settings
from ..domain.models import ActionDescriptor, DispatchOutcome, ServiceRequest
from ..domain.enums import NotificationTemplateKey, RecipientRole, WorkflowActionType
from ..domain.errors import ActionDispatchError
from ..engine.audit_writer import AuditWriter
from .notification_service import NotificationService
from ..utils.logger import get_logger

logger = get_logger(__name__)


ActionHandler = Callable[[ServiceRequest, ActionDescriptor, Optional[str]], None]


def role_recipient(role: str) -> str:
    """Outbox address for everyone holding a role"""
    return f"role:{role}"


class ActionDispatcher:
    """Dispatch workflow actions to registered handlers"""

    def __init__(
        self,
        notification_service: Optional[NotificationService] = None,
        audit_writer: Optional[AuditWriter] = None,
        config: Optional[Settings] = None
    ):
        self.notification_service = notification_service or NotificationService()
        self.audit_writer = audit_writer or AuditWriter()
        self.config = config or default_settings
        self._handlers: Dict[WorkflowActionType, ActionHandler] = {
            WorkflowActionType.NOTIFICATION: self._handle_notification,
            WorkflowActionType.PRIORITY_ESCALATION: self._handle_priority_escalation,
            WorkflowActionType.AUTO_ASSIGN: self._handle_auto_assign,
            WorkflowActionType.AUTO_APPROVE: self._handle_auto_approve,
        }

    def register(self, action_type: WorkflowActionType, handler: ActionHandler) -> None:
        """Register or replace the handler for an action type"""
        self._handlers[action_type] = handler

    def unregister(self, action_type: WorkflowActionType) -> None:
        self._handlers.pop(action_type, None)

    # =========================================================================
    # Dispatch
    # =========================================================================

    def dispatch(
        self,
        request: ServiceRequest,
        actions: Iterable[ActionDescriptor],
        correlation_id: Optional[str] = None
    ) -> List[DispatchOutcome]:
        """
        Dispatch each action for a request

        Returns:
            One DispatchOutcome per action, in input order
        """
        outcomes: List[DispatchOutcome] = []

        for action in actions:
            error: Optional[str] = None
            try:
                handler = self._handlers.get(action.type)
                if handler is None:
                    raise ActionDispatchError(
                        f"No handler registered for action {action.type.value}",
                        details={"action": action.type.value}
                    )
                handler(request, action, correlation_id)
            except Exception as e:
                error = str(e)
                logger.exception(
                    f"Failed to dispatch action {action.type.value}",
                    extra={
                        "request_id": request.request_id,
                        "action": action.type.value,
                        "rule": action.rule_name
                    }
                )

            outcome = DispatchOutcome(action=action, succeeded=error is None, error=error)
            outcomes.append(outcome)
            self._audit_outcome(request, outcome, correlation_id)

        return outcomes

    def _audit_outcome(
        self,
        request: ServiceRequest,
        outcome: DispatchOutcome,
        correlation_id: Optional[str]
    ) -> None:
        try:
            self.audit_writer.write_action_dispatched(
                request,
                outcome.action,
                succeeded=outcome.succeeded,
                error=outcome.error,
                correlation_id=correlation_id
            )
        except Exception:
            logger.exception(
                "Failed to audit action dispatch",
                extra={"request_id": request.request_id, "action": outcome.action.type.value}
            )

    # =========================================================================
    # Recipients
    # =========================================================================

    def resolve_recipients(self, request: ServiceRequest, recipients: Iterable[str]) -> List[str]:
        """
        Turn symbolic roles into outbox addresses

        ``requester`` and ``assignee`` resolve to users on the request (an
        unassigned request has no assignee), ``manager`` to the escalation
        role pool. Anything else is taken as an explicit address.
        """
        context = request.context
        resolved: List[str] = []

        for recipient in recipients:
            key = str(recipient).lower()
            if key == RecipientRole.REQUESTER.value:
                target = context.requester_id
            elif key == RecipientRole.ASSIGNEE.value:
                target = context.assigned_to
            elif key == RecipientRole.MANAGER.value:
                target = role_recipient(self.config.escalation_role)
            else:
                target = recipient

            if target and target not in resolved:
                resolved.append(target)

        return resolved

    @staticmethod
    def _payload(request: ServiceRequest, action: ActionDescriptor) -> Dict[str, object]:
        context = request.context
        return {
            "request_id": request.request_id,
            "tenant_id": request.tenant_id,
            "service_id": context.service_id,
            "status": request.status.value,
            "priority": context.priority.value,
            "rule": action.rule_name,
        }

    # =========================================================================
    # Handlers
    # =========================================================================

    def _handle_notification(
        self,
        request: ServiceRequest,
        action: ActionDescriptor,
        correlation_id: Optional[str]
    ) -> None:
        params = action.parameters
        template_key = self.notification_service.resolve_template(params.get("type"))
        recipients = self.resolve_recipients(request, params.get("recipients") or [])

        payload = self._payload(request, action)
        payload["notification_type"] = params.get("type")

        self.notification_service.enqueue_notification(
            template_key=template_key,
            recipients=recipients,
            payload=payload,
            request_id=request.request_id
        )

    def _handle_priority_escalation(
        self,
        request: ServiceRequest,
        action: ActionDescriptor,
        correlation_id: Optional[str]
    ) -> None:
        escalate_to = action.parameters.get("escalate_to") or self.config.escalation_role

        payload = self._payload(request, action)
        payload["escalate_to"] = escalate_to

        self.notification_service.enqueue_notification(
            template_key=NotificationTemplateKey.PRIORITY_ESCALATION,
            recipients=[role_recipient(escalate_to)],
            payload=payload,
            request_id=request.request_id
        )
        self.audit_writer.write_priority_escalated(
            request, escalate_to, correlation_id=correlation_id
        )

    def _handle_auto_assign(
        self,
        request: ServiceRequest,
        action: ActionDescriptor,
        correlation_id: Optional[str]
    ) -> None:
        role = action.parameters.get("assignee_role") or self.config.auto_assign_role

        payload = self._payload(request, action)
        payload["assignee_role"] = role
        payload["service_category"] = action.parameters.get("service_category")

        self.notification_service.enqueue_notification(
            template_key=NotificationTemplateKey.ASSIGNMENT_NEEDED,
            recipients=[role_recipient(role)],
            payload=payload,
            request_id=request.request_id
        )

    def _handle_auto_approve(
        self,
        request: ServiceRequest,
        action: ActionDescriptor,
        correlation_id: Optional[str]
    ) -> None:
        self.audit_writer.write_auto_approval_eligible(
            request, action.parameters.get("reason"), correlation_id=correlation_id
        )
