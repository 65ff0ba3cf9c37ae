"""Service Request Service - Service request lifecycle business logic

Owns the read -> process -> persist cycle around the workflow engine:
loads a request, asks the engine for the outcome of an event, persists the
new state under optimistic concurrency, dispatches the reported actions and
records history for metrics and audit.
"""
import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..domain.models import (
    AppliedEvent, AvailableAction, DispatchOutcome, RequestContext, RuleOutcome,
    ServiceRequest, TransitionRecord, TransitionValidation, WorkflowEvent,
    WorkflowMetrics, WorkflowResult, normalize_metadata
)
from ..domain.enums import RequestPriority, RequestStatus, TransitionOutcome
from ..domain.errors import (
    DomainError, EngineError, PermissionDeniedError, TransitionNotFoundError, ValidationError
)
from ..repositories.service_request_repo import ServiceRequestRepository
from ..repositories.transition_log_repo import TransitionLogRepository
from ..engine.engine import ServiceWorkflowEngine
from ..engine.metrics import WorkflowMetricsCalculator
from ..engine.audit_writer import AuditWriter
from .action_dispatcher import ActionDispatcher
from ..utils.idgen import generate_correlation_id, generate_request_id, generate_transition_id
from ..utils.time import Clock, format_iso, utc_now
from ..utils.logger import get_logger, set_correlation_id

logger = get_logger(__name__)


# Returns True when a rule may fire for a request during a sweep
SweepFilter = Callable[[str, str], bool]

OUTCOME_ERRORS = {
    TransitionOutcome.NO_TRANSITION: TransitionNotFoundError,
    TransitionOutcome.GUARD_REJECTED: PermissionDeniedError,
    TransitionOutcome.INTERNAL_ERROR: EngineError,
}


class ServiceRequestService:
    """Service for service request operations"""

    def __init__(
        self,
        request_repo: Optional[ServiceRequestRepository] = None,
        transition_repo: Optional[TransitionLogRepository] = None,
        engine: Optional[ServiceWorkflowEngine] = None,
        dispatcher: Optional[ActionDispatcher] = None,
        audit_writer: Optional[AuditWriter] = None,
        metrics_calculator: Optional[WorkflowMetricsCalculator] = None,
        clock: Clock = utc_now
    ):
        self.clock = clock
        self.request_repo = request_repo or ServiceRequestRepository()
        self.transition_repo = transition_repo or TransitionLogRepository()
        self.engine = engine or ServiceWorkflowEngine(clock=clock)
        self.audit_writer = audit_writer or AuditWriter()
        self.dispatcher = dispatcher or ActionDispatcher(audit_writer=self.audit_writer)
        self.metrics_calculator = metrics_calculator or WorkflowMetricsCalculator()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create_request(
        self,
        tenant_id: str,
        service_id: str,
        requester_id: str,
        requires_approval: bool = False,
        priority: RequestPriority = RequestPriority.NORMAL,
        metadata: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None
    ) -> ServiceRequest:
        """Create a new service request in PENDING"""
        missing = [
            name for name, value in (
                ("tenant_id", tenant_id), ("service_id", service_id), ("requester_id", requester_id)
            )
            if not value
        ]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={"fields": missing}
            )

        correlation_id = correlation_id or generate_correlation_id()
        set_correlation_id(correlation_id)

        now = self.clock()
        request_id = generate_request_id()

        metadata = normalize_metadata(metadata)
        metadata.setdefault("created_at", format_iso(now))

        request = ServiceRequest(
            request_id=request_id,
            tenant_id=tenant_id,
            status=RequestStatus.PENDING,
            context=RequestContext(
                request_id=request_id,
                service_id=service_id,
                requester_id=requester_id,
                requires_approval=requires_approval,
                priority=priority,
                metadata=metadata,
            ),
            version=1,
            created_at=now,
            updated_at=now,
        )

        self.request_repo.create_request(request)

        # Creation record anchors dwell time in the first status
        self.transition_repo.append(TransitionRecord(
            transition_id=generate_transition_id(),
            tenant_id=tenant_id,
            request_id=request_id,
            from_status=None,
            to_status=RequestStatus.PENDING,
            event=None,
            actor_id=requester_id,
            occurred_at=now,
            correlation_id=correlation_id,
        ))
        self.audit_writer.write_request_created(request, correlation_id=correlation_id)

        logger.info(
            f"Created service request {request_id}",
            extra={"request_id": request_id, "tenant_id": tenant_id, "actor_id": requester_id}
        )
        return request

    async def apply_event(
        self,
        request_id: str,
        event: WorkflowEvent,
        correlation_id: Optional[str] = None
    ) -> AppliedEvent:
        """
        Apply an event to a stored request

        Raises:
            ServiceRequestNotFoundError: Unknown request
            TransitionNotFoundError: Event not valid from the current status
            PermissionDeniedError: Transition guard rejected the actor
            EngineError: Engine fault while processing
            ConcurrencyError: Request changed between read and write
        """
        correlation_id = correlation_id or generate_correlation_id()
        set_correlation_id(correlation_id)

        request = self.request_repo.get_request_or_raise(request_id)
        from_status = request.status

        result = await self.engine.process_event(request.to_state(), event)

        if not result.success:
            self.audit_writer.write_transition_rejected(
                request,
                event.type,
                event.actor_id,
                reason=result.error or result.outcome.value,
                correlation_id=correlation_id
            )
            error = self._error_for(result, request, event)
            logger.warning(
                f"Event {event.type.value} rejected for request {request_id}",
                extra=error.to_dict()
            )
            raise error

        persisted = self.request_repo.update_state(
            request_id,
            result.new_state.status,
            result.new_state.context,
            expected_version=request.version
        )

        outcomes = self.dispatcher.dispatch(persisted, result.actions, correlation_id=correlation_id)

        self.transition_repo.append(TransitionRecord(
            transition_id=generate_transition_id(),
            tenant_id=persisted.tenant_id,
            request_id=request_id,
            from_status=from_status,
            to_status=persisted.status,
            event=event.type,
            actor_id=event.actor_id,
            occurred_at=self.clock(),
            triggered_rules=list(result.triggered_rules),
            rule_outcomes=self._rule_outcomes(result.triggered_rules, outcomes),
            correlation_id=correlation_id,
        ))
        self.audit_writer.write_transition(
            persisted,
            from_status,
            persisted.status,
            event.type,
            event.actor_id,
            triggered_rules=result.triggered_rules,
            correlation_id=correlation_id
        )

        return AppliedEvent(request=persisted, result=result, dispatch_outcomes=outcomes)

    @staticmethod
    def _error_for(
        result: WorkflowResult,
        request: ServiceRequest,
        event: WorkflowEvent
    ) -> DomainError:
        error_cls = OUTCOME_ERRORS.get(result.outcome, EngineError)
        return error_cls(
            result.error or "Workflow event failed",
            details={
                "request_id": request.request_id,
                "status": request.status.value,
                "event": event.type.value,
                "outcome": result.outcome.value
            }
        )

    @staticmethod
    def _rule_outcomes(
        triggered_rules: List[str],
        outcomes: List[DispatchOutcome]
    ) -> List[RuleOutcome]:
        # A rule succeeded when every action it emitted was dispatched
        return [
            RuleOutcome(
                rule_name=rule_name,
                succeeded=all(
                    outcome.succeeded
                    for outcome in outcomes
                    if outcome.action.rule_name == rule_name
                ),
            )
            for rule_name in triggered_rules
        ]

    # =========================================================================
    # Queries
    # =========================================================================

    def get_request(self, request_id: str) -> ServiceRequest:
        return self.request_repo.get_request_or_raise(request_id)

    def list_requests(
        self,
        tenant_id: str,
        statuses: Optional[List[RequestStatus]] = None,
        requester_id: Optional[str] = None,
        assigned_to: Optional[str] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[ServiceRequest]:
        return self.request_repo.list_requests(
            tenant_id,
            statuses=statuses,
            requester_id=requester_id,
            assigned_to=assigned_to,
            skip=skip,
            limit=limit
        )

    def get_request_history(self, request_id: str) -> List[TransitionRecord]:
        """Transition records of one request, oldest first"""
        self.request_repo.get_request_or_raise(request_id)
        return self.transition_repo.list_for_request(request_id)

    def get_available_actions(self, request_id: str, actor_id: str) -> List[AvailableAction]:
        """Events the actor may submit, checked against the stored context"""
        request = self.request_repo.get_request_or_raise(request_id)
        return self.engine.get_available_actions(request.status, actor_id, request.context)

    def validate_event(self, request_id: str, event: WorkflowEvent) -> TransitionValidation:
        request = self.request_repo.get_request_or_raise(request_id)
        return self.engine.validate_transition(request.status, event, request.context)

    def get_workflow_metrics(
        self,
        tenant_id: str,
        start_date: datetime,
        end_date: datetime
    ) -> WorkflowMetrics:
        """Aggregate the tenant's transition log over a date range"""
        if start_date > end_date:
            raise ValidationError(
                "start_date must not be after end_date",
                details={"start_date": format_iso(start_date), "end_date": format_iso(end_date)}
            )
        records = self.transition_repo.list_for_tenant(tenant_id, start_date, end_date)
        anchors = self.transition_repo.list_latest_before(
            tenant_id, {r.request_id for r in records}, start_date
        ) if records else []
        return self.metrics_calculator.calculate(
            tenant_id, start_date, end_date, records, anchors=anchors
        )

    # =========================================================================
    # Time-based rules
    # =========================================================================

    async def sweep_open_requests(
        self,
        should_fire: Optional[SweepFilter] = None,
        limit: int = 200
    ) -> int:
        """
        Evaluate time-based rules against open requests and dispatch their actions

        Args:
            should_fire: Called with (request_id, rule_name); rules it rejects
                are skipped for this sweep
            limit: Maximum number of requests to examine

        Returns:
            Number of (request, rule) firings dispatched
        """
        fired = 0

        for request in self.request_repo.list_open_requests(limit=limit):
            try:
                evaluation = self.engine.evaluate_rules(request.to_state(), only_time_based=True)
                for rule_name in evaluation.triggered_rules:
                    if should_fire is not None and not should_fire(request.request_id, rule_name):
                        continue
                    actions = [a for a in evaluation.actions if a.rule_name == rule_name]
                    self.dispatcher.dispatch(request, actions, correlation_id=generate_correlation_id())
                    fired += 1
            except Exception:
                logger.exception(
                    f"Rule sweep failed for request {request.request_id}",
                    extra={"request_id": request.request_id}
                )

            await asyncio.sleep(0)  # Yield between requests

        if fired:
            logger.info(f"Rule sweep dispatched {fired} rule firing(s)")
        return fired
