"""
Workflow Engine - Service request state machine

The ServiceWorkflowEngine is a pure compute-and-report component:

    (current state, event) -> (new state, action descriptors, outcome)

It never persists state and never executes the actions it reports. Callers
(see ServiceRequestService) own the read -> process -> persist cycle, its
concurrency discipline, and the dispatch of returned actions.

Processing an event:
1. Resolve the transition for (status, event type) via TransitionResolver
2. Evaluate its guard (PermissionGuard predicates)
3. Overlay event data on the context and move to the target status
4. Await the transition's action callback, if any
5. Run the RuleEngine against the new state
6. Report the result

No-transition and guard rejections come back as failed results. Any other
fault is logged and reported as a generic internal error; nothing raised
inside processing escapes process_event.
"""

from typing import Dict, Iterable, List, Optional

from ..domain.models import (
    AvailableAction, RequestContext, RequestState, TransitionValidation,
    WorkflowEvent, WorkflowResult
)
from ..domain.enums import (
    RequestPriority, RequestStatus, TransitionOutcome, WorkflowEventType
)
from .permission_guard import get_required_permission
from .transition_resolver import Transition, TransitionResolver
from .rule_engine import RuleEngine, RuleEvaluation, WorkflowRule, build_default_rules
from ..utils.time import Clock, utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


INTERNAL_ERROR_MESSAGE = "Internal workflow error"

ACTION_LABELS: Dict[WorkflowEventType, str] = {
    WorkflowEventType.SUBMIT: "Submit Request",
    WorkflowEventType.APPROVE: "Approve",
    WorkflowEventType.REJECT: "Reject",
    WorkflowEventType.ASSIGN: "Assign",
    WorkflowEventType.START: "Start Work",
    WorkflowEventType.COMPLETE: "Complete",
    WorkflowEventType.CANCEL: "Cancel",
    WorkflowEventType.HOLD: "Put on Hold",
    WorkflowEventType.RESUME: "Resume",
}

ACTION_DESCRIPTIONS: Dict[WorkflowEventType, str] = {
    WorkflowEventType.SUBMIT: "Submit the service request for processing",
    WorkflowEventType.APPROVE: "Approve the request (moves to {next_status})",
    WorkflowEventType.REJECT: "Reject the service request",
    WorkflowEventType.ASSIGN: "Assign to a service provider",
    WorkflowEventType.START: "Begin working on the request",
    WorkflowEventType.COMPLETE: "Mark the request as completed",
    WorkflowEventType.CANCEL: "Cancel the service request",
    WorkflowEventType.HOLD: "Temporarily pause the request",
    WorkflowEventType.RESUME: "Resume work on the request",
}


class ServiceWorkflowEngine:
    """
    Finite-state machine for the service request lifecycle

    Holds only immutable configuration (transition table and rules), so a
    single instance can be shared across concurrent callers.
    """

    def __init__(
        self,
        transitions: Optional[Iterable[Transition]] = None,
        rules: Optional[Iterable[WorkflowRule]] = None,
        clock: Clock = utc_now
    ):
        self.clock = clock
        self.resolver = TransitionResolver(transitions)
        self.rule_engine = RuleEngine(
            build_default_rules(clock=clock) if rules is None else rules
        )

    # =========================================================================
    # Event processing
    # =========================================================================

    async def process_event(
        self,
        current_state: RequestState,
        event: WorkflowEvent
    ) -> WorkflowResult:
        """
        Apply an event to a request state

        Args:
            current_state: Status and context as last persisted
            event: Event submitted by an actor

        Returns:
            WorkflowResult; inspect ``success`` rather than catching exceptions
        """
        request_id = current_state.context.request_id
        status = current_state.status

        try:
            candidates = self.resolver.candidates(status, event.type)
            if not candidates:
                return self._failed(
                    current_state,
                    TransitionOutcome.NO_TRANSITION,
                    f"No valid transition from {status.value} with event {event.type.value}"
                )

            transition = self.resolver.resolve(status, current_state.context, event)
            if transition is None:
                logger.info(
                    f"Transition guard failed for {event.type.value} from {status.value}",
                    extra={
                        "request_id": request_id,
                        "event": event.type.value,
                        "actor_id": event.actor_id,
                        "from_status": status.value
                    }
                )
                return self._failed(
                    current_state,
                    TransitionOutcome.GUARD_REJECTED,
                    f"Transition guard failed for {event.type.value} from {status.value}"
                )

            new_state = RequestState(
                status=transition.to_status,
                context=current_state.context.with_overlay(event.data),
            )

            if transition.action is not None:
                await transition.action(new_state.context, event)

            evaluation = self.rule_engine.evaluate(new_state)

            logger.info(
                "Workflow transition processed",
                extra={
                    "request_id": request_id,
                    "from_status": status.value,
                    "to_status": new_state.status.value,
                    "event": event.type.value,
                    "actor_id": event.actor_id
                }
            )

            return WorkflowResult(
                new_state=new_state,
                actions=evaluation.actions,
                triggered_rules=evaluation.triggered_rules,
                success=True,
                outcome=TransitionOutcome.SUCCESS,
            )

        except Exception:
            logger.exception(
                "Failed to process workflow event",
                extra={
                    "request_id": request_id,
                    "from_status": status.value,
                    "event": event.type.value,
                    "actor_id": event.actor_id
                }
            )
            return self._failed(
                current_state, TransitionOutcome.INTERNAL_ERROR, INTERNAL_ERROR_MESSAGE
            )

    def evaluate_rules(
        self,
        state: RequestState,
        only_time_based: bool = False
    ) -> RuleEvaluation:
        """Run the rule engine against a state without transitioning it"""
        return self.rule_engine.evaluate(state, only_time_based=only_time_based)

    @staticmethod
    def _failed(
        current_state: RequestState,
        outcome: TransitionOutcome,
        error: str
    ) -> WorkflowResult:
        return WorkflowResult(
            new_state=current_state,
            actions=[],
            triggered_rules=[],
            success=False,
            outcome=outcome,
            error=error,
        )

    # =========================================================================
    # Introspection
    # =========================================================================

    def validate_transition(
        self,
        status: RequestStatus,
        event: WorkflowEvent,
        context: Optional[RequestContext] = None
    ) -> TransitionValidation:
        """
        Check whether an event would be accepted, without side effects

        Without a context, guards run against a synthetic one in which the
        actor is the requester and nothing is assigned.
        """
        if not self.resolver.candidates(status, event.type):
            return TransitionValidation(
                valid=False,
                error=f"No valid transition from {status.value} with event {event.type.value}",
            )

        check_context = context or self._mock_context(event.actor_id, "validation")

        try:
            transition = self.resolver.resolve(status, check_context, event)
        except Exception:
            logger.exception(
                "Failed to validate workflow transition",
                extra={"from_status": status.value, "event": event.type.value}
            )
            return TransitionValidation(valid=False, error=INTERNAL_ERROR_MESSAGE)

        if transition is None:
            return TransitionValidation(
                valid=False,
                error=f"Insufficient permissions for {event.type.value}",
            )

        return TransitionValidation(valid=True, next_status=transition.to_status)

    def get_available_actions(
        self,
        status: RequestStatus,
        actor_id: str,
        context: Optional[RequestContext] = None
    ) -> List[AvailableAction]:
        """
        List events the actor could submit from a status

        Advisory only: without a real context the guards run against a
        permissive mock, so a listed action can still fail at processing.
        """
        check_context = context or self._mock_context(actor_id, "mock")
        actions: List[AvailableAction] = []
        seen = set()

        for transition in self.resolver.get_outgoing_transitions(status):
            if transition.event in seen:
                continue
            probe = WorkflowEvent(type=transition.event, actor_id=actor_id)
            try:
                allowed = transition.allows(check_context, probe)
            except Exception:
                logger.exception(
                    f"Guard raised while listing actions for {transition.event.value}",
                    extra={"from_status": status.value, "event": transition.event.value}
                )
                allowed = False
            if not allowed:
                continue

            seen.add(transition.event)
            actions.append(AvailableAction(
                action=transition.event,
                label=ACTION_LABELS.get(transition.event, transition.event.value),
                description=ACTION_DESCRIPTIONS.get(
                    transition.event, f"Perform {transition.event.value}"
                ).format(next_status=transition.to_status.value),
                requires_permission=get_required_permission(transition.event),
            ))

        return actions

    def is_terminal(self, status: RequestStatus) -> bool:
        return self.resolver.is_terminal(status)

    @staticmethod
    def _mock_context(actor_id: str, placeholder: str) -> RequestContext:
        return RequestContext(
            request_id=placeholder,
            service_id=placeholder,
            requester_id=actor_id,
            requires_approval=False,
            priority=RequestPriority.NORMAL,
            metadata={},
        )
