"""Transition Resolver - Determine next status based on events and guards"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from ..domain.models import RequestContext, WorkflowEvent
from ..domain.enums import RequestStatus, WorkflowEventType
from ..domain.errors import WorkflowConfigurationError
from . import permission_guard as guards
from ..utils.logger import get_logger

logger = get_logger(__name__)


Guard = Callable[[RequestContext, WorkflowEvent], bool]
TransitionAction = Callable[[RequestContext, WorkflowEvent], Awaitable[Any]]


@dataclass(frozen=True)
class Transition:
    """A permitted (status, event) -> status move"""
    from_status: RequestStatus
    event: WorkflowEventType
    to_status: RequestStatus
    guard: Optional[Guard] = None
    action: Optional[TransitionAction] = None

    def allows(self, context: RequestContext, event: WorkflowEvent) -> bool:
        return self.guard is None or bool(self.guard(context, event))


_CANCELLABLE = (
    RequestStatus.PENDING,
    RequestStatus.APPROVED,
    RequestStatus.IN_PROGRESS,
    RequestStatus.ON_HOLD,
)

DEFAULT_TRANSITIONS: Tuple[Transition, ...] = (
    # Submission
    Transition(RequestStatus.PENDING, WorkflowEventType.SUBMIT, RequestStatus.APPROVED, guards.skips_approval),
    Transition(RequestStatus.PENDING, WorkflowEventType.SUBMIT, RequestStatus.PENDING, guards.awaits_approval),
    # Approval
    Transition(RequestStatus.PENDING, WorkflowEventType.APPROVE, RequestStatus.APPROVED, guards.can_approve),
    Transition(RequestStatus.PENDING, WorkflowEventType.REJECT, RequestStatus.REJECTED, guards.can_approve),
    # Assignment and work
    Transition(RequestStatus.APPROVED, WorkflowEventType.ASSIGN, RequestStatus.IN_PROGRESS, guards.can_assign),
    Transition(RequestStatus.APPROVED, WorkflowEventType.START, RequestStatus.IN_PROGRESS, guards.can_start),
    Transition(RequestStatus.IN_PROGRESS, WorkflowEventType.COMPLETE, RequestStatus.COMPLETED, guards.can_complete),
    # Hold and resume
    Transition(RequestStatus.IN_PROGRESS, WorkflowEventType.HOLD, RequestStatus.ON_HOLD, guards.can_hold),
    Transition(RequestStatus.ON_HOLD, WorkflowEventType.RESUME, RequestStatus.IN_PROGRESS, guards.can_resume),
) + tuple(
    Transition(status, WorkflowEventType.CANCEL, RequestStatus.CANCELLED, guards.can_cancel)
    for status in _CANCELLABLE
)


class TransitionResolver:
    """
    Resolve transitions for a (status, event) pair

    Given current status S and event E:
    1. Look up candidates keyed by (S, E)
    2. Evaluate each candidate's guard
    3. Exactly one passing guard -> that transition
    4. None passing -> None; more than one -> WorkflowConfigurationError
    """

    def __init__(self, transitions: Optional[Iterable[Transition]] = None):
        self._transitions: Tuple[Transition, ...] = tuple(
            DEFAULT_TRANSITIONS if transitions is None else transitions
        )
        self._table: Dict[Tuple[RequestStatus, WorkflowEventType], Tuple[Transition, ...]] = (
            self._build_table(self._transitions)
        )

    @staticmethod
    def _build_table(
        transitions: Tuple[Transition, ...]
    ) -> Dict[Tuple[RequestStatus, WorkflowEventType], Tuple[Transition, ...]]:
        """Build (from_status, event) -> candidates lookup"""
        table: Dict[Tuple[RequestStatus, WorkflowEventType], List[Transition]] = {}
        for t in transitions:
            table.setdefault((t.from_status, t.event), []).append(t)

        for (status, event), candidates in table.items():
            unguarded = [t for t in candidates if t.guard is None]
            if len(candidates) > 1 and unguarded:
                raise WorkflowConfigurationError(
                    f"Unguarded transition from {status.value} on {event.value} shadows its siblings",
                    details={"from_status": status.value, "event": event.value}
                )

        return {key: tuple(value) for key, value in table.items()}

    @property
    def transitions(self) -> Tuple[Transition, ...]:
        return self._transitions

    def candidates(
        self,
        status: RequestStatus,
        event_type: WorkflowEventType
    ) -> Tuple[Transition, ...]:
        """All transitions declared for (status, event), guards not evaluated"""
        return self._table.get((status, event_type), ())

    def resolve(
        self,
        status: RequestStatus,
        context: RequestContext,
        event: WorkflowEvent
    ) -> Optional[Transition]:
        """
        Pick the transition whose guard passes

        Returns:
            The transition, or None if no candidate's guard passes

        Raises:
            WorkflowConfigurationError: If more than one guard passes
        """
        passing = [t for t in self.candidates(status, event.type) if t.allows(context, event)]

        if len(passing) > 1:
            raise WorkflowConfigurationError(
                f"Ambiguous transition from {status.value} on {event.type.value}",
                details={
                    "from_status": status.value,
                    "event": event.type.value,
                    "targets": [t.to_status.value for t in passing]
                }
            )

        if not passing:
            return None

        selected = passing[0]
        logger.debug(
            f"Resolved transition: {status.value} -> {selected.to_status.value}",
            extra={
                "from_status": status.value,
                "to_status": selected.to_status.value,
                "event": event.type.value
            }
        )
        return selected

    def get_outgoing_transitions(self, status: RequestStatus) -> List[Transition]:
        """All transitions leaving a status, in declaration order"""
        return [t for t in self._transitions if t.from_status == status]

    def get_events_for_status(self, status: RequestStatus) -> List[WorkflowEventType]:
        """Distinct events accepted from a status, in declaration order"""
        events: List[WorkflowEventType] = []
        for t in self.get_outgoing_transitions(status):
            if t.event not in events:
                events.append(t.event)
        return events

    def is_terminal(self, status: RequestStatus) -> bool:
        return not self.get_outgoing_transitions(status)
