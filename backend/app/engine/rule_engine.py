"""Rule Engine - Post-transition automation rules

Rules are evaluated in declaration order against the state a transition
produced. Every matching rule contributes its actions; a rule whose
condition raises is logged and skipped without affecting the others.
The engine only reports action descriptors, it never executes them.
"""
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Tuple

from ..config.settings import Settings, settings as default_settings
from ..domain.models import (
    ActionDescriptor, Condition, ConditionGroup, RequestContext, RequestState
)
from ..domain.enums import (
    ConditionOperator, RecipientRole, RequestPriority, WorkflowActionType
)
from .condition_evaluator import ConditionEvaluator
from ..utils.time import Clock, hours_between, is_overdue, utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


RuleCondition = Callable[[RequestContext], bool]


@dataclass(frozen=True)
class WorkflowRule:
    """A condition paired with the actions it emits when it holds"""
    name: str
    description: str
    condition: RuleCondition
    actions: Tuple[ActionDescriptor, ...] = field(default_factory=tuple)
    time_based: bool = False  # Outcome depends on the clock, not just the context


@dataclass
class RuleEvaluation:
    """Actions emitted by one pass of the rule engine"""
    actions: List[ActionDescriptor] = field(default_factory=list)
    triggered_rules: List[str] = field(default_factory=list)
    failed_rules: List[str] = field(default_factory=list)


class RuleEngine:
    """Evaluate an ordered rule list against a request state"""

    def __init__(self, rules: Iterable[WorkflowRule]):
        self._rules: Tuple[WorkflowRule, ...] = tuple(rules)

    @property
    def rules(self) -> Tuple[WorkflowRule, ...]:
        return self._rules

    def evaluate(
        self,
        state: RequestState,
        only_time_based: bool = False
    ) -> RuleEvaluation:
        """
        Run every rule against the state

        Args:
            state: State produced by a transition
            only_time_based: Restrict evaluation to clock-dependent rules

        Returns:
            RuleEvaluation with actions tagged by the rule that emitted them
        """
        evaluation = RuleEvaluation()
        request_id = state.context.request_id

        for rule in self._rules:
            if only_time_based and not rule.time_based:
                continue
            try:
                matched = bool(rule.condition(state.context))
            except Exception:
                logger.exception(
                    f"Error applying workflow rule {rule.name}",
                    extra={"rule": rule.name, "request_id": request_id}
                )
                evaluation.failed_rules.append(rule.name)
                continue

            if not matched:
                continue

            logger.info(
                f"Workflow rule triggered: {rule.name}",
                extra={"rule": rule.name, "request_id": request_id}
            )
            evaluation.triggered_rules.append(rule.name)
            evaluation.actions.extend(
                action.model_copy(update={"rule_name": rule.name}, deep=True)
                for action in rule.actions
            )

        return evaluation


# ============================================================================
# Default rules
# ============================================================================

def _urgent_and_stale(hours: float, clock: Clock) -> RuleCondition:
    def condition(context: RequestContext) -> bool:
        if context.priority != RequestPriority.URGENT:
            return False
        created_at = context.get_created_at()
        if created_at is None:
            return False
        return hours_between(created_at, clock()) > hours
    return condition


def _past_scheduled_delivery(clock: Clock) -> RuleCondition:
    def condition(context: RequestContext) -> bool:
        return is_overdue(context.get_scheduled_delivery_time(), now=clock())
    return condition


def build_default_rules(
    config: Optional[Settings] = None,
    clock: Clock = utc_now,
    evaluator: Optional[ConditionEvaluator] = None
) -> List[WorkflowRule]:
    """
    Build the standard automation rules from configuration

    Args:
        config: Settings supplying thresholds (defaults to app settings)
        clock: Time source for elapsed-time rules
        evaluator: Evaluator for the declarative conditions
    """
    config = config or default_settings
    evaluator = evaluator or ConditionEvaluator()

    rules: List[WorkflowRule] = [
        WorkflowRule(
            name="AUTO_APPROVE_LOW_VALUE",
            description=f"Auto-approve requests under {config.auto_approve_max_amount:g}",
            condition=evaluator.as_predicate(ConditionGroup(
                logic="AND",
                conditions=[
                    Condition(
                        field="total_amount",
                        operator=ConditionOperator.LESS_THAN,
                        value=config.auto_approve_max_amount,
                    ),
                    Condition(
                        field="requires_approval",
                        operator=ConditionOperator.EQUALS,
                        value=False,
                    ),
                ],
            )),
            actions=(
                ActionDescriptor(
                    type=WorkflowActionType.AUTO_APPROVE,
                    parameters={"reason": "Low value auto-approval"},
                ),
            ),
        ),
    ]

    for category in config.auto_assign_categories_list:
        rules.append(WorkflowRule(
            name=f"AUTO_ASSIGN_BY_CATEGORY_{category}",
            description=f"Auto-assign {category} requests to {config.auto_assign_role}",
            condition=evaluator.as_predicate(ConditionGroup(
                logic="AND",
                conditions=[
                    Condition(
                        field="service_category",
                        operator=ConditionOperator.EQUALS,
                        value=category,
                    ),
                    Condition(field="assigned_to", operator=ConditionOperator.IS_EMPTY),
                ],
            )),
            actions=(
                ActionDescriptor(
                    type=WorkflowActionType.AUTO_ASSIGN,
                    parameters={
                        "assignee_role": config.auto_assign_role,
                        "service_category": category,
                    },
                ),
            ),
        ))

    rules.append(WorkflowRule(
        name="URGENT_PRIORITY_ESCALATION",
        description=(
            f"Escalate urgent requests not processed within "
            f"{config.urgent_escalation_hours:g} hour(s)"
        ),
        condition=_urgent_and_stale(config.urgent_escalation_hours, clock),
        actions=(
            ActionDescriptor(
                type=WorkflowActionType.PRIORITY_ESCALATION,
                parameters={"escalate_to": config.escalation_role},
            ),
            ActionDescriptor(
                type=WorkflowActionType.NOTIFICATION,
                parameters={
                    "type": "URGENT_ESCALATION",
                    "recipients": [RecipientRole.MANAGER.value],
                },
            ),
        ),
        time_based=True,
    ))

    rules.append(WorkflowRule(
        name="OVERDUE_NOTIFICATION",
        description="Notify about requests past their scheduled delivery time",
        condition=_past_scheduled_delivery(clock),
        actions=(
            ActionDescriptor(
                type=WorkflowActionType.NOTIFICATION,
                parameters={
                    "type": "OVERDUE_REQUEST",
                    "recipients": [
                        RecipientRole.REQUESTER.value,
                        RecipientRole.ASSIGNEE.value,
                        RecipientRole.MANAGER.value,
                    ],
                },
            ),
        ),
        time_based=True,
    ))

    return rules
