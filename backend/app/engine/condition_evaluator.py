"""Condition Evaluator - Declarative rule conditions over a request context

Conditions name a context field (see ``CONDITION_FIELDS``) and an operator.
Values are read through RequestContext.field_value, so metadata goes through
the same typed accessors as the rest of the engine. No eval() or exec().
"""
from typing import Any, Callable, Dict

from ..domain.models import Condition, ConditionGroup, RequestContext
from ..domain.enums import ConditionOperator
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _equals(actual: Any, expected: Any) -> bool:
    return actual == expected


def _less_than(actual: Any, expected: Any) -> bool:
    # An absent value never satisfies a threshold
    if actual is None or expected is None:
        return False
    return float(actual) < float(expected)


def _is_empty(actual: Any, expected: Any) -> bool:
    return actual is None or actual == ""


OPERATORS: Dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS: _equals,
    ConditionOperator.LESS_THAN: _less_than,
    ConditionOperator.IS_EMPTY: _is_empty,
}


class ConditionEvaluator:
    """Evaluate condition groups against a RequestContext"""

    def evaluate(self, condition_group: ConditionGroup, context: RequestContext) -> bool:
        """
        Evaluate a condition group

        An empty group holds. A condition that cannot be evaluated (unknown
        field, incomparable values) counts as not met.
        """
        if not condition_group.conditions:
            return True

        results = [self._evaluate_single(c, context) for c in condition_group.conditions]

        if condition_group.logic.upper() == "OR":
            return any(results)
        return all(results)

    def as_predicate(
        self,
        condition_group: ConditionGroup
    ) -> Callable[[RequestContext], bool]:
        """Bind a condition group into a rule condition"""
        def predicate(context: RequestContext) -> bool:
            return self.evaluate(condition_group, context)
        return predicate

    def _evaluate_single(self, condition: Condition, context: RequestContext) -> bool:
        try:
            actual = context.field_value(condition.field)
            return OPERATORS[condition.operator](actual, condition.value)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                f"Condition on {condition.field} not evaluable: {e}",
                extra={"request_id": context.request_id}
            )
            return False
