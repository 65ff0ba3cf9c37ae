"""Workflow Engine - Service request state machine"""
from .engine import ServiceWorkflowEngine
from .transition_resolver import Transition, TransitionResolver, DEFAULT_TRANSITIONS
from .rule_engine import RuleEngine, WorkflowRule, build_default_rules
from .condition_evaluator import ConditionEvaluator
from .metrics import WorkflowMetricsCalculator
from .audit_writer import AuditWriter

__all__ = [
    "ServiceWorkflowEngine",
    "Transition",
    "TransitionResolver",
    "DEFAULT_TRANSITIONS",
    "RuleEngine",
    "WorkflowRule",
    "build_default_rules",
    "ConditionEvaluator",
    "WorkflowMetricsCalculator",
    "AuditWriter",
]
