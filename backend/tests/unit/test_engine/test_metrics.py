"""Tests for WorkflowMetricsCalculator"""
from datetime import timedelta

import pytest

from app.domain.enums import RequestStatus, WorkflowEventType
from app.domain.models import RuleOutcome, TransitionRecord
from app.engine.metrics import WorkflowMetricsCalculator


@pytest.fixture
def calculator():
    return WorkflowMetricsCalculator()


@pytest.fixture
def record(fixed_now):
    counter = {"n": 0}

    def _make(request_id, to_status, minutes, event=None, from_status=None,
              triggered_rules=(), rule_outcomes=()):
        counter["n"] += 1
        return TransitionRecord(
            transition_id=f"TRN-{counter['n']}",
            tenant_id="tenant-1",
            request_id=request_id,
            from_status=from_status,
            to_status=to_status,
            event=event,
            actor_id="u1",
            occurred_at=fixed_now + timedelta(minutes=minutes),
            triggered_rules=list(triggered_rules),
            rule_outcomes=list(rule_outcomes),
        )
    return _make


def test_empty_log(calculator, fixed_now):
    metrics = calculator.calculate("tenant-1", fixed_now, fixed_now, [])

    assert metrics.total_transitions == 0
    assert metrics.transitions_by_type == {}
    assert metrics.average_processing_time == {}
    assert metrics.bottlenecks == []
    assert metrics.rule_effectiveness == []


def test_counts_and_dwell_times(calculator, record, fixed_now):
    records = [
        record("r1", RequestStatus.PENDING, 0),
        record("r1", RequestStatus.APPROVED, 10, WorkflowEventType.SUBMIT, RequestStatus.PENDING),
        record("r1", RequestStatus.IN_PROGRESS, 70, WorkflowEventType.ASSIGN, RequestStatus.APPROVED),
        record("r2", RequestStatus.PENDING, 0),
        record("r2", RequestStatus.APPROVED, 30, WorkflowEventType.SUBMIT, RequestStatus.PENDING),
    ]

    metrics = calculator.calculate("tenant-1", fixed_now, fixed_now + timedelta(days=1), records)

    assert metrics.total_transitions == 3
    assert metrics.transitions_by_type == {"SUBMIT": 2, "ASSIGN": 1}
    assert metrics.average_processing_time == {
        "PENDING": pytest.approx(20 * 60),
        "APPROVED": pytest.approx(60 * 60),
    }
    assert [b.state for b in metrics.bottlenecks] == [RequestStatus.APPROVED]
    assert metrics.bottlenecks[0].request_count == 1


def test_self_loop_does_not_end_dwell(calculator, record, fixed_now):
    records = [
        record("r1", RequestStatus.PENDING, 0),
        record("r1", RequestStatus.PENDING, 5, WorkflowEventType.SUBMIT, RequestStatus.PENDING),
        record("r1", RequestStatus.APPROVED, 15, WorkflowEventType.APPROVE, RequestStatus.PENDING),
    ]

    metrics = calculator.calculate("tenant-1", fixed_now, fixed_now, records)

    assert metrics.average_processing_time == {"PENDING": pytest.approx(15 * 60)}
    assert metrics.total_transitions == 2


def test_unordered_input_is_sorted(calculator, record, fixed_now):
    records = [
        record("r1", RequestStatus.APPROVED, 10, WorkflowEventType.SUBMIT, RequestStatus.PENDING),
        record("r1", RequestStatus.PENDING, 0),
    ]

    metrics = calculator.calculate("tenant-1", fixed_now, fixed_now, records)

    assert metrics.average_processing_time == {"PENDING": pytest.approx(600)}


def test_anchor_starts_dwell_without_counting_as_transition(calculator, record, fixed_now):
    anchor = record(
        "r1", RequestStatus.APPROVED, -90, WorkflowEventType.SUBMIT, RequestStatus.PENDING,
        triggered_rules=["AUTO_APPROVE_LOW_VALUE"],
    )
    records = [
        record("r1", RequestStatus.IN_PROGRESS, 30, WorkflowEventType.ASSIGN, RequestStatus.APPROVED),
    ]

    metrics = calculator.calculate(
        "tenant-1", fixed_now, fixed_now + timedelta(hours=1), records, anchors=[anchor]
    )

    assert metrics.total_transitions == 1
    assert metrics.transitions_by_type == {"ASSIGN": 1}
    assert metrics.average_processing_time == {"APPROVED": pytest.approx(120 * 60)}
    assert metrics.rule_effectiveness == []


def test_rule_effectiveness(calculator, record, fixed_now):
    records = [
        record("r1", RequestStatus.APPROVED, 1, WorkflowEventType.SUBMIT,
               triggered_rules=["AUTO_APPROVE_LOW_VALUE"],
               rule_outcomes=[RuleOutcome(rule_name="AUTO_APPROVE_LOW_VALUE", succeeded=True)]),
        record("r2", RequestStatus.APPROVED, 2, WorkflowEventType.SUBMIT,
               triggered_rules=["AUTO_APPROVE_LOW_VALUE", "OVERDUE_NOTIFICATION"],
               rule_outcomes=[
                   RuleOutcome(rule_name="AUTO_APPROVE_LOW_VALUE", succeeded=False),
                   RuleOutcome(rule_name="OVERDUE_NOTIFICATION", succeeded=True),
               ]),
    ]

    metrics = calculator.calculate("tenant-1", fixed_now, fixed_now, records)

    effectiveness = {e.rule_name: e for e in metrics.rule_effectiveness}
    assert [e.rule_name for e in metrics.rule_effectiveness] == [
        "AUTO_APPROVE_LOW_VALUE", "OVERDUE_NOTIFICATION"
    ]
    assert effectiveness["AUTO_APPROVE_LOW_VALUE"].trigger_count == 2
    assert effectiveness["AUTO_APPROVE_LOW_VALUE"].success_rate == 0.5
    assert effectiveness["OVERDUE_NOTIFICATION"].success_rate == 1.0
