"""Workflow Metrics - Aggregation over the transition log

The engine itself keeps no history; this calculator works on the
TransitionRecord documents a caller persisted after each transition.
"""
from collections import Counter, defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from ..domain.models import (
    RuleEffectiveness, StateBottleneck, TransitionRecord, WorkflowMetrics
)
from ..domain.enums import RequestStatus
from ..utils.time import ensure_utc, seconds_between


class WorkflowMetricsCalculator:
    """
    Build WorkflowMetrics from transition records

    Dwell time in a status runs from the record that entered it to the next
    record for the same request that moved it elsewhere. Self-loops (e.g. a
    repeated SUBMIT while PENDING) do not end a dwell. Anchor records (the
    last record before the window, per request) only supply the start of a
    dwell already under way; they are not counted as transitions. A status
    entered before the first supplied record has no known start and is not
    measured.
    """

    def calculate(
        self,
        tenant_id: str,
        start_date: datetime,
        end_date: datetime,
        records: Iterable[TransitionRecord],
        anchors: Iterable[TransitionRecord] = ()
    ) -> WorkflowMetrics:
        records = list(records)
        transitions = [r for r in records if r.event is not None]
        by_type = Counter(r.event.value for r in transitions)

        ordered = sorted(
            [*anchors, *records], key=lambda r: (r.request_id, ensure_utc(r.occurred_at))
        )
        durations, requests_per_status = self._dwell_times(ordered)
        averages = {
            status.value: sum(samples) / len(samples)
            for status, samples in durations.items()
            if samples
        }

        return WorkflowMetrics(
            tenant_id=tenant_id,
            start_date=start_date,
            end_date=end_date,
            total_transitions=len(transitions),
            transitions_by_type=dict(by_type),
            average_processing_time=averages,
            bottlenecks=self._bottlenecks(durations, requests_per_status),
            rule_effectiveness=self._rule_effectiveness(transitions),
        )

    @staticmethod
    def _dwell_times(ordered: List[TransitionRecord]):
        durations: Dict[RequestStatus, List[float]] = defaultdict(list)
        requests_per_status: Dict[RequestStatus, Set[str]] = defaultdict(set)

        current_request: Optional[str] = None
        current_status: Optional[RequestStatus] = None
        entered_at: Optional[datetime] = None

        for record in ordered:
            if record.request_id != current_request:
                current_request = record.request_id
                current_status = record.to_status
                entered_at = record.occurred_at
                continue

            if record.to_status == current_status:
                continue

            durations[current_status].append(seconds_between(entered_at, record.occurred_at))
            requests_per_status[current_status].add(record.request_id)
            current_status = record.to_status
            entered_at = record.occurred_at

        return durations, requests_per_status

    @staticmethod
    def _bottlenecks(
        durations: Dict[RequestStatus, List[float]],
        requests_per_status: Dict[RequestStatus, Set[str]]
    ) -> List[StateBottleneck]:
        """Statuses whose mean dwell exceeds the mean over all dwells"""
        samples = [d for values in durations.values() for d in values]
        if not samples:
            return []
        overall = sum(samples) / len(samples)

        bottlenecks = [
            StateBottleneck(
                state=status,
                average_time=sum(values) / len(values),
                request_count=len(requests_per_status[status]),
            )
            for status, values in durations.items()
            if values and sum(values) / len(values) > overall
        ]
        bottlenecks.sort(key=lambda b: b.average_time, reverse=True)
        return bottlenecks

    @staticmethod
    def _rule_effectiveness(transitions: List[TransitionRecord]) -> List[RuleEffectiveness]:
        triggers: Counter = Counter()
        successes: Counter = Counter()

        for record in transitions:
            triggers.update(record.triggered_rules)
            successes.update(o.rule_name for o in record.rule_outcomes if o.succeeded)

        effectiveness = [
            RuleEffectiveness(
                rule_name=name,
                trigger_count=count,
                success_rate=round(min(successes[name], count) / count, 4),
            )
            for name, count in triggers.items()
        ]
        effectiveness.sort(key=lambda e: (-e.trigger_count, e.rule_name))
        return effectiveness
