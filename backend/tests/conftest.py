"""
Pytest Configuration and Fixtures

This file contains shared fixtures and configuration for all tests.
"""

from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from app.config.settings import Settings
from app.domain.enums import RequestStatus
from app.domain.models import RequestContext, RequestState, ServiceRequest
from app.engine.engine import ServiceWorkflowEngine
from app.engine.rule_engine import build_default_rules


FIXED_NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Clock frozen at FIXED_NOW"""
    return lambda: FIXED_NOW


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        mongo_db="cowork_services_test",
        auto_approve_max_amount=50.0,
        auto_assign_categories="PRINTING",
        auto_assign_role="SERVICE_PROVIDER",
        urgent_escalation_hours=1.0,
        escalation_role="MANAGER",
        rule_sweep_interval_seconds=60,
        rule_sweep_cooldown_minutes=240,
        rule_sweep_batch_size=200,
    )


@pytest.fixture
def make_context() -> Callable[..., RequestContext]:
    """Build a RequestContext; keyword overrides replace the defaults"""
    def _make(**overrides: Any) -> RequestContext:
        data = {
            "request_id": "SRQ-test",
            "service_id": "svc-print",
            "requester_id": "u1",
            "metadata": {},
        }
        data.update(overrides)
        return RequestContext.model_validate(data)
    return _make


@pytest.fixture
def make_state(make_context) -> Callable[..., RequestState]:
    def _make(status: RequestStatus = RequestStatus.PENDING, **context: Any) -> RequestState:
        return RequestState(status=status, context=make_context(**context))
    return _make


@pytest.fixture
def make_request(make_context, fixed_now) -> Callable[..., ServiceRequest]:
    def _make(
        status: RequestStatus = RequestStatus.PENDING,
        version: int = 1,
        tenant_id: str = "tenant-1",
        **context: Any
    ) -> ServiceRequest:
        ctx = make_context(**context)
        return ServiceRequest(
            request_id=ctx.request_id,
            tenant_id=tenant_id,
            status=status,
            context=ctx,
            version=version,
            created_at=fixed_now,
            updated_at=fixed_now,
        )
    return _make


@pytest.fixture
def engine(test_settings, clock) -> ServiceWorkflowEngine:
    """Engine with the default rules built from test settings and a frozen clock"""
    return ServiceWorkflowEngine(
        rules=build_default_rules(config=test_settings, clock=clock),
        clock=clock,
    )
