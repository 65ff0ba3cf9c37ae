"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from .enums import (
    RequestStatus, RequestPriority, WorkflowEventType, WorkflowActionType,
    TransitionOutcome, NotificationStatus, NotificationTemplateKey, AuditEventType,
    ConditionOperator
)
from ..utils.time import coerce_datetime


# Client payloads use camelCase for the metadata keys rules read
METADATA_KEY_ALIASES: Dict[str, str] = {
    "totalAmount": "total_amount",
    "serviceCategory": "service_category",
    "createdAt": "created_at",
    "scheduledDeliveryTime": "scheduled_delivery_time",
}


def normalize_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Rename known camelCase metadata keys; an existing snake_case key wins"""
    normalized: Dict[str, Any] = {}
    for key, value in (metadata or {}).items():
        target = METADATA_KEY_ALIASES.get(key, key)
        if target != key and target in (metadata or {}):
            continue
        normalized[target] = value
    return normalized


# ============================================================================
# Conditions
# ============================================================================

class Condition(BaseModel):
    """Single field comparison used by declarative rules"""
    model_config = ConfigDict(extra="forbid")

    field: str = Field(..., description="Request context field, see RequestContext.field_value")
    operator: ConditionOperator = Field(..., description="Comparison operator")
    value: Any = Field(None, description="Value to compare against")


class ConditionGroup(BaseModel):
    """Group of conditions with AND/OR logic"""
    model_config = ConfigDict(extra="forbid")

    logic: str = Field("AND", description="AND or OR")
    conditions: List[Condition] = Field(default_factory=list)


# ============================================================================
# Workflow State & Events
# ============================================================================

class RequestContext(BaseModel):
    """
    Business data attached to a service request

    Guards and rules read this. Event data is overlaid on it by successful
    transitions; keys outside the declared fields are kept as extras.
    Metadata keys listed in METADATA_KEY_ALIASES are stored in snake_case.
    """
    model_config = ConfigDict(extra="allow", frozen=True)

    request_id: str = Field(..., description="Service request ID")
    service_id: str = Field(..., description="Catalog service ID")
    requester_id: str = Field(..., description="User who raised the request")
    requires_approval: bool = Field(default=False)
    priority: RequestPriority = Field(default=RequestPriority.NORMAL)
    assigned_to: Optional[str] = Field(None, description="Assignee user ID")
    approved_by: Optional[str] = Field(None, description="Approver user ID")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def normalize_metadata_keys(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return normalize_metadata(v)
        return v

    @property
    def total_amount(self) -> Optional[float]:
        """Monetary amount of the request, None when absent or not a number"""
        value = self.metadata.get("total_amount")
        if value is None or isinstance(value, bool):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @property
    def service_category(self) -> Optional[str]:
        return self.metadata.get("service_category")

    def get_created_at(self) -> Optional[datetime]:
        """Submission time recorded in metadata"""
        return coerce_datetime(self.metadata.get("created_at"))

    def get_scheduled_delivery_time(self) -> Optional[datetime]:
        """Promised delivery time recorded in metadata"""
        return coerce_datetime(self.metadata.get("scheduled_delivery_time"))

    def field_value(self, name: str) -> Any:
        """Value of a declared field or metadata accessor, by name"""
        if name in CONDITION_FIELDS:
            return getattr(self, name)
        raise KeyError(f"Unknown condition field: {name}")

    def with_overlay(self, data: Optional[Dict[str, Any]]) -> "RequestContext":
        """Return a new context with event data shallow-merged over this one"""
        if not data:
            return self
        return RequestContext.model_validate({**self.model_dump(), **data})


# Fields a declarative condition may reference
CONDITION_FIELDS = frozenset({
    "requester_id", "requires_approval", "priority", "assigned_to", "approved_by",
    "total_amount", "service_category",
})


class RequestState(BaseModel):
    """Current status of a request plus its context"""
    model_config = ConfigDict(frozen=True)

    status: RequestStatus
    context: RequestContext


class WorkflowEvent(BaseModel):
    """An input submitted against a request's current state"""
    model_config = ConfigDict(extra="forbid")

    type: WorkflowEventType
    actor_id: str = Field(..., description="User performing the event")
    data: Optional[Dict[str, Any]] = Field(None, description="Fields overlaid on the context")


class ActionDescriptor(BaseModel):
    """A side effect for an external collaborator to perform"""
    model_config = ConfigDict(extra="forbid")

    type: WorkflowActionType
    parameters: Dict[str, Any] = Field(default_factory=dict)
    rule_name: Optional[str] = Field(None, description="Rule that emitted this action")


class WorkflowResult(BaseModel):
    """Outcome of processing one event"""
    new_state: RequestState
    actions: List[ActionDescriptor] = Field(default_factory=list)
    triggered_rules: List[str] = Field(default_factory=list)
    success: bool
    outcome: TransitionOutcome
    error: Optional[str] = None


class TransitionValidation(BaseModel):
    """Side-effect free legality check"""
    valid: bool
    error: Optional[str] = None
    next_status: Optional[RequestStatus] = None


class AvailableAction(BaseModel):
    """UI affordance for an event the actor may submit"""
    action: WorkflowEventType
    label: str
    description: str
    requires_permission: Optional[str] = None


# ============================================================================
# Persistence
# ============================================================================

class ServiceRequest(BaseModel):
    """Persisted service request"""
    model_config = ConfigDict(extra="ignore")

    request_id: str
    tenant_id: str
    status: RequestStatus = Field(default=RequestStatus.PENDING)
    context: RequestContext
    version: int = Field(default=1, description="Optimistic concurrency version")
    created_at: datetime
    updated_at: datetime

    def to_state(self) -> RequestState:
        return RequestState(status=self.status, context=self.context)


class RuleOutcome(BaseModel):
    """Whether a triggered rule's actions were all dispatched"""
    rule_name: str
    succeeded: bool


class TransitionRecord(BaseModel):
    """
    Transition log entry

    Creation records have no event and no from_status; they only anchor
    the time a request entered its first status.
    """
    model_config = ConfigDict(extra="ignore")

    transition_id: str
    tenant_id: str
    request_id: str
    from_status: Optional[RequestStatus] = None
    to_status: RequestStatus
    event: Optional[WorkflowEventType] = None
    actor_id: str
    occurred_at: datetime
    triggered_rules: List[str] = Field(default_factory=list)
    rule_outcomes: List[RuleOutcome] = Field(default_factory=list)
    correlation_id: Optional[str] = None


class DispatchOutcome(BaseModel):
    """Result of executing one action descriptor"""
    action: ActionDescriptor
    succeeded: bool
    error: Optional[str] = None


class AppliedEvent(BaseModel):
    """A successfully applied event together with what it persisted and dispatched"""
    request: ServiceRequest
    result: WorkflowResult
    dispatch_outcomes: List[DispatchOutcome] = Field(default_factory=list)


# ============================================================================
# Metrics
# ============================================================================

class StateBottleneck(BaseModel):
    """A status where requests dwell longer than average"""
    state: RequestStatus
    average_time: float = Field(..., description="Mean dwell time in seconds")
    request_count: int


class RuleEffectiveness(BaseModel):
    """Trigger statistics for one rule"""
    rule_name: str
    trigger_count: int
    success_rate: float


class WorkflowMetrics(BaseModel):
    """Aggregate view over a tenant's transition log"""
    tenant_id: str
    start_date: datetime
    end_date: datetime
    total_transitions: int = 0
    transitions_by_type: Dict[str, int] = Field(default_factory=dict)
    average_processing_time: Dict[str, float] = Field(
        default_factory=dict, description="Mean dwell seconds keyed by status"
    )
    bottlenecks: List[StateBottleneck] = Field(default_factory=list)
    rule_effectiveness: List[RuleEffectiveness] = Field(default_factory=list)


# ============================================================================
# Notification Outbox
# ============================================================================

class NotificationOutbox(BaseModel):
    """Notification in outbox"""
    model_config = ConfigDict(extra="ignore")  # Allow extra fields from DB

    notification_id: str
    request_id: Optional[str] = None
    template_key: NotificationTemplateKey
    recipients: List[str]
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: NotificationStatus = Field(default=NotificationStatus.PENDING)
    retry_count: int = Field(default=0)
    last_error: Optional[str] = None
    created_at: datetime
    sent_at: Optional[datetime] = None


# ============================================================================
# Audit Event
# ============================================================================

class AuditEvent(BaseModel):
    """Audit event (append-only)"""
    model_config = ConfigDict(extra="forbid")

    audit_event_id: str
    request_id: str
    tenant_id: Optional[str] = None
    event_type: AuditEventType
    actor_id: str
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    correlation_id: Optional[str] = None
