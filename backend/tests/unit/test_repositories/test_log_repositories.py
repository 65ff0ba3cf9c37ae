"""Tests for the append-only transition, audit and outbox repositories"""
from datetime import timedelta
from unittest.mock import MagicMock

from app.domain.enums import (
    AuditEventType, NotificationStatus, NotificationTemplateKey, RequestStatus, WorkflowEventType
)
from app.domain.models import AuditEvent, NotificationOutbox, RuleOutcome, TransitionRecord
from app.repositories.audit_repo import AuditRepository
from app.repositories.notification_repo import NotificationRepository
from app.repositories.transition_log_repo import TransitionLogRepository


def make_record(fixed_now, **overrides):
    data = dict(
        transition_id="TRN-1",
        tenant_id="tenant-1",
        request_id="SRQ-1",
        from_status=RequestStatus.PENDING,
        to_status=RequestStatus.APPROVED,
        event=WorkflowEventType.SUBMIT,
        actor_id="u1",
        occurred_at=fixed_now,
        triggered_rules=["AUTO_APPROVE_LOW_VALUE"],
        rule_outcomes=[RuleOutcome(rule_name="AUTO_APPROVE_LOW_VALUE", succeeded=True)],
    )
    data.update(overrides)
    return TransitionRecord(**data)


class TestTransitionLogRepository:
    def test_append_keeps_timestamp_native(self, fixed_now):
        collection = MagicMock()
        record = make_record(fixed_now)

        TransitionLogRepository(collection=collection).append(record)

        doc = collection.insert_one.call_args.args[0]
        assert doc["_id"] == "TRN-1"
        assert doc["occurred_at"] == fixed_now
        assert doc["event"] == "SUBMIT"
        assert doc["rule_outcomes"] == [{"rule_name": "AUTO_APPROVE_LOW_VALUE", "succeeded": True}]

    def test_list_for_tenant_filters_by_range(self, fixed_now):
        collection = MagicMock()
        record = make_record(fixed_now)
        doc = record.model_dump(mode="json")
        doc["_id"] = record.transition_id
        collection.find.return_value.sort.return_value = [doc]
        start, end = fixed_now - timedelta(days=1), fixed_now

        records = TransitionLogRepository(collection=collection).list_for_tenant("tenant-1", start, end)

        assert records == [record]
        assert collection.find.call_args.args[0] == {
            "tenant_id": "tenant-1",
            "occurred_at": {"$gte": start, "$lte": end},
        }

    def test_list_latest_before_groups_per_request(self, fixed_now):
        collection = MagicMock()
        record = make_record(fixed_now - timedelta(days=2))
        doc = record.model_dump(mode="json")
        doc["_id"] = record.transition_id
        collection.aggregate.return_value = [{"_id": "SRQ-1", "latest": doc}]
        start = fixed_now - timedelta(days=1)

        anchors = TransitionLogRepository(collection=collection).list_latest_before(
            "tenant-1", ["SRQ-1", "SRQ-1"], start
        )

        assert anchors == [record]
        match = collection.aggregate.call_args.args[0][0]["$match"]
        assert match == {
            "tenant_id": "tenant-1",
            "request_id": {"$in": ["SRQ-1"]},
            "occurred_at": {"$lt": start},
        }

    def test_list_latest_before_without_requests_skips_query(self, fixed_now):
        collection = MagicMock()

        assert TransitionLogRepository(collection=collection).list_latest_before("tenant-1", [], fixed_now) == []
        collection.aggregate.assert_not_called()

    def test_creation_record_round_trips(self, fixed_now):
        collection = MagicMock()
        record = make_record(fixed_now, from_status=None, event=None, triggered_rules=[], rule_outcomes=[])
        collection.find.return_value.sort.return_value = [record.model_dump(mode="json")]

        records = TransitionLogRepository(collection=collection).list_for_request("SRQ-1")

        assert records[0].event is None
        assert records[0].from_status is None


class TestAuditRepository:
    def test_create_and_query(self, fixed_now):
        collection = MagicMock()
        repo = AuditRepository(collection=collection)
        event = AuditEvent(
            audit_event_id="AUD-1",
            request_id="SRQ-1",
            tenant_id="tenant-1",
            event_type=AuditEventType.WORKFLOW_TRANSITION,
            actor_id="u1",
            details={"from": "PENDING", "to": "APPROVED"},
            timestamp=fixed_now,
        )

        repo.create_event(event)
        doc = collection.insert_one.call_args.args[0]
        assert doc["_id"] == "AUD-1"
        assert doc["timestamp"] == fixed_now

        collection.find.return_value.sort.return_value.skip.return_value.limit.return_value = [dict(doc)]
        events = repo.get_events_for_request("SRQ-1", event_types=[AuditEventType.WORKFLOW_TRANSITION])

        assert events == [event]
        assert collection.find.call_args.args[0] == {
            "request_id": "SRQ-1",
            "event_type": {"$in": ["WORKFLOW_TRANSITION"]},
        }


class TestNotificationRepository:
    def test_create_and_pending(self, fixed_now):
        collection = MagicMock()
        repo = NotificationRepository(collection=collection)
        notification = NotificationOutbox(
            notification_id="NTF-1",
            request_id="SRQ-1",
            template_key=NotificationTemplateKey.OVERDUE_REQUEST,
            recipients=["u1"],
            created_at=fixed_now,
        )

        repo.create_notification(notification)
        doc = collection.insert_one.call_args.args[0]
        assert doc["status"] == "PENDING"
        assert doc["created_at"] == fixed_now

        collection.find.return_value.sort.return_value.limit.return_value = [dict(doc)]
        pending = repo.get_pending_notifications(limit=5)

        assert pending == [notification]
        assert collection.find.call_args.args[0] == {"status": NotificationStatus.PENDING.value}
