"""Tests for ActionDispatcher"""
from unittest.mock import MagicMock

import pytest

from app.domain.enums import NotificationTemplateKey, WorkflowActionType
from app.domain.models import ActionDescriptor
from app.services.action_dispatcher import ActionDispatcher
from app.services.notification_service import NotificationService


@pytest.fixture
def outbox_repo():
    repo = MagicMock()
    repo.create_notification.side_effect = lambda notification: notification
    return repo


@pytest.fixture
def audit_writer():
    return MagicMock()


@pytest.fixture
def dispatcher(outbox_repo, audit_writer, test_settings):
    return ActionDispatcher(
        notification_service=NotificationService(repo=outbox_repo),
        audit_writer=audit_writer,
        config=test_settings,
    )


def queued(outbox_repo):
    return [call.args[0] for call in outbox_repo.create_notification.call_args_list]


class TestRecipients:
    def test_roles_resolve_against_request(self, dispatcher, make_request):
        request = make_request(requester_id="u1", assigned_to="u2")

        assert dispatcher.resolve_recipients(request, ["requester", "assignee", "manager"]) == [
            "u1", "u2", "role:MANAGER"
        ]

    def test_unassigned_request_drops_assignee(self, dispatcher, make_request):
        request = make_request(requester_id="u1")

        assert dispatcher.resolve_recipients(request, ["assignee", "requester", "REQUESTER"]) == ["u1"]

    def test_explicit_addresses_pass_through(self, dispatcher, make_request):
        assert dispatcher.resolve_recipients(make_request(), ["ops@example.com"]) == ["ops@example.com"]


class TestHandlers:
    def test_notification(self, dispatcher, outbox_repo, make_request):
        request = make_request(requester_id="u1")
        action = ActionDescriptor(
            type=WorkflowActionType.NOTIFICATION,
            parameters={"type": "OVERDUE_REQUEST", "recipients": ["requester", "assignee", "manager"]},
            rule_name="OVERDUE_NOTIFICATION",
        )

        outcomes = dispatcher.dispatch(request, [action])

        assert outcomes[0].succeeded is True
        notification = queued(outbox_repo)[0]
        assert notification.template_key == NotificationTemplateKey.OVERDUE_REQUEST
        assert notification.recipients == ["u1", "role:MANAGER"]
        assert notification.request_id == request.request_id
        assert notification.payload["rule"] == "OVERDUE_NOTIFICATION"

    def test_unknown_notification_type_uses_generic_template(self, dispatcher, outbox_repo, make_request):
        action = ActionDescriptor(
            type=WorkflowActionType.NOTIFICATION,
            parameters={"type": "SOMETHING_NEW", "recipients": ["requester"]},
        )

        dispatcher.dispatch(make_request(), [action])

        assert queued(outbox_repo)[0].template_key == NotificationTemplateKey.GENERIC

    def test_priority_escalation(self, dispatcher, outbox_repo, audit_writer, make_request):
        request = make_request()
        action = ActionDescriptor(
            type=WorkflowActionType.PRIORITY_ESCALATION,
            parameters={"escalate_to": "MANAGER"},
        )

        dispatcher.dispatch(request, [action], correlation_id="COR-9")

        notification = queued(outbox_repo)[0]
        assert notification.template_key == NotificationTemplateKey.PRIORITY_ESCALATION
        assert notification.recipients == ["role:MANAGER"]
        audit_writer.write_priority_escalated.assert_called_once_with(
            request, "MANAGER", correlation_id="COR-9"
        )

    def test_auto_assign_notifies_role_pool(self, dispatcher, outbox_repo, make_request):
        action = ActionDescriptor(
            type=WorkflowActionType.AUTO_ASSIGN,
            parameters={"assignee_role": "SERVICE_PROVIDER", "service_category": "PRINTING"},
        )

        dispatcher.dispatch(make_request(), [action])

        notification = queued(outbox_repo)[0]
        assert notification.template_key == NotificationTemplateKey.ASSIGNMENT_NEEDED
        assert notification.recipients == ["role:SERVICE_PROVIDER"]
        assert notification.payload["service_category"] == "PRINTING"

    def test_auto_approve_is_audited(self, dispatcher, outbox_repo, audit_writer, make_request):
        request = make_request()
        action = ActionDescriptor(
            type=WorkflowActionType.AUTO_APPROVE,
            parameters={"reason": "Low value auto-approval"},
        )

        dispatcher.dispatch(request, [action])

        audit_writer.write_auto_approval_eligible.assert_called_once_with(
            request, "Low value auto-approval", correlation_id=None
        )
        outbox_repo.create_notification.assert_not_called()


class TestFailures:
    def test_missing_handler_is_reported(self, dispatcher, make_request):
        dispatcher.unregister(WorkflowActionType.AUTO_APPROVE)

        outcomes = dispatcher.dispatch(
            make_request(), [ActionDescriptor(type=WorkflowActionType.AUTO_APPROVE)]
        )

        assert outcomes[0].succeeded is False
        assert "No handler registered" in outcomes[0].error

    def test_failing_handler_does_not_stop_others(self, dispatcher, audit_writer, make_request):
        def broken(request, action, correlation_id):
            raise RuntimeError("smtp down")

        dispatcher.register(WorkflowActionType.NOTIFICATION, broken)
        actions = [
            ActionDescriptor(type=WorkflowActionType.NOTIFICATION, rule_name="A"),
            ActionDescriptor(type=WorkflowActionType.AUTO_APPROVE, rule_name="B"),
        ]

        outcomes = dispatcher.dispatch(make_request(), actions)

        assert [o.succeeded for o in outcomes] == [False, True]
        assert outcomes[0].error == "smtp down"
        assert audit_writer.write_action_dispatched.call_count == 2

    def test_audit_failure_does_not_change_outcome(self, dispatcher, audit_writer, make_request):
        audit_writer.write_action_dispatched.side_effect = RuntimeError("audit down")

        outcomes = dispatcher.dispatch(
            make_request(), [ActionDescriptor(type=WorkflowActionType.AUTO_APPROVE)]
        )

        assert outcomes[0].succeeded is True
