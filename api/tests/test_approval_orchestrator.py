# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the event approval orchestrator.
"""

import pytest
from contextlib import contextmanager
from unittest.mock import Mock, patch

from pymongo.errors import AutoReconnect, OperationFailure

from conftest import OTHER_POLITICIAN_ID, POLITICIAN_ID, approval_chain, make_user
from domain.approvals import validate_approval_chain
from middleware.error_handler import (
    AuthorizationException, ConflictException, NotFoundException, TransientException, ValidationException
)
from models.entities import Event, EventApproval
from models.enums import ApprovalStatus
from models.requests import CreateEventRequest
from services.approval_orchestrator import APPROVALS, EVENTS, ApprovalOrchestrator
from services.audit import AuditService
from services.dispatch import DispatchConnectionError, PublishResult, Recipient


@pytest.fixture
def orchestrator(mongo, dispatch_service):
    return ApprovalOrchestrator(mongo, dispatch_service)


@pytest.fixture
def proposed(orchestrator, staff_user, sample_event_data):
    """Press conference awaiting event_manager, campaign_director, chief_of_staff."""
    event, _ = orchestrator.create_event(staff_user, CreateEventRequest(**sample_event_data))
    return event


def stored_approvals(mongo, event_id):
    documents = mongo.find_by_org(APPROVALS, POLITICIAN_ID, {"eventId": event_id}, sort_by="approvalLevel")
    return [EventApproval.from_document(document) for document in documents]


def stored_event(mongo, event_id):
    return Event.from_document(mongo.find_one_by_org(EVENTS, POLITICIAN_ID, event_id))


class TestCreateEvent:
    """Test event proposal."""

    def test_event_stored_with_chain(self, orchestrator, mongo, staff_user, sample_event_data, dispatch_service):
        event, approvals = orchestrator.create_event(staff_user, CreateEventRequest(**sample_event_data))

        assert event.status == "pending"
        assert event.approval_stage == "event_manager"
        assert [a.approver_role for a in approvals] == ["event_manager", "campaign_director", "chief_of_staff"]
        assert len(stored_approvals(mongo, event.id)) == 3
        assert stored_event(mongo, event.id).created_by == staff_user.user_id

        dispatch_service.notify.assert_called_once()
        recipient = dispatch_service.notify.call_args[0][0]
        assert recipient == Recipient.role("event_manager")
        assert dispatch_service.notify.call_args[1]["notification_type"] == "approval_required"
        dispatch_service.sync_approved_event.assert_not_called()

    def test_event_without_approval_is_approved_and_synced(self, orchestrator, mongo, staff_user,
                                                           sample_event_data, dispatch_service):
        sample_event_data["requiresApproval"] = False

        event, approvals = orchestrator.create_event(staff_user, CreateEventRequest(**sample_event_data))

        assert (event.status, event.approval_stage) == ("approved", "completed")
        assert approvals == []
        assert mongo.documents(APPROVALS) == []
        dispatch_service.sync_approved_event.assert_called_once()
        dispatch_service.notify.assert_not_called()

    def test_impossible_date_rejected(self, orchestrator, mongo, staff_user, sample_event_data):
        sample_event_data["date"] = "2025-02-30"

        with pytest.raises(ValidationException) as exc_info:
            orchestrator.create_event(staff_user, CreateEventRequest(**sample_event_data))

        assert exc_info.value.validation_errors[0]["field"] == "date"
        assert mongo.documents(EVENTS) == []

    def test_creation_is_audited(self, mongo, dispatch_service, staff_user, sample_event_data):
        audit_service = Mock(spec=AuditService)
        orchestrator = ApprovalOrchestrator(mongo, dispatch_service, audit_service)

        event, _ = orchestrator.create_event(staff_user, CreateEventRequest(**sample_event_data))

        audit_service.log_action.assert_called_once()
        assert audit_service.log_action.call_args[0][1:4] == ("event", event.id, "create")


class TestActOnApproval:
    """Test sequential approval decisions."""

    def test_three_level_approve_then_reject(self, orchestrator, mongo, proposed,
                                             event_manager, campaign_director):
        """Approval moves the stage; a later rejection is final and leaves level 3 pending."""
        outcome = orchestrator.act_on_approval(event_manager, proposed.id, "approve")

        assert outcome.status == "pending"
        assert outcome.approval_stage == "campaign_director"
        assert outcome.approval.approval_level == 1

        outcome = orchestrator.act_on_approval(campaign_director, proposed.id, "reject", "Bad timing")

        assert outcome.status == "rejected"
        assert outcome.approval_stage == "rejected"
        assert outcome.approval.comments == "Bad timing"

        approvals = stored_approvals(mongo, proposed.id)
        assert [a.status for a in approvals] == ["approved", "rejected", "pending"]

        event = stored_event(mongo, proposed.id)
        assert (event.status, event.approval_stage, event.version) == ("rejected", "rejected", 2)

    def test_full_approval_syncs_calendar(self, orchestrator, mongo, proposed, event_manager,
                                          campaign_director, chief_of_staff, dispatch_service):
        orchestrator.act_on_approval(event_manager, proposed.id, "approve")
        orchestrator.act_on_approval(campaign_director, proposed.id, "approve")
        outcome = orchestrator.act_on_approval(chief_of_staff, proposed.id, "approve")

        assert (outcome.status, outcome.approval_stage) == ("approved", "completed")
        dispatch_service.sync_approved_event.assert_called_once()
        assert dispatch_service.sync_approved_event.call_args[0][0].id == proposed.id

    def test_decision_notifies_creator_and_next_role(self, orchestrator, proposed, event_manager,
                                                     dispatch_service):
        dispatch_service.notify.reset_mock()

        orchestrator.act_on_approval(event_manager, proposed.id, "approve")

        recipients = [c[0][0] for c in dispatch_service.notify.call_args_list]
        assert recipients == [Recipient.user(proposed.created_by), Recipient.role("campaign_director")]

    def test_chain_invariant_holds_after_every_decision(self, orchestrator, mongo, proposed,
                                                        event_manager, campaign_director):
        for decided, user in enumerate((event_manager, campaign_director), start=1):
            orchestrator.act_on_approval(user, proposed.id, "approve")
            approvals = stored_approvals(mongo, proposed.id)
            assert validate_approval_chain(approvals).is_valid
            assert sum(1 for a in approvals if a.is_pending()) == 3 - decided

    def test_wrong_role_is_unauthorized(self, orchestrator, mongo, proposed, campaign_director):
        """Matching a later level does not authorise acting on the current one."""
        with pytest.raises(AuthorizationException):
            orchestrator.act_on_approval(campaign_director, proposed.id, "approve")

        assert all(a.status == ApprovalStatus.PENDING for a in stored_approvals(mongo, proposed.id))
        assert stored_event(mongo, proposed.id).version == 0

    def test_staff_cannot_approve(self, orchestrator, proposed, staff_user):
        with pytest.raises(AuthorizationException):
            orchestrator.act_on_approval(staff_user, proposed.id, "approve")

    def test_terminal_event_conflicts(self, orchestrator, proposed, event_manager, chief_of_staff):
        orchestrator.act_on_approval(event_manager, proposed.id, "reject")

        with pytest.raises(ConflictException):
            orchestrator.act_on_approval(chief_of_staff, proposed.id, "approve")

    def test_unknown_decision(self, orchestrator, proposed, event_manager):
        with pytest.raises(ValidationException):
            orchestrator.act_on_approval(event_manager, proposed.id, "escalate")

    def test_other_tenant_event_not_found(self, orchestrator, proposed):
        outsider = make_user("admin", politician_id=OTHER_POLITICIAN_ID)

        with pytest.raises(NotFoundException):
            orchestrator.act_on_approval(outsider, proposed.id, "approve")

    def test_decided_event_without_chain_conflicts(self, orchestrator, staff_user, event_manager, sample_event_data):
        """Events that skip approval are already final, so acting on them is a conflict."""
        sample_event_data["requiresApproval"] = False
        event, _ = orchestrator.create_event(staff_user, CreateEventRequest(**sample_event_data))

        assert event.status == "approved"
        with pytest.raises(ConflictException):
            orchestrator.act_on_approval(event_manager, event.id, "approve")

    def test_pending_event_without_chain_not_found(self, orchestrator, mongo, event_manager):
        event = Event(
            politician_id=POLITICIAN_ID, title="Orphan", event_type="meeting", date="2025-03-20",
            time="10:00", location="Office", approval_stage="event_manager",
            created_by="user-staff", updated_by="user-staff"
        )
        mongo.create(EVENTS, event.to_document(), "user-staff")

        with pytest.raises(NotFoundException):
            orchestrator.act_on_approval(event_manager, event.id, "approve")

    def test_malformed_chain_conflicts(self, orchestrator, mongo, event_manager):
        event = Event(
            politician_id=POLITICIAN_ID, title="Broken", event_type="meeting", date="2025-03-20",
            time="10:00", location="Office", approval_stage="event_manager",
            created_by="user-staff", updated_by="user-staff"
        )
        mongo.create(EVENTS, event.to_document(), "user-staff")
        mongo.insert_many(APPROVALS, [
            a.to_document()
            for a in approval_chain(event, ["event_manager", "campaign_director"], ["pending", "approved"])
        ], "user-staff")

        with pytest.raises(ConflictException):
            orchestrator.act_on_approval(event_manager, event.id, "approve")

    def test_racing_decisions_only_one_wins(self, orchestrator, mongo, proposed, event_manager):
        """A rival decision committed after our read makes our compare-and-set fail."""
        rival = make_user("admin", user_id="user-rival")
        original_transaction = mongo.transaction
        state = {"raced": False}

        @contextmanager
        def racing_transaction():
            if not state["raced"]:
                state["raced"] = True
                orchestrator.act_on_approval(rival, proposed.id, "approve")
            with original_transaction() as session:
                yield session

        with patch.object(mongo, "transaction", racing_transaction):
            with pytest.raises(ConflictException):
                orchestrator.act_on_approval(event_manager, proposed.id, "reject")

        approvals = stored_approvals(mongo, proposed.id)
        assert approvals[0].status == ApprovalStatus.APPROVED
        assert approvals[0].approved_by == "user-rival"
        assert approvals[0].version == 1
        assert stored_event(mongo, proposed.id).approval_stage == "campaign_director"

    def test_dispatch_failure_is_swallowed(self, orchestrator, mongo, proposed, event_manager, dispatch_service):
        dispatch_service.notify.side_effect = DispatchConnectionError("broker down")

        outcome = orchestrator.act_on_approval(event_manager, proposed.id, "approve")

        assert outcome.approval_stage == "campaign_director"
        assert stored_event(mongo, proposed.id).approval_stage == "campaign_director"

    def test_unsuccessful_publish_is_swallowed(self, orchestrator, proposed, event_manager, dispatch_service):
        dispatch_service.notify.return_value = PublishResult(
            success=False, message_id="m", exchange="events.notifications",
            routing_key="notification.event_approval.user", error="nack"
        )

        outcome = orchestrator.act_on_approval(event_manager, proposed.id, "approve")

        assert outcome.status == "pending"

    def test_persistence_failure_rolls_back(self, orchestrator, mongo, proposed, event_manager):
        original = mongo.compare_and_set_by_org

        def fail_on_event(collection, *args, **kwargs):
            if collection == EVENTS:
                raise AutoReconnect("primary stepped down")
            return original(collection, *args, **kwargs)

        with patch.object(mongo, "compare_and_set_by_org", side_effect=fail_on_event):
            with pytest.raises(TransientException):
                orchestrator.act_on_approval(event_manager, proposed.id, "approve")

        assert all(a.is_pending() for a in stored_approvals(mongo, proposed.id))

    def test_server_write_conflict_is_conflict(self, orchestrator, mongo, proposed, event_manager):
        """A transaction aborted by a concurrent writer surfaces as 409 and rolls back."""
        original = mongo.compare_and_set_by_org

        def conflict_on_event(collection, *args, **kwargs):
            if collection == EVENTS:
                raise OperationFailure(
                    "WriteConflict", code=112, details={"errorLabels": ["TransientTransactionError"]}
                )
            return original(collection, *args, **kwargs)

        with patch.object(mongo, "compare_and_set_by_org", side_effect=conflict_on_event):
            with pytest.raises(ConflictException):
                orchestrator.act_on_approval(event_manager, proposed.id, "approve")

        assert all(a.is_pending() for a in stored_approvals(mongo, proposed.id))
        assert stored_event(mongo, proposed.id).approval_stage == "event_manager"

    def test_without_dispatch_service(self, mongo, staff_user, event_manager, sample_event_data):
        orchestrator = ApprovalOrchestrator(mongo)
        event, _ = orchestrator.create_event(staff_user, CreateEventRequest(**sample_event_data))

        outcome = orchestrator.act_on_approval(event_manager, event.id, "approve")

        assert outcome.approval_stage == "campaign_director"


class TestGetApprovals:
    """Test approval chain listing."""

    def test_lists_chain_in_level_order(self, orchestrator, proposed, staff_user):
        event, approvals = orchestrator.get_approvals(staff_user, proposed.id)

        assert event.id == proposed.id
        assert [a.approval_level for a in approvals] == [1, 2, 3]
