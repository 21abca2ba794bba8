# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for Pydantic models.
"""

import pytest
from datetime import datetime
from pydantic import ValidationError
from bson import ObjectId

from models.entities import (
    AuditLog, Event, EventApproval, Task, TaskWorkflowStepInstance, WorkflowDefinition, WorkflowStepDefinition
)
from models.requests import (
    ApprovalActionRequest, BindWorkflowRequest, CreateEventRequest, SlotSuggestionRequest, UpdateStepStatusRequest
)

POLITICIAN_ID = "pol-001"


def event_data(**overrides):
    data = {
        "politician_id": POLITICIAN_ID,
        "title": "Neighbourhood meeting",
        "event_type": "meeting",
        "date": "2025-03-12",
        "time": "10:00",
        "location": "Library",
        "approval_stage": "event_manager",
        "created_by": "user-staff",
        "updated_by": "user-staff"
    }
    data.update(overrides)
    return data


class TestEventModel:
    """Test Event model validation."""

    def test_valid_event(self):
        """Test valid event creation."""
        event = Event(**event_data())

        assert event.status == "pending"
        assert event.priority == "medium"
        assert event.version == 0
        assert ObjectId.is_valid(event.id)
        assert not event.is_terminal()

    @pytest.mark.parametrize("date", ["12/03/2025", "2025-3-12", "2025-02-30"])
    def test_invalid_date(self, date):
        """Test date format and calendar validation."""
        with pytest.raises(ValidationError):
            Event(**event_data(date=date))

    @pytest.mark.parametrize("time", ["24:00", "9:00", "10:60", "10h00"])
    def test_invalid_time(self, time):
        """Test time format validation."""
        with pytest.raises(ValidationError) as exc_info:
            Event(**event_data(time=time))

        assert "HH:MM" in str(exc_info.value)

    def test_document_round_trip_uses_camel_case(self):
        """Test stored documents use camelCase keys."""
        document = Event(**event_data(expected_attendees=40)).to_document()

        assert document["politicianId"] == POLITICIAN_ID
        assert document["expectedAttendees"] == 40
        assert document["approvalStage"] == "event_manager"
        assert Event.from_document(document).expected_attendees == 40

    def test_terminal_states(self):
        assert Event(**event_data(status="approved", approval_stage="completed")).is_terminal()
        assert Event(**event_data(status="rejected", approval_stage="rejected")).is_terminal()


class TestWorkflowModels:
    """Test workflow template and step instance models."""

    def test_steps_ordered_by_number(self):
        workflow = WorkflowDefinition(
            politician_id=POLITICIAN_ID, name="Road repair",
            steps=[WorkflowStepDefinition(step_number=2, title="Repair"),
                   WorkflowStepDefinition(step_number=1, title="Inspect")],
            created_by="user-admin", updated_by="user-admin"
        )

        assert [step.title for step in workflow.ordered_steps()] == ["Inspect", "Repair"]

    def test_duplicate_step_numbers_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            WorkflowDefinition(
                politician_id=POLITICIAN_ID, name="Road repair",
                steps=[WorkflowStepDefinition(step_number=1, title="Inspect"),
                       WorkflowStepDefinition(step_number=1, title="Repair")],
                created_by="user-admin", updated_by="user-admin"
            )

        assert "unique" in str(exc_info.value)

    def test_blank_step_title_rejected(self):
        with pytest.raises(ValidationError):
            WorkflowStepDefinition(step_number=1, title="   ")

    def test_step_definition_accepts_camel_case(self):
        step = WorkflowStepDefinition.model_validate({"stepNumber": 3, "title": "Call back"})

        assert step.step_number == 3
        assert step.required is True

    def test_step_instance_completion(self):
        step = TaskWorkflowStepInstance(
            politician_id=POLITICIAN_ID, task_id="t1", workflow_id="w1", step_number=1,
            title="Inspect", status="completed", created_by="u", updated_by="u"
        )

        assert step.is_completed()

    def test_task_progress_bounds(self):
        with pytest.raises(ValidationError):
            Task(politician_id=POLITICIAN_ID, title="Pothole", progress=101, created_by="u", updated_by="u")

    def test_approval_level_starts_at_one(self):
        with pytest.raises(ValidationError):
            EventApproval(
                politician_id=POLITICIAN_ID, event_id="e1", approval_level=0,
                approver_role="event_manager", created_by="u", updated_by="u"
            )


class TestRequestModels:
    """Test request parsing."""

    def test_create_event_accepts_camel_case(self):
        request = CreateEventRequest.model_validate({
            "title": "Town hall", "type": "town_hall", "date": "2025-03-20", "time": "19:00",
            "location": "Community Center", "expectedAttendees": 200, "requiresApproval": False
        })

        assert request.expected_attendees == 200
        assert request.requires_approval is False
        assert request.priority == "medium"

    def test_create_event_rejects_unknown_type(self):
        with pytest.raises(ValidationError):
            CreateEventRequest(title="Gig", type="concert", date="2025-03-20", time="19:00", location="Park")

    def test_step_status_values(self):
        assert UpdateStepStatusRequest(status="skipped").status == "skipped"
        with pytest.raises(ValidationError):
            UpdateStepStatusRequest(status="done")

    def test_approval_action_values(self):
        assert ApprovalActionRequest(action="reject", comments="Clashes with budget review").action == "reject"
        with pytest.raises(ValidationError):
            ApprovalActionRequest(action="escalate")

    def test_bind_workflow_id_optional(self):
        assert BindWorkflowRequest.model_validate({}).workflow_id is None
        assert BindWorkflowRequest.model_validate({"workflowId": "w1"}).workflow_id == "w1"

    def test_slot_request_defaults(self):
        request = SlotSuggestionRequest(event_type="meeting")

        assert request.duration == 60
        assert request.preferred_time_start == "09:00"
        assert request.preferred_time_end == "18:00"
        assert request.exclude_weekends is True

    def test_slot_request_inverted_window(self):
        with pytest.raises(ValidationError) as exc_info:
            SlotSuggestionRequest(event_type="meeting", preferred_time_start="18:00", preferred_time_end="09:00")

        assert "before" in str(exc_info.value)

    def test_slot_request_minimum_duration(self):
        with pytest.raises(ValidationError):
            SlotSuggestionRequest(event_type="meeting", duration=10)


class TestAuditLogModel:
    """Test AuditLog model validation."""

    def test_valid_audit_log(self):
        audit_log = AuditLog(
            user_id="user-1", politician_id=POLITICIAN_ID, entity="event_approval",
            entity_id="a1", action="approve", after={"status": "approved"}
        )

        assert isinstance(audit_log.timestamp, datetime)
        assert audit_log.model_dump(by_alias=True)["entityId"] == "a1"

    def test_invalid_entity(self):
        with pytest.raises(ValidationError) as exc_info:
            AuditLog(user_id="u", politician_id=POLITICIAN_ID, entity="notification", entity_id="n1", action="create")

        assert "Invalid entity type" in str(exc_info.value)

    def test_invalid_action(self):
        with pytest.raises(ValidationError) as exc_info:
            AuditLog(user_id="u", politician_id=POLITICIAN_ID, entity="task", entity_id="t1", action="delete")

        assert "Invalid action type" in str(exc_info.value)
