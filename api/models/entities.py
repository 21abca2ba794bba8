# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the Gabinete task/event lifecycle core.
"""

import re
from datetime import datetime
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from pydantic.alias_generators import to_camel
from .base import BaseEntity, generate_object_id
from .enums import (
    TaskStatus,
    StepStatus,
    EventStatus,
    ApprovalStatus,
    EventType,
    EventPriority,
)

DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


class WorkflowStepDefinition(BaseModel):
    """One ordered step of a workflow template."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    step_number: int = Field(..., ge=1, description="Position of the step in the workflow")
    title: str = Field(..., min_length=1, max_length=200, description="Step title")
    description: str = Field(default="", max_length=2000, description="Step description")
    duration: int = Field(default=0, ge=0, description="Expected duration in minutes")
    required: bool = Field(default=True, description="Whether the step is mandatory")

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        """Validate step title."""
        if not v.strip():
            raise ValueError('Step title cannot be empty')
        return v.strip()


class WorkflowDefinition(BaseEntity):
    """Immutable workflow template owned by a tenant."""

    name: str = Field(..., min_length=1, max_length=200, description="Workflow name")
    category_id: Optional[str] = Field(None, description="Task category this workflow applies to")
    subcategory: str = Field(default="all", description="Subcategory, or 'all' for any")
    sla_days: Optional[int] = Field(None, ge=0, description="SLA days granted to bound tasks")
    sla_hours: Optional[int] = Field(None, ge=0, description="SLA hours granted to bound tasks")
    steps: List[WorkflowStepDefinition] = Field(default_factory=list, description="Ordered steps")

    @model_validator(mode='after')
    def validate_steps(self):
        """Step numbers must be unique; steps are kept ordered."""
        numbers = [step.step_number for step in self.steps]
        if len(numbers) != len(set(numbers)):
            raise ValueError('Workflow step numbers must be unique')
        return self

    def ordered_steps(self) -> List[WorkflowStepDefinition]:
        """Return step definitions ordered by step number."""
        return sorted(self.steps, key=lambda step: step.step_number)


class Task(BaseEntity):
    """Constituent grievance task."""

    title: str = Field(..., min_length=1, max_length=300, description="Task title")
    description: Optional[str] = Field(None, max_length=5000, description="Task description")
    status: TaskStatus = Field(default=TaskStatus.OPEN, description="Task status")
    progress: int = Field(default=0, ge=0, le=100, description="Derived progress percentage")
    deadline: Optional[datetime] = Field(None, description="SLA deadline")
    workflow_id: Optional[str] = Field(None, description="Bound workflow definition")
    category_id: Optional[str] = Field(None, description="Task category")
    subcategory: Optional[str] = Field(None, description="Task subcategory")
    assigned_to: Optional[str] = Field(None, description="Assigned staff member")


class TaskWorkflowStepInstance(BaseEntity):
    """Mutable per-task record of one workflow step."""

    task_id: str = Field(..., description="Owning task")
    workflow_id: str = Field(..., description="Workflow definition the step came from")
    step_number: int = Field(..., ge=1, description="Step position")
    title: str = Field(..., description="Step title")
    description: str = Field(default="", description="Step description")
    duration: int = Field(default=0, ge=0, description="Expected duration in minutes")
    required: bool = Field(default=True, description="Whether the step is mandatory")
    status: StepStatus = Field(default=StepStatus.PENDING, description="Step status")
    completed_by: Optional[str] = Field(None, description="User who completed the step")
    completed_at: Optional[datetime] = Field(None, description="Completion timestamp")
    notes: Optional[str] = Field(None, max_length=2000, description="Free-text notes")

    def is_completed(self) -> bool:
        """Check if the step counts towards task progress."""
        return self.status == StepStatus.COMPLETED


class Event(BaseEntity):
    """Scheduled event going through sequential approval."""

    title: str = Field(..., min_length=1, max_length=200, description="Event title")
    description: Optional[str] = Field(None, max_length=2000, description="Event description")
    event_type: EventType = Field(..., description="Event type")
    date: str = Field(..., description="Event date (YYYY-MM-DD)")
    time: str = Field(..., description="Event start time (HH:MM)")
    duration: int = Field(default=60, ge=1, le=24 * 60, description="Duration in minutes")
    location: str = Field(..., min_length=1, description="Event location")
    expected_attendees: Optional[int] = Field(None, ge=0, description="Expected attendees")
    priority: EventPriority = Field(default=EventPriority.MEDIUM, description="Event priority")
    requires_approval: bool = Field(default=True, description="Whether approval is required")
    status: EventStatus = Field(default=EventStatus.PENDING, description="Approval status")
    approval_stage: str = Field(..., description="Role currently required, or completed/rejected")
    version: int = Field(default=0, ge=0, description="Optimistic lock version")

    @field_validator('date')
    @classmethod
    def validate_date(cls, v):
        """Validate date format."""
        if not DATE_PATTERN.match(v):
            raise ValueError('Date must be in YYYY-MM-DD format')
        datetime.strptime(v, '%Y-%m-%d')
        return v

    @field_validator('time')
    @classmethod
    def validate_time(cls, v):
        """Validate time format."""
        if not TIME_PATTERN.match(v):
            raise ValueError('Time must be in HH:MM format')
        return v

    def is_terminal(self) -> bool:
        """Check if the event has left the approval workflow."""
        return self.status in (EventStatus.APPROVED, EventStatus.REJECTED)


class EventApproval(BaseEntity):
    """One sequential approval gate of an event."""

    event_id: str = Field(..., description="Event under approval")
    approval_level: int = Field(..., ge=1, description="Sequential level, 1 is first")
    approver_role: str = Field(..., description="Role that must act on this level")
    status: ApprovalStatus = Field(default=ApprovalStatus.PENDING, description="Level status")
    approved_by: Optional[str] = Field(None, description="User who decided this level")
    approved_at: Optional[datetime] = Field(None, description="Decision timestamp")
    comments: Optional[str] = Field(None, max_length=1000, description="Decision comment")
    version: int = Field(default=0, ge=0, description="Optimistic lock version")

    def is_pending(self) -> bool:
        """Check if the level is still awaiting a decision."""
        return self.status == ApprovalStatus.PENDING


class CalendarSettings(BaseEntity):
    """Per-tenant calendar preferences."""

    buffer_time: int = Field(default=30, ge=0, le=240, description="Buffer around events in minutes")
    working_hours_start: str = Field(default="09:00", description="Default day start")
    working_hours_end: str = Field(default="18:00", description="Default day end")


class AuditLog(BaseModel):
    """Audit log entry for lifecycle transitions."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True
    )

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Action timestamp")
    user_id: str = Field(..., description="User who performed the action")
    politician_id: str = Field(..., description="Tenant scope")
    entity: str = Field(..., description="Entity type")
    entity_id: str = Field(..., description="Entity identifier")
    action: str = Field(..., description="Action performed")
    before: Optional[Dict[str, Any]] = Field(None, description="State before action")
    after: Optional[Dict[str, Any]] = Field(None, description="State after action")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")
    trace_id: Optional[str] = Field(None, description="OpenTelemetry trace ID")
    span_id: Optional[str] = Field(None, description="OpenTelemetry span ID")
    schema_version: int = Field(default=1, description="Schema version")

    @field_validator('entity')
    @classmethod
    def validate_entity(cls, v):
        """Validate entity type."""
        valid_entities = ['task', 'task_workflow_step', 'event', 'event_approval']
        if v not in valid_entities:
            raise ValueError(f'Invalid entity type: {v}')
        return v

    @field_validator('action')
    @classmethod
    def validate_action(cls, v):
        """Validate action type."""
        valid_actions = ['create', 'bind_workflow', 'step_status', 'approve', 'reject']
        if v not in valid_actions:
            raise ValueError(f'Invalid action type: {v}')
        return v


class UserContext(BaseModel):
    """User context for request processing with authentication and tenant data."""

    user_id: str = Field(..., description="Authenticated user ID")
    politician_id: str = Field(..., description="Tenant the user acts for")
    role: str = Field(default="staff", description="Account role")
    email: Optional[str] = Field(None, description="User email")
    name: Optional[str] = Field(None, description="User display name")
    permissions: List[str] = Field(default_factory=list, description="User's effective permissions")
    token_payload: Optional[Dict[str, Any]] = Field(None, description="Original JWT payload")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")
    session_id: Optional[str] = Field(None, description="Session identifier")

    model_config = ConfigDict(
        use_enum_values=True
    )

    def has_permission(self, permission: str) -> bool:
        """Check if user has a specific permission."""
        return permission in self.permissions
