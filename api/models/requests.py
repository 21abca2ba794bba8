# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.
"""

from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel
from .entities import DATE_PATTERN, TIME_PATTERN
from .enums import StepStatus, ApprovalDecision, EventType, EventPriority


class RequestModel(BaseModel):
    """Base request model accepting snake_case or camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        str_strip_whitespace=True
    )


class TaskPath(BaseModel):
    """Path parameters for task resources."""

    task_id: str = Field(..., description="Task ID")


class TaskStepPath(BaseModel):
    """Path parameters for task step resources."""

    task_id: str = Field(..., description="Task ID")
    step_id: str = Field(..., description="Step instance ID")


class EventPath(BaseModel):
    """Path parameters for event resources."""

    event_id: str = Field(..., description="Event ID")


class BindWorkflowRequest(RequestModel):
    """Request model for binding a workflow to a task."""

    workflow_id: Optional[str] = Field(
        None,
        description="Workflow to bind; resolved from the task category when omitted"
    )


class UpdateStepStatusRequest(RequestModel):
    """Request model for changing a workflow step status."""

    status: StepStatus = Field(..., description="New step status")
    notes: Optional[str] = Field(None, max_length=2000, description="Free-text notes")


class ApprovalActionRequest(RequestModel):
    """Request model for acting on the current approval level."""

    action: ApprovalDecision = Field(..., description="approve or reject")
    comments: Optional[str] = Field(None, max_length=1000, description="Decision comment")


class CreateEventRequest(RequestModel):
    """Request model for proposing an event."""

    title: str = Field(..., min_length=1, max_length=200, description="Event title")
    description: Optional[str] = Field(None, max_length=2000, description="Event description")
    type: EventType = Field(..., description="Event type")
    date: str = Field(..., description="Event date (YYYY-MM-DD)")
    time: str = Field(..., description="Event start time (HH:MM)")
    duration: int = Field(default=60, ge=1, le=24 * 60, description="Duration in minutes")
    location: str = Field(..., min_length=1, description="Event location")
    expected_attendees: Optional[int] = Field(None, ge=0, description="Expected attendees")
    priority: EventPriority = Field(default=EventPriority.MEDIUM, description="Event priority")
    requires_approval: bool = Field(default=True, description="Whether approval is required")

    @field_validator('date')
    @classmethod
    def validate_date(cls, v):
        """Validate date format."""
        if not DATE_PATTERN.match(v):
            raise ValueError('Date must be in YYYY-MM-DD format')
        return v

    @field_validator('time')
    @classmethod
    def validate_time(cls, v):
        """Validate time format."""
        if not TIME_PATTERN.match(v):
            raise ValueError('Time must be in HH:MM format')
        return v


class SlotSuggestionRequest(RequestModel):
    """Request model for calendar slot suggestions."""

    event_type: EventType = Field(..., description="Event type")
    duration: int = Field(default=60, ge=15, le=12 * 60, description="Duration in minutes")
    preferred_time_start: str = Field(default="09:00", description="Earliest start (HH:MM)")
    preferred_time_end: str = Field(default="18:00", description="Latest end (HH:MM)")
    exclude_weekends: bool = Field(default=True, description="Skip Saturdays and Sundays")
    location: Optional[str] = Field(None, description="Event location")
    expected_attendees: Optional[int] = Field(None, ge=0, description="Expected attendees")
    priority: EventPriority = Field(default=EventPriority.MEDIUM, description="Event priority")

    @field_validator('preferred_time_start', 'preferred_time_end')
    @classmethod
    def validate_time(cls, v):
        """Validate time window bounds."""
        if not TIME_PATTERN.match(v):
            raise ValueError('Preferred times must be in HH:MM format')
        return v

    @model_validator(mode='after')
    def validate_window(self):
        """The preferred window must not be inverted."""
        if self.preferred_time_start >= self.preferred_time_end:
            raise ValueError('preferred_time_start must be before preferred_time_end')
        return self
