# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the Gabinete lifecycle core.
"""

# Base models
from .base import BaseEntity, generate_object_id

# Enumerations
from .enums import (
    TaskStatus,
    StepStatus,
    SLATier,
    EventStatus,
    ApprovalStatus,
    ApprovalDecision,
    ApproverRole,
    ApprovalStage,
    AccountRole,
    EventType,
    EventPriority
)

# Core entities
from .entities import (
    WorkflowStepDefinition,
    WorkflowDefinition,
    Task,
    TaskWorkflowStepInstance,
    Event,
    EventApproval,
    CalendarSettings,
    AuditLog,
    UserContext
)

# Request models
from .requests import (
    TaskPath,
    TaskStepPath,
    EventPath,
    BindWorkflowRequest,
    UpdateStepStatusRequest,
    ApprovalActionRequest,
    CreateEventRequest,
    SlotSuggestionRequest
)

# Response models
from .responses import (
    HalLink,
    SLAStatus,
    ApprovalOutcome,
    CalendarSlotCandidate
)

__all__ = [
    # Base
    "BaseEntity",
    "generate_object_id",

    # Enums
    "TaskStatus",
    "StepStatus",
    "SLATier",
    "EventStatus",
    "ApprovalStatus",
    "ApprovalDecision",
    "ApproverRole",
    "ApprovalStage",
    "AccountRole",
    "EventType",
    "EventPriority",

    # Entities
    "WorkflowStepDefinition",
    "WorkflowDefinition",
    "Task",
    "TaskWorkflowStepInstance",
    "Event",
    "EventApproval",
    "CalendarSettings",
    "AuditLog",
    "UserContext",

    # Requests
    "TaskPath",
    "TaskStepPath",
    "EventPath",
    "BindWorkflowRequest",
    "UpdateStepStatusRequest",
    "ApprovalActionRequest",
    "CreateEventRequest",
    "SlotSuggestionRequest",

    # Responses
    "HalLink",
    "SLAStatus",
    "ApprovalOutcome",
    "CalendarSlotCandidate"
]
