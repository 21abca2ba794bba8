# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the Gabinete task/event lifecycle core.
"""

from enum import Enum


class TaskStatus(str, Enum):
    """Grievance task status enumeration."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CLOSED = "closed"


class StepStatus(str, Enum):
    """Per-task workflow step status."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class SLATier(str, Enum):
    """SLA urgency tier derived from a task deadline."""
    WITHIN_SLA = "within_sla"
    APPROACHING_SLA = "approaching_sla"
    OVERDUE = "overdue"


class EventStatus(str, Enum):
    """Event approval workflow status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalStatus(str, Enum):
    """Status of a single approval level."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalDecision(str, Enum):
    """Decision an approver can take on the current level."""
    APPROVE = "approve"
    REJECT = "reject"


class ApproverRole(str, Enum):
    """Roles that sign off an approval level."""
    EVENT_MANAGER = "event_manager"
    CAMPAIGN_DIRECTOR = "campaign_director"
    CHIEF_OF_STAFF = "chief_of_staff"


class ApprovalStage(str, Enum):
    """Terminal values of an event's approval stage."""
    COMPLETED = "completed"
    REJECTED = "rejected"


class AccountRole(str, Enum):
    """Portal account roles."""
    STAFF = "staff"
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    SUPER_ADMIN = "super_admin"


class EventType(str, Enum):
    """Event types accepted by the scheduling flows."""
    TOWN_HALL = "town_hall"
    PRESS_CONFERENCE = "press_conference"
    COMMUNITY_EVENT = "community_event"
    RALLY = "rally"
    MEETING = "meeting"
    DEBATE = "debate"
    INTERVIEW = "interview"
    FUNDRAISER = "fundraiser"
    WORKSHOP = "workshop"
    EMERGENCY_MEETING = "emergency_meeting"


class EventPriority(str, Enum):
    """Event priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"
