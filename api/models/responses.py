# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models for the lifecycle core operations.
"""

from typing import List, Optional
from pydantic import BaseModel, Field

from .entities import EventApproval
from .enums import SLATier


class HalLink(BaseModel):
    """HAL link representation."""

    href: str = Field(..., description="Link URL")
    method: Optional[str] = Field(None, description="HTTP method")
    type: Optional[str] = Field(None, description="Content type")
    title: Optional[str] = Field(None, description="Link title")
    templated: Optional[bool] = Field(None, description="Whether URL is templated")


class SLAStatus(BaseModel):
    """SLA tier of a task at a given instant."""

    status: SLATier = Field(..., description="SLA tier")
    days_remaining: Optional[int] = Field(None, description="Whole days until the deadline")
    hours_remaining: Optional[int] = Field(None, description="Whole hours beyond the whole days")


class ApprovalOutcome(BaseModel):
    """Result of acting on an event approval level."""

    status: str = Field(..., description="Event status after the decision")
    approval_stage: str = Field(..., description="Role now responsible, or completed/rejected")
    approval: EventApproval = Field(..., description="The approval record that was decided")


class CalendarSlotCandidate(BaseModel):
    """Scored, non-persisted scheduling proposal."""

    date: str = Field(..., description="Candidate date (YYYY-MM-DD)")
    time: str = Field(..., description="Candidate start time (HH:MM)")
    score: int = Field(..., ge=0, le=100, description="Clamped heuristic score")
    reasons: List[str] = Field(default_factory=list, description="Human-readable reasons")
    conflicts: List[str] = Field(default_factory=list, description="Conflict descriptions")

    @property
    def reason(self) -> str:
        """Single-line summary of the reasons and conflicts."""
        text = ', '.join(self.reasons) if self.reasons else 'Available time slot'
        if self.conflicts:
            text += f" ({', '.join(self.conflicts)})"
        return text
