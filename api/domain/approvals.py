# SPDX-License-Identifier: Apache-2.0

"""
Event approval domain logic.

This module contains the sequential multi-level approval state machine:
approval chain construction, role resolution, current-level lookup,
decision application and the event status/stage projection.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from models.entities import Event, EventApproval, UserContext
from models.enums import (
    AccountRole, ApproverRole, ApprovalStatus, ApprovalDecision,
    ApprovalStage, EventStatus, EventType, EventPriority
)


ROLE_TO_APPROVER: Dict[AccountRole, ApproverRole] = {
    AccountRole.ADMIN: ApproverRole.EVENT_MANAGER,
    AccountRole.SUPERVISOR: ApproverRole.CAMPAIGN_DIRECTOR,
    AccountRole.SUPER_ADMIN: ApproverRole.CHIEF_OF_STAFF,
}

APPROVAL_CHAINS: Dict[EventType, List[ApproverRole]] = {
    EventType.EMERGENCY_MEETING: [ApproverRole.CHIEF_OF_STAFF],
    EventType.PRESS_CONFERENCE: [
        ApproverRole.EVENT_MANAGER, ApproverRole.CAMPAIGN_DIRECTOR, ApproverRole.CHIEF_OF_STAFF
    ],
    EventType.RALLY: [
        ApproverRole.EVENT_MANAGER, ApproverRole.CAMPAIGN_DIRECTOR, ApproverRole.CHIEF_OF_STAFF
    ],
    EventType.TOWN_HALL: [ApproverRole.EVENT_MANAGER, ApproverRole.CAMPAIGN_DIRECTOR],
}

DEFAULT_APPROVAL_CHAIN: List[ApproverRole] = [ApproverRole.EVENT_MANAGER]


@dataclass
class ChainValidation:
    """Result of approval chain validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class ApprovalTransition:
    """Outcome of applying a decision to the current approval level."""
    approval: EventApproval
    approvals: List[EventApproval]
    event_status: str
    approval_stage: str

    @property
    def is_terminal(self) -> bool:
        return self.event_status != EventStatus.PENDING


def resolve_approver_role(account_role: Optional[str]) -> Optional[ApproverRole]:
    """
    Map an account role to the approver role it acts as.

    Approver role values are accepted as-is so service accounts can act
    directly in an approver capacity.

    Args:
        account_role: Account role (or approver role) string

    Returns:
        ApproverRole, or None when the role carries no approval authority
    """
    if not account_role:
        return None

    try:
        return ROLE_TO_APPROVER[AccountRole(account_role)]
    except (ValueError, KeyError):
        pass

    try:
        return ApproverRole(account_role)
    except ValueError:
        return None


def build_approval_chain(event_type: str, priority: str) -> List[ApproverRole]:
    """
    Approver roles an event must pass, in order.

    Urgent events always end with the chief of staff.
    """
    try:
        chain = list(APPROVAL_CHAINS.get(EventType(event_type), DEFAULT_APPROVAL_CHAIN))
    except ValueError:
        chain = list(DEFAULT_APPROVAL_CHAIN)

    if priority == EventPriority.URGENT and ApproverRole.CHIEF_OF_STAFF not in chain:
        chain.append(ApproverRole.CHIEF_OF_STAFF)

    return chain


def create_approval_records(event: Event, user_context: UserContext) -> List[EventApproval]:
    """Create pending approval records, levels numbered from 1."""
    return [
        EventApproval(
            politician_id=event.politician_id,
            event_id=event.id,
            approval_level=level,
            approver_role=role.value,
            status=ApprovalStatus.PENDING,
            created_by=user_context.user_id,
            updated_by=user_context.user_id
        )
        for level, role in enumerate(build_approval_chain(event.event_type, event.priority), start=1)
    ]


def order_approvals(approvals: List[EventApproval]) -> List[EventApproval]:
    """Order approval records by level."""
    return sorted(approvals, key=lambda approval: approval.approval_level)


def validate_approval_chain(approvals: List[EventApproval]) -> ChainValidation:
    """
    Check the structural invariants of an event's approval chain.

    Levels must be contiguous from 1, and no level may be approved while
    a lower level is still pending.
    """
    errors = []
    ordered = order_approvals(approvals)

    if not ordered:
        errors.append("Event has no approval levels")

    levels = [approval.approval_level for approval in ordered]
    if levels and levels != list(range(1, len(levels) + 1)):
        errors.append(f"Approval levels must be contiguous from 1, got {levels}")

    seen_pending = False
    for approval in ordered:
        if approval.status == ApprovalStatus.PENDING:
            seen_pending = True
        elif seen_pending:
            errors.append(
                f"Level {approval.approval_level} is {approval.status} above a pending level"
            )

    rejected = [a for a in ordered if a.status == ApprovalStatus.REJECTED]
    if len(rejected) > 1:
        errors.append("More than one level is rejected")

    return ChainValidation(is_valid=len(errors) == 0, errors=errors)


def current_approval(approvals: List[EventApproval]) -> Optional[EventApproval]:
    """
    The level currently awaiting a decision.

    Returns None once the chain is terminal: every level approved, or any
    level rejected (the levels above a rejection stay pending forever).
    """
    ordered = order_approvals(approvals)
    if any(a.status == ApprovalStatus.REJECTED for a in ordered):
        return None

    for approval in ordered:
        if approval.status == ApprovalStatus.PENDING:
            return approval

    return None


def derive_event_state(approvals: List[EventApproval]) -> Tuple[str, str]:
    """
    Project the approval chain onto the event status and approval stage.

    Returns:
        Tuple of (event status, approval stage)
    """
    ordered = order_approvals(approvals)

    if any(a.status == ApprovalStatus.REJECTED for a in ordered):
        return EventStatus.REJECTED.value, ApprovalStage.REJECTED.value

    pending = current_approval(ordered)
    if pending is None:
        return EventStatus.APPROVED.value, ApprovalStage.COMPLETED.value

    return EventStatus.PENDING.value, pending.approver_role


def apply_decision(
    approvals: List[EventApproval],
    decision: str,
    actor_id: str,
    comment: Optional[str] = None,
    now: Optional[datetime] = None
) -> ApprovalTransition:
    """
    Apply a decision to the current level and project the new event state.

    Args:
        approvals: Current approval chain of the event
        decision: approve or reject
        actor_id: User deciding
        comment: Optional decision comment
        now: Decision timestamp

    Returns:
        ApprovalTransition with the decided record and updated chain

    Raises:
        ValueError: If the chain has no pending level or the decision is unknown
    """
    decision = ApprovalDecision(decision)
    pending = current_approval(approvals)
    if pending is None:
        raise ValueError("Event has no pending approval level")

    decided = pending.model_copy()
    decided.status = (
        ApprovalStatus.APPROVED if decision == ApprovalDecision.APPROVE else ApprovalStatus.REJECTED
    )
    decided.approved_by = actor_id
    decided.approved_at = now or datetime.utcnow()
    decided.comments = comment
    decided.version = pending.version + 1
    decided.update_timestamp(actor_id)

    updated = [decided if a.id == pending.id else a for a in order_approvals(approvals)]
    event_status, approval_stage = derive_event_state(updated)

    return ApprovalTransition(
        approval=decided,
        approvals=updated,
        event_status=event_status,
        approval_stage=approval_stage
    )


def build_decision_message(event: Event, decision: str) -> Tuple[str, str]:
    """Title and body of the notification sent to the event creator."""
    verb = "approved" if decision == ApprovalDecision.APPROVE else "rejected"
    return (
        f"Event {verb}: {event.title}",
        f'Your event "{event.title}" has been {verb}'
    )


def build_approval_required_message(event: Event) -> Tuple[str, str]:
    """Title and body of the notification sent to the next approver role."""
    return (
        f"Event approval required: {event.title}",
        f'Please review and approve the event "{event.title}"'
    )
