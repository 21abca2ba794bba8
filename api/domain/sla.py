# SPDX-License-Identifier: Apache-2.0

"""
SLA domain logic for grievance tasks.

Pure functions that turn a task deadline into an urgency tier and the
display helpers built on top of it. Nothing here touches persistence.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from models.entities import Task
from models.enums import SLATier
from models.responses import SLAStatus

SECONDS_PER_HOUR = 60 * 60
SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR

DeadlineLike = Union[Task, datetime, str, None]


def parse_deadline(value: Union[datetime, str, None]) -> Optional[datetime]:
    """
    Normalise a deadline to a naive UTC datetime.

    Args:
        value: Deadline as datetime, ISO-8601 string, or None

    Returns:
        Naive UTC datetime, or None when there is no deadline

    Raises:
        ValueError: If the string is not a valid ISO-8601 timestamp
    """
    if value is None:
        return None

    if isinstance(value, str):
        if not value.strip():
            raise ValueError("Deadline cannot be an empty string")
        value = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))

    if not isinstance(value, datetime):
        raise ValueError(f"Unsupported deadline type: {type(value).__name__}")

    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)

    return value


def classify_sla(task: DeadlineLike, now: Optional[datetime] = None) -> SLAStatus:
    """
    Classify a task deadline into an SLA tier.

    Args:
        task: Task entity, or its deadline directly
        now: Reference instant (naive UTC); defaults to the current time

    Returns:
        SLAStatus with tier and remaining whole days/hours
    """
    deadline = parse_deadline(task.deadline if isinstance(task, Task) else task)
    if deadline is None:
        return SLAStatus(status=SLATier.WITHIN_SLA)

    now = parse_deadline(now) if now is not None else datetime.utcnow()
    remaining = (deadline - now).total_seconds()

    if remaining <= 0:
        return SLAStatus(status=SLATier.OVERDUE, days_remaining=0, hours_remaining=0)

    days_remaining = int(remaining // SECONDS_PER_DAY)
    hours_remaining = int((remaining % SECONDS_PER_DAY) // SECONDS_PER_HOUR)

    # Less than two whole days left, including the final 24 hours
    if days_remaining <= 1:
        tier = SLATier.APPROACHING_SLA
    else:
        tier = SLATier.WITHIN_SLA

    return SLAStatus(
        status=tier,
        days_remaining=days_remaining,
        hours_remaining=hours_remaining
    )


def sla_text(sla: SLAStatus) -> str:
    """Render the short label shown next to a task."""
    if sla.status == SLATier.OVERDUE:
        return "Overdue"

    if sla.days_remaining is None:
        return "No deadline"

    if sla.days_remaining == 0:
        return f"{sla.hours_remaining}h left"

    if sla.status == SLATier.APPROACHING_SLA:
        return f"{sla.days_remaining}d {sla.hours_remaining}h left"

    return f"{sla.days_remaining}d left"


def sla_badge_variant(tier: Optional[SLATier]) -> str:
    """Map an SLA tier to the badge variant used by the dashboards."""
    try:
        tier = SLATier(tier)
    except ValueError:
        return "outline"

    return {
        SLATier.WITHIN_SLA: "default",
        SLATier.APPROACHING_SLA: "secondary",
        SLATier.OVERDUE: "destructive",
    }.get(tier, "outline")


def default_deadline(
    start: datetime,
    sla_days: Optional[int],
    sla_hours: Optional[int]
) -> Optional[datetime]:
    """
    Derive a deadline from a workflow SLA.

    Args:
        start: Instant the SLA clock starts (usually task creation)
        sla_days: SLA days, if any
        sla_hours: SLA hours, if any

    Returns:
        Deadline, or None when the workflow carries no SLA
    """
    if not sla_days and not sla_hours:
        return None

    return parse_deadline(start) + timedelta(days=sla_days or 0, hours=sla_hours or 0)
