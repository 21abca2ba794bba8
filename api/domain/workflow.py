# SPDX-License-Identifier: Apache-2.0

"""
Workflow step domain logic.

Pure functions for instantiating per-task step records from a workflow
template, applying status changes, and deriving task progress.
"""

from datetime import datetime
from typing import List, Optional, Iterable

from models.entities import (
    Task, TaskWorkflowStepInstance, WorkflowDefinition, UserContext
)
from models.enums import StepStatus

ALL_SUBCATEGORIES = "all"


def validate_step_status(status: str) -> StepStatus:
    """
    Validate a requested step status.

    Args:
        status: Raw status value

    Returns:
        The matching StepStatus

    Raises:
        ValueError: If the value is not a known step status
    """
    try:
        return StepStatus(status)
    except ValueError:
        allowed = ', '.join(s.value for s in StepStatus)
        raise ValueError(f"Invalid step status '{status}'. Allowed: {allowed}")


def instantiate_steps(
    task: Task,
    workflow: WorkflowDefinition,
    user_context: UserContext
) -> List[TaskWorkflowStepInstance]:
    """
    Build one pending step instance per step definition of the workflow.

    Args:
        task: Task being bound
        workflow: Workflow template
        user_context: Acting user

    Returns:
        Step instances ordered by step number
    """
    return [
        TaskWorkflowStepInstance(
            politician_id=task.politician_id,
            task_id=task.id,
            workflow_id=workflow.id,
            step_number=step.step_number,
            title=step.title,
            description=step.description,
            duration=step.duration,
            required=step.required,
            status=StepStatus.PENDING,
            created_by=user_context.user_id,
            updated_by=user_context.user_id
        )
        for step in workflow.ordered_steps()
    ]


def apply_step_status(
    step: TaskWorkflowStepInstance,
    status: StepStatus,
    actor_id: str,
    notes: Optional[str] = None,
    now: Optional[datetime] = None
) -> TaskWorkflowStepInstance:
    """
    Return a copy of the step with the new status applied.

    Any status may follow any other. Completion records the actor and time;
    every other status clears them.
    """
    now = now or datetime.utcnow()
    updated = step.model_copy()
    updated.status = validate_step_status(status)

    if updated.status == StepStatus.COMPLETED:
        updated.completed_by = actor_id
        updated.completed_at = now
    else:
        updated.completed_by = None
        updated.completed_at = None

    if notes is not None:
        updated.notes = notes

    updated.update_timestamp(actor_id)
    return updated


def compute_progress(statuses: Iterable[str]) -> Optional[int]:
    """
    Derive task progress from its step statuses.

    Skipped steps count as not completed. Returns None when the task has
    no steps, in which case the stored progress is left alone.
    """
    statuses = list(statuses)
    if not statuses:
        return None

    completed = sum(1 for status in statuses if status == StepStatus.COMPLETED)
    # Round half up, matching the dashboard percentage
    return int((200 * completed + len(statuses)) // (2 * len(statuses)))


def select_workflow(
    workflows: List[WorkflowDefinition],
    category_id: Optional[str],
    subcategory: Optional[str]
) -> Optional[WorkflowDefinition]:
    """
    Pick the workflow for a task category.

    An exact subcategory match wins over a workflow covering all
    subcategories of the category.
    """
    if not category_id:
        return None

    candidates = [w for w in workflows if w.category_id == category_id and not w.is_deleted()]

    if subcategory and subcategory not in ("none", ALL_SUBCATEGORIES):
        for workflow in candidates:
            if workflow.subcategory == subcategory:
                return workflow

    for workflow in candidates:
        if workflow.subcategory == ALL_SUBCATEGORIES:
            return workflow

    return None
