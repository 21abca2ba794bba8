# SPDX-License-Identifier: Apache-2.0

"""
Task lifecycle endpoints.

SLA status, workflow binding, workflow step status and progress of
grievance tasks.
"""

from flask import current_app, g, jsonify
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from domain.sla import sla_badge_variant, sla_text
from middleware.auth import require_jwt
from middleware.error_handler import ValidationException
from models.requests import BindWorkflowRequest, TaskPath, TaskStepPath, UpdateStepStatusRequest

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

tasks_tag = Tag(name="Tasks", description="Task SLA, workflow steps and progress")
tasks_bp = APIBlueprint(
    'tasks',
    __name__,
    url_prefix='/api/tasks',
    abp_tags=[tasks_tag]
)


@tasks_bp.get('/<string:task_id>/sla')
@require_jwt
def get_task_sla(path: TaskPath):
    """
    Get task SLA status.

    Classifies the task deadline as within_sla, approaching_sla or overdue.
    """
    user_context = g.user_context

    with tracer.start_as_current_span("tasks.get_sla", attributes={"task.id": path.task_id}):
        try:
            task, sla = current_app.workflow_tracker.sla_of(user_context, path.task_id)
        except ValueError as e:
            raise ValidationException(f"Task {path.task_id} has a malformed deadline: {e}")

        body = {
            'status': sla.status,
            'daysRemaining': sla.days_remaining,
            'hoursRemaining': sla.hours_remaining,
            'deadline': task.deadline.isoformat() if task.deadline else None,
            'label': sla_text(sla),
            'badgeVariant': sla_badge_variant(sla.status)
        }

        return jsonify(current_app.hal_formatter.format_task_sla(task.id, body, bool(task.workflow_id)))


@tasks_bp.post('/<string:task_id>/workflow')
@require_jwt
def bind_task_workflow(path: TaskPath, body: BindWorkflowRequest):
    """
    Bind a workflow to a task.

    Creates one pending step instance per workflow step. Without a workflow id
    the workflow configured for the task category is used.
    """
    user_context = g.user_context
    tracker = current_app.workflow_tracker

    with tracer.start_as_current_span("tasks.bind_workflow", attributes={"task.id": path.task_id}):
        if body.workflow_id:
            steps = tracker.bind_workflow(user_context, path.task_id, body.workflow_id)
        else:
            steps = tracker.resolve_and_bind(user_context, path.task_id)

        response = current_app.hal_formatter.format_step_collection(
            path.task_id,
            [step.model_dump(mode="json", by_alias=True) for step in steps]
        )

        return jsonify(response), 201 if steps else 200


@tasks_bp.get('/<string:task_id>/steps')
@require_jwt
def list_task_steps(path: TaskPath):
    """List workflow step instances of a task ordered by step number."""
    user_context = g.user_context

    steps = current_app.workflow_tracker.list_steps(user_context, path.task_id)

    return jsonify(current_app.hal_formatter.format_step_collection(
        path.task_id,
        [step.model_dump(mode="json", by_alias=True) for step in steps]
    ))


@tasks_bp.put('/<string:task_id>/steps/<string:step_id>')
@require_jwt
def update_task_step(path: TaskStepPath, body: UpdateStepStatusRequest):
    """
    Update a workflow step status.

    Task progress is recomputed in the same transaction.
    """
    user_context = g.user_context

    with tracer.start_as_current_span(
        "tasks.update_step",
        attributes={"task.id": path.task_id, "step.id": path.step_id, "step.status": body.status}
    ):
        step = current_app.workflow_tracker.set_step_status(
            user_context, path.task_id, path.step_id, body.status, body.notes
        )

        return jsonify(current_app.hal_formatter.format_step(step.model_dump(mode="json", by_alias=True)))


@tasks_bp.get('/<string:task_id>/progress')
@require_jwt
def get_task_progress(path: TaskPath):
    """Get task progress derived from its workflow steps."""
    user_context = g.user_context
    tracker = current_app.workflow_tracker

    progress = tracker.progress_of(user_context, path.task_id)
    task = tracker.get_task(user_context, path.task_id)

    return jsonify(current_app.hal_formatter.format_task_progress(task.id, progress, bool(task.workflow_id)))
