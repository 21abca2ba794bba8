# SPDX-License-Identifier: Apache-2.0

"""
Event approval endpoints.

Event proposal, sequential approval decisions and approval chain listing.
"""

from typing import Optional

from flask import current_app, g, jsonify
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from domain.approvals import resolve_approver_role
from middleware.auth import require_jwt
from models.entities import UserContext
from models.requests import ApprovalActionRequest, CreateEventRequest, EventPath

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

events_tag = Tag(name="Events", description="Event proposal and approval workflow")
events_bp = APIBlueprint(
    'events',
    __name__,
    url_prefix='/api/events',
    abp_tags=[events_tag]
)


def _approver_role(user_context: UserContext) -> Optional[str]:
    role = resolve_approver_role(user_context.role)
    return role.value if role else None


@events_bp.post('')
@require_jwt
def create_event(body: CreateEventRequest):
    """
    Propose an event.

    The event is stored with its approval chain; events that skip approval
    are stored approved.
    """
    user_context = g.user_context

    with tracer.start_as_current_span("events.create", attributes={"event.type": body.type}):
        event, approvals = current_app.approval_orchestrator.create_event(user_context, body)

        data = event.model_dump(mode="json", by_alias=True)
        data['approvals'] = [approval.model_dump(mode="json", by_alias=True) for approval in approvals]

        return jsonify(current_app.hal_formatter.format_event(data, _approver_role(user_context))), 201


@events_bp.post('/<string:event_id>/approve')
@require_jwt
def act_on_event_approval(path: EventPath, body: ApprovalActionRequest):
    """
    Approve or reject the current approval level of an event.

    Only the role responsible for the current level may act.
    """
    user_context = g.user_context

    with tracer.start_as_current_span(
        "events.act_on_approval",
        attributes={"event.id": path.event_id, "approval.action": body.action}
    ):
        outcome = current_app.approval_orchestrator.act_on_approval(
            user_context, path.event_id, body.action, body.comments
        )

        data = {
            'status': outcome.status,
            'approvalStage': outcome.approval_stage,
            'approval': outcome.approval.model_dump(mode="json", by_alias=True)
        }

        return jsonify(current_app.hal_formatter.format_approval_outcome(
            path.event_id, data, _approver_role(user_context)
        ))


@events_bp.get('/<string:event_id>/approvals')
@require_jwt
def list_event_approvals(path: EventPath):
    """List the approval chain of an event ordered by level."""
    user_context = g.user_context

    event, approvals = current_app.approval_orchestrator.get_approvals(user_context, path.event_id)

    response = current_app.hal_formatter.format_approval_collection(
        event.id,
        [approval.model_dump(mode="json", by_alias=True) for approval in approvals]
    )
    response['eventStatus'] = event.status
    response['approvalStage'] = event.approval_stage

    return jsonify(response)
