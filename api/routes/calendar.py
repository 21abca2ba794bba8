# SPDX-License-Identifier: Apache-2.0

"""
Calendar scheduling endpoints.
"""

from flask import current_app, g, jsonify
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from domain.scheduling import summarize_candidates
from middleware.auth import require_jwt
from models.requests import SlotSuggestionRequest

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

calendar_tag = Tag(name="Calendar", description="Event slot suggestions")
calendar_bp = APIBlueprint(
    'calendar',
    __name__,
    url_prefix='/api/calendar',
    abp_tags=[calendar_tag]
)


@calendar_bp.post('/suggestions')
@require_jwt
def suggest_event_slots(body: SlotSuggestionRequest):
    """
    Suggest time slots for a new event.

    Returns up to ten ranked slots over the next two weeks; an empty list
    means no slot scored high enough.
    """
    user_context = g.user_context

    with tracer.start_as_current_span("calendar.suggest", attributes={"event.type": body.event_type}):
        suggestions = current_app.calendar_service.suggest(user_context, body)

        return jsonify(current_app.hal_formatter.format_slot_suggestions(summarize_candidates(suggestions)))
