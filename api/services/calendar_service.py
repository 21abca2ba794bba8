# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Calendar slot suggestions for a tenant.

Gathers the tenant's committed events and buffer preference, then ranks
candidate slots with the scheduling heuristic.
"""

import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from opentelemetry import trace

from domain.scheduling import DEFAULT_BUFFER_MINUTES, suggest_slots
from models.entities import CalendarSettings, UserContext
from models.enums import EventStatus
from models.requests import SlotSuggestionRequest
from models.responses import CalendarSlotCandidate
from .mongodb import MongoDBService, translate_persistence_errors
from .redis import RedisService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

EVENTS = "events"
CALENDAR_SETTINGS = "calendar_settings"


class CalendarService:
    """Slot suggestion orchestration over stored events and settings."""

    def __init__(
        self,
        mongo_service: MongoDBService,
        redis_service: Optional[RedisService] = None,
        default_buffer: Optional[int] = None
    ):
        self.mongo_service = mongo_service
        self.redis_service = redis_service
        self.default_buffer = (
            default_buffer if default_buffer is not None
            else int(os.getenv('DEFAULT_BUFFER_MINUTES', str(DEFAULT_BUFFER_MINUTES)))
        )

    def buffer_time_for(self, politician_id: str) -> int:
        """Buffer minutes configured for a tenant, cached in Redis."""
        if self.redis_service:
            cached = self.redis_service.get_cached_calendar_settings(politician_id)
            if cached and 'bufferTime' in cached:
                return int(cached['bufferTime'])

        with translate_persistence_errors("load_calendar_settings"):
            documents = self.mongo_service.find_by_org(CALENDAR_SETTINGS, politician_id)

        if not documents:
            return self.default_buffer

        settings = CalendarSettings.from_document(documents[0])
        if self.redis_service:
            self.redis_service.cache_calendar_settings(
                politician_id, {'bufferTime': settings.buffer_time}
            )

        return settings.buffer_time

    def committed_events(self, politician_id: str, now: datetime) -> List[Dict[str, Any]]:
        """Approved events of the tenant from today on, as scheduling intervals."""
        with translate_persistence_errors("load_committed_events"):
            documents = self.mongo_service.find_by_org(
                EVENTS,
                politician_id,
                {"status": EventStatus.APPROVED.value, "date": {"$gte": now.date().isoformat()}}
            )

        return [
            {
                'date': document['date'],
                'time': document['time'],
                'duration': document.get('duration')
            }
            for document in documents
        ]

    def suggest(
        self,
        user_context: UserContext,
        request: SlotSuggestionRequest,
        now: Optional[datetime] = None
    ) -> List[CalendarSlotCandidate]:
        """
        Rank slots for a new event of the caller's tenant.

        Returns an empty list when no slot scores high enough.
        """
        now = now or datetime.utcnow()

        with tracer.start_as_current_span("calendar_service.suggest") as span:
            buffer_time = self.buffer_time_for(user_context.politician_id)
            existing_events = self.committed_events(user_context.politician_id, now)

            suggestions = suggest_slots(request, existing_events, buffer_time=buffer_time, now=now)

            span.set_attributes({
                "calendar.event_type": str(request.event_type),
                "calendar.existing_events": len(existing_events),
                "calendar.buffer_time": buffer_time,
                "calendar.suggestions": len(suggestions)
            })
            logger.info(
                "Slot suggestions computed",
                extra={
                    "politician_id": user_context.politician_id,
                    "event_type": request.event_type,
                    "existing_events": len(existing_events),
                    "suggestions": len(suggestions),
                    "top_score": suggestions[0].score if suggestions else None
                }
            )

            return suggestions
