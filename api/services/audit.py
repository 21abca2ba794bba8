# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Audit service for lifecycle transitions with OpenTelemetry correlation.
"""

import logging
from typing import Dict, List, Optional, Any
from opentelemetry import trace

from .mongodb import MongoDBService
from models.entities import AuditLog, UserContext

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

IGNORED_CHANGE_FIELDS = {"updatedAt", "updatedBy", "_id", "id"}


class AuditService:
    """Service for audit logging with MongoDB persistence and tenant scoping."""

    def __init__(self, mongo_service: MongoDBService):
        """Initialize audit service with MongoDB dependency."""
        self.mongo_service = mongo_service
        self.collection_name = "audit_logs"
        logger.info("Audit service initialized")

    def log_action(
        self,
        user_context: UserContext,
        entity: str,
        entity_id: str,
        action: str,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """
        Record an audit trail entry for a committed transition.

        Audit failures never undo the transition they describe: they are
        logged and None is returned.

        Args:
            user_context: Acting user with request details
            entity: Type of entity acted upon
            entity_id: ID of the specific entity
            action: Action performed
            before: State before the action (optional)
            after: State after the action (optional)

        Returns:
            ID of the created audit log entry, or None if it could not be stored
        """
        with tracer.start_as_current_span("audit.log_action") as span:
            span.set_attributes({
                "audit.entity": entity,
                "audit.action": action,
                "audit.user_id": user_context.user_id,
                "audit.politician_id": user_context.politician_id,
                "audit.entity_id": entity_id
            })

            try:
                span_context = span.get_span_context()

                audit_entry = AuditLog(
                    user_id=user_context.user_id,
                    politician_id=user_context.politician_id,
                    entity=entity,
                    entity_id=entity_id,
                    action=action,
                    before=before,
                    after=after,
                    ip_address=user_context.ip_address,
                    user_agent=user_context.user_agent,
                    trace_id=format(span_context.trace_id, "032x") if span_context.is_valid else None,
                    span_id=format(span_context.span_id, "016x") if span_context.is_valid else None
                )

                audit_id = self.mongo_service.create(
                    self.collection_name,
                    audit_entry.model_dump(by_alias=True),
                    user_context.user_id
                )

                changes_count = len(calculate_changes(before, after)) if before and after else 0

                logger.info(
                    "Audit trail entry created",
                    extra={
                        "audit_id": audit_id,
                        "entity": entity,
                        "entity_id": entity_id,
                        "action": action,
                        "user_id": user_context.user_id,
                        "politician_id": user_context.politician_id,
                        "trace_id": audit_entry.trace_id,
                        "changes_count": changes_count,
                        "audit_category": "business_action"
                    }
                )

                return audit_id

            except Exception as e:
                span.record_exception(e)
                logger.error(
                    "Failed to create audit trail entry",
                    extra={
                        "entity": entity,
                        "entity_id": entity_id,
                        "action": action,
                        "user_id": user_context.user_id,
                        "error": str(e)
                    },
                    exc_info=True
                )
                return None


def calculate_changes(before: Dict[str, Any], after: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Calculate field-level changes between two document snapshots.

    Args:
        before: State before the change
        after: State after the change

    Returns:
        List[Dict]: List of field changes
    """
    changes = []

    for key in sorted(set(before.keys()) | set(after.keys())):
        if key in IGNORED_CHANGE_FIELDS:
            continue

        old_value = before.get(key)
        new_value = after.get(key)
        if old_value != new_value:
            changes.append({
                "field": key,
                "old_value": old_value,
                "new_value": new_value
            })

    return changes
