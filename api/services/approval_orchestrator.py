# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Event approval orchestration.

Drives events through their sequential approval chain: persists decisions
with optimistic concurrency, projects the chain onto the event, and hands
notifications and calendar sync requests to the dispatch service once the
decision is committed.
"""

import logging
from typing import Callable, List, Optional, Tuple

from opentelemetry import trace
from pydantic import ValidationError

from domain.approvals import (
    apply_decision, build_approval_chain, build_approval_required_message,
    build_decision_message, create_approval_records, current_approval,
    derive_event_state, order_approvals, resolve_approver_role, validate_approval_chain
)
from middleware.error_handler import (
    AuthorizationException, ConflictException, NotFoundException, ValidationException
)
from models.entities import Event, EventApproval, UserContext
from models.enums import ApprovalDecision, ApprovalStage, ApprovalStatus, EventStatus
from models.requests import CreateEventRequest
from models.responses import ApprovalOutcome
from .audit import AuditService
from .dispatch import DispatchService, PublishResult, Recipient
from .mongodb import MongoDBService, translate_persistence_errors, translate_write_conflicts

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

EVENTS = "events"
APPROVALS = "event_approvals"

DECISION_FIELDS = ("status", "approvedBy", "approvedAt", "comments", "version")


class ApprovalOrchestrator:
    """Sequential multi-level approval of events."""

    def __init__(
        self,
        mongo_service: MongoDBService,
        dispatch_service: Optional[DispatchService] = None,
        audit_service: Optional[AuditService] = None
    ):
        self.mongo_service = mongo_service
        self.dispatch_service = dispatch_service
        self.audit_service = audit_service

    def _load_event(self, user_context: UserContext, event_id: str, session=None) -> Event:
        document = self.mongo_service.find_one_by_org(
            EVENTS, user_context.politician_id, event_id, session=session
        )
        if not document:
            raise NotFoundException(f"Event {event_id} not found")
        return Event.from_document(document)

    def _load_approvals(self, politician_id: str, event_id: str, session=None) -> List[EventApproval]:
        documents = self.mongo_service.find_by_org(
            APPROVALS, politician_id, {"eventId": event_id}, sort_by="approvalLevel", session=session
        )
        return order_approvals([EventApproval.from_document(document) for document in documents])

    def get_approvals(self, user_context: UserContext, event_id: str) -> Tuple[Event, List[EventApproval]]:
        """Load an event and its approval chain ordered by level."""
        with translate_persistence_errors("get_approvals"):
            event = self._load_event(user_context, event_id)
            return event, self._load_approvals(user_context.politician_id, event.id)

    def create_event(
        self,
        user_context: UserContext,
        request: CreateEventRequest
    ) -> Tuple[Event, List[EventApproval]]:
        """
        Store a proposed event together with its approval chain.

        Events that do not require approval are stored approved, with the
        stage already completed, and are sent for calendar sync.

        Raises:
            ValidationException: Event data is invalid
            TransientException: Persistence failure
        """
        with tracer.start_as_current_span("approval_orchestrator.create_event") as span:
            chain = build_approval_chain(request.type, request.priority) if request.requires_approval else []

            try:
                event = Event(
                    politician_id=user_context.politician_id,
                    title=request.title,
                    description=request.description,
                    event_type=request.type,
                    date=request.date,
                    time=request.time,
                    duration=request.duration,
                    location=request.location,
                    expected_attendees=request.expected_attendees,
                    priority=request.priority,
                    requires_approval=request.requires_approval,
                    status=EventStatus.PENDING if chain else EventStatus.APPROVED,
                    approval_stage=chain[0].value if chain else ApprovalStage.COMPLETED.value,
                    created_by=user_context.user_id,
                    updated_by=user_context.user_id
                )
            except ValidationError as e:
                raise ValidationException(
                    "Invalid event data",
                    [{"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]} for err in e.errors()]
                )

            approvals = create_approval_records(event, user_context) if chain else []

            span.set_attributes({
                "event.id": event.id,
                "event.type": str(event.event_type),
                "event.approval_levels": len(approvals)
            })

            with translate_persistence_errors("create_event"):
                with self.mongo_service.transaction() as session:
                    self.mongo_service.create(EVENTS, event.to_document(), user_context.user_id, session=session)
                    self.mongo_service.insert_many(
                        APPROVALS, [approval.to_document() for approval in approvals],
                        user_context.user_id, session=session
                    )

            logger.info(
                "Event created",
                extra={
                    "event_id": event.id,
                    "event_type": event.event_type,
                    "approval_stage": event.approval_stage,
                    "approval_levels": len(approvals),
                    "politician_id": user_context.politician_id,
                    "user_id": user_context.user_id
                }
            )

            if self.audit_service:
                self.audit_service.log_action(
                    user_context, "event", event.id, "create",
                    after={"status": event.status, "approvalStage": event.approval_stage}
                )

            if event.status == EventStatus.APPROVED:
                self._best_effort("calendar sync", event, self._sync_calendar, event)
            else:
                self._best_effort("approval required notification", event, self._notify_approvers, event)

            return event, approvals

    def act_on_approval(
        self,
        user_context: UserContext,
        event_id: str,
        decision: str,
        comment: Optional[str] = None
    ) -> ApprovalOutcome:
        """
        Approve or reject the current approval level of an event.

        Only the role responsible for the lowest pending level may act. The
        decision is written with a compare-and-set on the level's status and
        version, so of two racing callers exactly one succeeds.

        Raises:
            ValidationException: Unknown decision
            NotFoundException: Event not in the caller's tenant, or a pending event without approval chain
            ConflictException: Event already final, chain malformed, or decision lost a race
            AuthorizationException: Caller's role is not responsible for the current level
            TransientException: Persistence failure
        """
        try:
            decision = ApprovalDecision(decision)
        except ValueError:
            raise ValidationException(f"Invalid approval action '{decision}'. Allowed: approve, reject")

        with tracer.start_as_current_span("approval_orchestrator.act_on_approval") as span:
            span.set_attributes({
                "event.id": event_id,
                "approval.decision": decision.value,
                "user.role": user_context.role
            })

            with translate_persistence_errors("load_approvals"):
                event = self._load_event(user_context, event_id)
                approvals = self._load_approvals(user_context.politician_id, event.id)

            if event.is_terminal():
                raise ConflictException(f"Event {event_id} is already {event.status}")

            if not approvals:
                raise NotFoundException(f"Event {event_id} has no approval chain")

            validation = validate_approval_chain(approvals)
            if not validation.is_valid:
                logger.error(
                    "Malformed approval chain",
                    extra={"event_id": event.id, "errors": validation.errors}
                )
                raise ConflictException(f"Approval chain of event {event_id} is inconsistent")

            pending = current_approval(approvals)
            if pending is None:
                raise ConflictException(f"Event {event_id} has no pending approval level")

            actor_role = resolve_approver_role(user_context.role)
            if actor_role is None or actor_role.value != pending.approver_role:
                logger.warning(
                    "Approval attempted by unauthorized role",
                    extra={
                        "event_id": event.id,
                        "required_role": pending.approver_role,
                        "user_role": user_context.role,
                        "user_id": user_context.user_id
                    }
                )
                raise AuthorizationException(
                    f"Approval level {pending.approval_level} requires role {pending.approver_role}"
                )

            transition = apply_decision(approvals, decision, user_context.user_id, comment)
            decided = transition.approval
            decided_document = decided.to_document()

            concurrent = f"Event {event_id} was modified concurrently"
            with translate_persistence_errors("act_on_approval"), translate_write_conflicts(concurrent):
                with self.mongo_service.transaction() as session:
                    won = self.mongo_service.compare_and_set_by_org(
                        APPROVALS, user_context.politician_id, pending.id,
                        {"status": ApprovalStatus.PENDING.value, "version": pending.version},
                        {field: decided_document[field] for field in DECISION_FIELDS},
                        user_context.user_id, session=session
                    )
                    if not won:
                        raise ConflictException(
                            f"Approval level {pending.approval_level} was decided concurrently"
                        )

                    committed = self._load_approvals(user_context.politician_id, event.id, session=session)
                    event_status, approval_stage = derive_event_state(committed)

                    updated = self.mongo_service.compare_and_set_by_org(
                        EVENTS, user_context.politician_id, event.id,
                        {"version": event.version},
                        {"status": event_status, "approvalStage": approval_stage, "version": event.version + 1},
                        user_context.user_id, session=session
                    )
                    if not updated:
                        raise ConflictException(concurrent)

            event = event.model_copy(update={
                "status": event_status,
                "approval_stage": approval_stage,
                "version": event.version + 1
            })

            span.set_attributes({"event.status": event_status, "event.approval_stage": approval_stage})
            logger.info(
                "Approval decision recorded",
                extra={
                    "event_id": event.id,
                    "approval_level": decided.approval_level,
                    "decision": decision.value,
                    "event_status": event_status,
                    "approval_stage": approval_stage,
                    "user_id": user_context.user_id
                }
            )

            if self.audit_service:
                self.audit_service.log_action(
                    user_context, "event_approval", decided.id, decision.value,
                    before={"status": pending.status, "approvalStage": pending.approver_role},
                    after={"status": decided.status, "eventStatus": event_status, "approvalStage": approval_stage}
                )

            self._publish_decision(event, decision)

            return ApprovalOutcome(status=event_status, approval_stage=approval_stage, approval=decided)

    def _publish_decision(self, event: Event, decision: ApprovalDecision) -> None:
        if event.status == EventStatus.APPROVED:
            self._best_effort("calendar sync", event, self._sync_calendar, event)

        self._best_effort("decision notification", event, self._notify_creator, event, decision)

        if event.status == EventStatus.PENDING:
            self._best_effort("approval required notification", event, self._notify_approvers, event)

    def _sync_calendar(self, event: Event) -> PublishResult:
        return self.dispatch_service.sync_approved_event(event)

    def _notify_creator(self, event: Event, decision: ApprovalDecision) -> PublishResult:
        title, message = build_decision_message(event, decision)
        return self.dispatch_service.notify(
            Recipient.user(event.created_by), event.id, message, event.politician_id,
            notification_type="event_approval", title=title
        )

    def _notify_approvers(self, event: Event) -> PublishResult:
        title, message = build_approval_required_message(event)
        return self.dispatch_service.notify(
            Recipient.role(event.approval_stage), event.id, message, event.politician_id,
            notification_type="approval_required", title=title
        )

    def _best_effort(self, description: str, event: Event, publish: Callable[..., PublishResult], *args) -> None:
        """Run a post-commit side effect; failures are logged, never raised."""
        if self.dispatch_service is None:
            return

        try:
            result = publish(*args)
        except Exception as e:
            logger.warning(
                f"Failed to publish {description}",
                extra={"event_id": event.id, "error": str(e)},
                exc_info=True
            )
            return

        if not result.success:
            logger.warning(
                f"Failed to publish {description}",
                extra={"event_id": event.id, "error": result.error}
            )
