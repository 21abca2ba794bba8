# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Workflow step tracking for grievance tasks.

Binds tasks to workflow templates, records step status changes and keeps
task progress in step with its step instances.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from opentelemetry import trace

from domain.sla import classify_sla, default_deadline
from domain.workflow import (
    instantiate_steps, apply_step_status, compute_progress,
    select_workflow, validate_step_status
)
from middleware.error_handler import ConflictException, NotFoundException, ValidationException
from models.entities import Task, TaskWorkflowStepInstance, WorkflowDefinition, UserContext
from models.responses import SLAStatus
from .audit import AuditService
from .mongodb import MongoDBService, translate_persistence_errors, translate_write_conflicts

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

TASKS = "tasks"
WORKFLOWS = "workflows"
STEPS = "task_workflow_steps"

STEP_FIELDS = ("status", "completedBy", "completedAt", "notes")


class WorkflowStepTracker:
    """Persistence orchestration around the workflow step rules."""

    def __init__(self, mongo_service: MongoDBService, audit_service: Optional[AuditService] = None):
        self.mongo_service = mongo_service
        self.audit_service = audit_service

    def _load_task(self, user_context: UserContext, task_id: str, session=None) -> Task:
        document = self.mongo_service.find_one_by_org(
            TASKS, user_context.politician_id, task_id, session=session
        )
        if not document:
            raise NotFoundException(f"Task {task_id} not found")
        return Task.from_document(document)

    def _load_workflow(self, user_context: UserContext, workflow_id: str) -> WorkflowDefinition:
        document = self.mongo_service.find_one_by_org(WORKFLOWS, user_context.politician_id, workflow_id)
        if not document:
            raise NotFoundException(f"Workflow {workflow_id} not found")
        return WorkflowDefinition.from_document(document)

    def _load_steps(self, politician_id: str, task_id: str, session=None) -> List[TaskWorkflowStepInstance]:
        documents = self.mongo_service.find_by_org(
            STEPS, politician_id, {"taskId": task_id}, sort_by="stepNumber", session=session
        )
        steps = [TaskWorkflowStepInstance.from_document(document) for document in documents]
        return sorted(steps, key=lambda step: step.step_number)

    def _audit(self, user_context: UserContext, entity: str, entity_id: str, action: str,
               before=None, after=None) -> None:
        if self.audit_service:
            self.audit_service.log_action(user_context, entity, entity_id, action, before, after)

    def get_task(self, user_context: UserContext, task_id: str) -> Task:
        """Load a task of the caller's tenant."""
        with translate_persistence_errors("get_task"):
            return self._load_task(user_context, task_id)

    def sla_of(self, user_context: UserContext, task_id: str,
               now: Optional[datetime] = None) -> Tuple[Task, SLAStatus]:
        """Load a task and classify its deadline."""
        task = self.get_task(user_context, task_id)
        return task, classify_sla(task, now)

    def bind_workflow(
        self,
        user_context: UserContext,
        task_id: str,
        workflow_id: str
    ) -> List[TaskWorkflowStepInstance]:
        """
        Bind a task to a workflow and create its step instances.

        All instances, the task's workflow reference, its reset progress and
        any SLA-derived deadline are written in one transaction.

        Raises:
            NotFoundException: Task or workflow not in the caller's tenant
            ValidationException: Workflow has no steps
            ConflictException: Task already bound, or bound concurrently
            TransientException: Persistence failure
        """
        with tracer.start_as_current_span("workflow_tracker.bind_workflow") as span:
            span.set_attributes({
                "task.id": task_id,
                "workflow.id": workflow_id,
                "politician.id": user_context.politician_id
            })

            with translate_persistence_errors("bind_workflow"):
                task = self._load_task(user_context, task_id)
                workflow = self._load_workflow(user_context, workflow_id)

                if not workflow.steps:
                    raise ValidationException(f"Workflow {workflow_id} has no steps")

                if task.workflow_id:
                    raise ConflictException(f"Task {task_id} is already bound to a workflow")

                existing = self.mongo_service.count_by_org(
                    STEPS, user_context.politician_id, {"taskId": task.id}
                )
                if existing:
                    raise ConflictException(f"Task {task_id} already has workflow steps")

                steps = instantiate_steps(task, workflow, user_context)

                updates = {"workflowId": workflow.id, "progress": 0}
                if task.deadline is None:
                    deadline = default_deadline(task.created_at, workflow.sla_days, workflow.sla_hours)
                    if deadline is not None:
                        updates["deadline"] = deadline

                concurrent = f"Task {task_id} was bound to a workflow concurrently"
                with translate_write_conflicts(concurrent), self.mongo_service.transaction() as session:
                    bound = self.mongo_service.compare_and_set_by_org(
                        TASKS, user_context.politician_id, task.id,
                        {"workflowId": None}, updates, user_context.user_id,
                        session=session
                    )
                    if not bound:
                        raise ConflictException(concurrent)

                    self.mongo_service.insert_many(
                        STEPS, [step.to_document() for step in steps], user_context.user_id,
                        session=session
                    )

            span.set_attribute("workflow.steps_created", len(steps))
            logger.info(
                "Workflow bound to task",
                extra={
                    "task_id": task.id,
                    "workflow_id": workflow.id,
                    "steps_created": len(steps),
                    "politician_id": user_context.politician_id,
                    "user_id": user_context.user_id
                }
            )

            self._audit(
                user_context, "task", task.id, "bind_workflow",
                before={"workflowId": None},
                after={"workflowId": workflow.id, "steps": len(steps)}
            )

            return steps

    def resolve_and_bind(self, user_context: UserContext, task_id: str) -> List[TaskWorkflowStepInstance]:
        """
        Bind a task to the workflow configured for its category.

        Returns an empty list when the tenant has no matching workflow.
        """
        with translate_persistence_errors("resolve_workflow"):
            task = self._load_task(user_context, task_id)
            if not task.category_id:
                return []

            documents = self.mongo_service.find_by_org(
                WORKFLOWS, user_context.politician_id, {"categoryId": task.category_id}
            )

        workflows = [WorkflowDefinition.from_document(document) for document in documents]
        workflow = select_workflow(workflows, task.category_id, task.subcategory)
        if workflow is None:
            logger.info(
                "No workflow configured for task category",
                extra={"task_id": task.id, "category_id": task.category_id, "subcategory": task.subcategory}
            )
            return []

        return self.bind_workflow(user_context, task.id, workflow.id)

    def set_step_status(
        self,
        user_context: UserContext,
        task_id: str,
        step_id: str,
        status: str,
        notes: Optional[str] = None
    ) -> TaskWorkflowStepInstance:
        """
        Change a step's status and recompute task progress.

        The step write and the progress write share one transaction.

        Raises:
            ValidationException: Unknown status
            NotFoundException: Unknown task, or step not belonging to the task
            TransientException: Persistence failure
        """
        with tracer.start_as_current_span("workflow_tracker.set_step_status") as span:
            span.set_attributes({"task.id": task_id, "step.id": step_id, "step.status": str(status)})

            try:
                new_status = validate_step_status(status)
            except ValueError as e:
                raise ValidationException(str(e))

            with translate_persistence_errors("set_step_status"):
                task = self._load_task(user_context, task_id)

                document = self.mongo_service.find_one_by_org(STEPS, user_context.politician_id, step_id)
                if not document or document.get("taskId") != task.id:
                    raise NotFoundException(f"Step {step_id} not found for task {task_id}")

                step = TaskWorkflowStepInstance.from_document(document)
                updated = apply_step_status(step, new_status, user_context.user_id, notes)
                updated_document = updated.to_document()
                step_updates = {field: updated_document[field] for field in STEP_FIELDS}

                with self.mongo_service.transaction() as session:
                    self.mongo_service.update_by_org(
                        STEPS, user_context.politician_id, step.id, step_updates,
                        user_context.user_id, session=session
                    )

                    steps = self._load_steps(user_context.politician_id, task.id, session=session)
                    progress = compute_progress(s.status for s in steps)
                    if progress is not None:
                        self.mongo_service.update_by_org(
                            TASKS, user_context.politician_id, task.id, {"progress": progress},
                            user_context.user_id, session=session
                        )

            span.set_attribute("task.progress", progress if progress is not None else task.progress)
            logger.info(
                "Workflow step status updated",
                extra={
                    "task_id": task.id,
                    "step_id": step.id,
                    "from_status": step.status,
                    "to_status": updated.status,
                    "progress": progress,
                    "user_id": user_context.user_id
                }
            )

            self._audit(
                user_context, "task_workflow_step", step.id, "step_status",
                before={"status": step.status},
                after={"status": updated.status, "progress": progress}
            )

            return updated

    def progress_of(self, user_context: UserContext, task_id: str) -> int:
        """
        Current progress of a task, recomputed from its steps.

        A task without step instances keeps its stored progress.
        """
        with translate_persistence_errors("progress_of"):
            task = self._load_task(user_context, task_id)
            steps = self._load_steps(user_context.politician_id, task.id)

        progress = compute_progress(step.status for step in steps)
        return task.progress if progress is None else progress

    def list_steps(self, user_context: UserContext, task_id: str) -> List[TaskWorkflowStepInstance]:
        """Step instances of a task ordered by step number."""
        with translate_persistence_errors("list_steps"):
            task = self._load_task(user_context, task_id)
            return self._load_steps(user_context.politician_id, task.id)
