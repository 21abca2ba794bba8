# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
HAL (Hypertext Application Language) response formatting utilities.
Implements HATEOAS responses with conditional affordance links for tasks,
workflow steps, events and slot suggestions.
"""

from typing import Dict, List, Any, Optional
from urllib.parse import urljoin

from models.enums import EventStatus, StepStatus
from models.responses import HalLink

PROBLEM_BASE_URI = "https://api.gabinete.app/problems"


class HalLinkBuilder:
    """Builder for HAL links with proper URL construction."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/') + '/'

    def build_link(
        self,
        path: str,
        method: str = "GET",
        content_type: Optional[str] = None,
        title: Optional[str] = None,
        templated: bool = False
    ) -> HalLink:
        """Build a HAL link with proper URL construction."""
        href = urljoin(self.base_url, path.lstrip('/'))

        return HalLink(
            href=href,
            method=method,
            type=content_type,
            title=title,
            templated=templated or None
        )

    def build_self_link(self, resource_path: str) -> HalLink:
        """Build self link for a resource."""
        return self.build_link(resource_path, title="Self")

    def build_action_link(
        self,
        resource_path: str,
        action: str,
        method: str = "POST",
        title: Optional[str] = None
    ) -> HalLink:
        """Build action link for a resource."""
        return self.build_link(
            f"{resource_path}/{action}",
            method=method,
            content_type="application/json",
            title=title or action.title()
        )


class AffordanceLinkBuilder:
    """Builder for conditional affordance links based on resource state."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def build_task_affordances(self, task_id: str, has_workflow: bool) -> Dict[str, HalLink]:
        """Build links for a task resource."""
        base_path = f"/api/tasks/{task_id}"
        links = {
            'self': self.link_builder.build_self_link(f"{base_path}/sla"),
            'sla': self.link_builder.build_link(f"{base_path}/sla", title="SLA status"),
            'progress': self.link_builder.build_link(f"{base_path}/progress", title="Progress"),
        }

        if has_workflow:
            links['steps'] = self.link_builder.build_link(f"{base_path}/steps", title="Workflow steps")
        else:
            links['bind-workflow'] = self.link_builder.build_action_link(
                base_path, "workflow", title="Bind workflow"
            )

        return links

    def build_step_affordances(self, task_id: str, step_id: str, step_status: str) -> Dict[str, HalLink]:
        """Build links for a workflow step instance."""
        step_path = f"/api/tasks/{task_id}/steps/{step_id}"
        links = {
            'self': self.link_builder.build_self_link(step_path),
            'task': self.link_builder.build_link(f"/api/tasks/{task_id}/progress", title="Task progress"),
        }

        if step_status != StepStatus.COMPLETED:
            links['complete'] = self.link_builder.build_link(
                step_path, method="PUT", content_type="application/json", title="Complete step"
            )
        else:
            links['reopen'] = self.link_builder.build_link(
                step_path, method="PUT", content_type="application/json", title="Reopen step"
            )

        return links

    def build_event_affordances(
        self,
        event_id: str,
        event_status: str,
        approval_stage: str,
        approver_role: Optional[str]
    ) -> Dict[str, HalLink]:
        """Build links for an event; approve/reject only for the responsible role."""
        base_path = f"/api/events/{event_id}"
        links = {
            'self': self.link_builder.build_self_link(f"{base_path}/approvals"),
            'approvals': self.link_builder.build_link(f"{base_path}/approvals", title="Approval chain"),
        }

        if event_status == EventStatus.PENDING and approver_role and approver_role == approval_stage:
            links['approve'] = self.link_builder.build_action_link(
                base_path, "approve", title="Approve or reject event"
            )

        return links


class HalResponseBuilder:
    """Main HAL response builder."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/')
        self.link_builder = HalLinkBuilder(base_url)
        self.affordance_builder = AffordanceLinkBuilder(base_url)

    @staticmethod
    def _dump_links(links: Dict[str, HalLink]) -> Dict[str, Any]:
        return {rel: link.model_dump(exclude_none=True) for rel, link in links.items()}

    def build_resource_response(self, data: Dict[str, Any], links: Dict[str, HalLink]) -> Dict[str, Any]:
        """Attach links to a resource representation."""
        response = dict(data)
        response['_links'] = self._dump_links(links)
        return response

    def build_collection_response(
        self,
        items: List[Dict[str, Any]],
        collection_path: str,
        embedded_name: str = 'items'
    ) -> Dict[str, Any]:
        """Build an unpaginated HAL collection."""
        return {
            'total': len(items),
            '_links': self._dump_links({'self': self.link_builder.build_self_link(collection_path)}),
            '_embedded': {embedded_name: items}
        }

    def build_error_response(
        self,
        error_type: str,
        title: str,
        status: int,
        detail: str,
        instance: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """Build RFC 7807 compliant error response with HAL links."""
        error_response = {
            'type': f"{PROBLEM_BASE_URI}/{error_type}",
            'title': title,
            'status': status,
            'detail': detail,
            'instance': instance
        }

        if validation_errors:
            error_response['errors'] = validation_errors

        links = {
            'help': self.link_builder.build_link(
                f"/docs/errors#{error_type}",
                title="Error documentation"
            )
        }

        if error_type == "validation-error":
            links['schema'] = self.link_builder.build_link("/openapi/openapi.json", title="API schema")

        error_response['_links'] = self._dump_links(links)
        return error_response


class HalFormatter:
    """High-level HAL formatter with convenience methods."""

    def __init__(self, base_url: str):
        self.builder = HalResponseBuilder(base_url)

    @property
    def affordances(self) -> AffordanceLinkBuilder:
        return self.builder.affordance_builder

    def format_task_sla(self, task_id: str, sla: Dict[str, Any], has_workflow: bool) -> Dict[str, Any]:
        """Format a task SLA status."""
        return self.builder.build_resource_response(
            {'taskId': task_id, **sla},
            self.affordances.build_task_affordances(task_id, has_workflow)
        )

    def format_task_progress(self, task_id: str, progress: int, has_workflow: bool) -> Dict[str, Any]:
        """Format a task progress value."""
        return self.builder.build_resource_response(
            {'taskId': task_id, 'progress': progress},
            self.affordances.build_task_affordances(task_id, has_workflow)
        )

    def format_step(self, step: Dict[str, Any]) -> Dict[str, Any]:
        """Format a workflow step instance with HAL links."""
        return self.builder.build_resource_response(
            step,
            self.affordances.build_step_affordances(step['taskId'], step['id'], step['status'])
        )

    def format_step_collection(self, task_id: str, steps: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Format the step instances of a task."""
        return self.builder.build_collection_response(
            [self.format_step(step) for step in steps],
            f"/api/tasks/{task_id}/steps",
            embedded_name='steps'
        )

    def format_event(self, event: Dict[str, Any], approver_role: Optional[str]) -> Dict[str, Any]:
        """Format an event with approval affordances for the caller."""
        return self.builder.build_resource_response(
            event,
            self.affordances.build_event_affordances(
                event['id'], event['status'], event['approvalStage'], approver_role
            )
        )

    def format_approval_outcome(self, event_id: str, outcome: Dict[str, Any],
                                approver_role: Optional[str]) -> Dict[str, Any]:
        """Format the result of an approval decision."""
        return self.builder.build_resource_response(
            outcome,
            self.affordances.build_event_affordances(
                event_id, outcome['status'], outcome['approvalStage'], approver_role
            )
        )

    def format_approval_collection(self, event_id: str, approvals: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Format an event approval chain."""
        return self.builder.build_collection_response(
            approvals,
            f"/api/events/{event_id}/approvals",
            embedded_name='approvals'
        )

    def format_slot_suggestions(self, suggestions: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Format ranked slot suggestions."""
        return self.builder.build_collection_response(
            suggestions,
            "/api/calendar/suggestions",
            embedded_name='suggestions'
        )

    def format_validation_error(
        self,
        detail: str,
        instance: str,
        validation_errors: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Format a validation error response."""
        return self.builder.build_error_response(
            "validation-error",
            "Validation Error",
            400,
            detail,
            instance,
            validation_errors
        )

    def format_authentication_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format an authentication error response."""
        return self.builder.build_error_response(
            "authentication-required", "Authentication Required", 401, detail, instance
        )

    def format_authorization_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format an authorization error response."""
        return self.builder.build_error_response(
            "insufficient-permissions", "Insufficient Permissions", 403, detail, instance
        )

    def format_not_found_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format a not found error response."""
        return self.builder.build_error_response(
            "resource-not-found", "Resource Not Found", 404, detail, instance
        )

    def format_conflict_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format a conflict error response."""
        return self.builder.build_error_response(
            "resource-conflict", "Resource Conflict", 409, detail, instance
        )

    def format_service_unavailable_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format a retryable failure response."""
        return self.builder.build_error_response(
            "service-unavailable", "Service Unavailable", 503, detail, instance
        )

    def format_server_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format a server error response."""
        return self.builder.build_error_response(
            "internal-server-error", "Internal Server Error", 500, detail, instance
        )


# Convenience function for creating HAL formatter
def create_hal_formatter(base_url: str) -> HalFormatter:
    """Create a HAL formatter instance."""
    return HalFormatter(base_url)
