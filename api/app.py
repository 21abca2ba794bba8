# SPDX-License-Identifier: Apache-2.0

"""
Gabinete Core API - Flask Application Entry Point

This module builds the Flask application with OpenAPI 3.0 support, wires the
lifecycle services (workflow tracking, event approvals, slot suggestions) and
registers middleware and routes.
"""

import os
from typing import Any, Dict, Optional

from flask import jsonify
from flask_openapi3 import OpenAPI, Info, Tag

from observability.config import setup_observability
from observability.middleware import add_observability_middleware
from middleware.auth import AuthMiddleware
from middleware.error_handler import make_validation_error_callback, register_custom_error_handlers
from services.approval_orchestrator import ApprovalOrchestrator
from services.audit import AuditService
from services.auth import AuthService
from services.calendar_service import CalendarService
from services.dispatch import create_dispatch_service
from services.hal import create_hal_formatter
from services.health import HealthCheckService
from services.mongodb import MongoDBService
from services.redis import RedisService
from services.workflow_tracker import WorkflowStepTracker

info = Info(
    title="Gabinete Core API",
    version="1.0.0",
    description="Task and event lifecycle core of the constituent grievance portal"
)

tags = [
    Tag(name="Tasks", description="Task SLA, workflow steps and progress"),
    Tag(name="Events", description="Event proposal and approval workflow"),
    Tag(name="Calendar", description="Event slot suggestions"),
    Tag(name="Health", description="System health and status")
]


def load_config() -> Dict[str, Any]:
    """Application configuration from the environment."""
    environment = os.getenv('ENVIRONMENT', 'development')
    return {
        'ENVIRONMENT': environment,
        'ENV': environment,
        'DEBUG': environment == 'development',
        'BASE_URL': os.getenv('BASE_URL', 'http://localhost:5000'),
        'MONGODB_URI': os.getenv('MONGODB_URI', 'mongodb://localhost:27017/gabinete_dev'),
        'MONGODB_DATABASE': os.getenv('MONGODB_DATABASE', 'gabinete_dev'),
        'REDIS_URL': os.getenv('REDIS_URL'),
        'REDIS_TOKEN': os.getenv('REDIS_TOKEN'),
    }


def create_app(config: Optional[Dict[str, Any]] = None, services: Optional[Dict[str, Any]] = None) -> OpenAPI:
    """
    Build the application.

    Args:
        config: Configuration overrides
        services: Service instances to use instead of the environment-built ones
            (mongodb_service, redis_service, auth_service, dispatch_service)

    Returns:
        Configured OpenAPI (Flask) application
    """
    settings = {**load_config(), **(config or {})}
    services = services or {}

    hal_formatter = create_hal_formatter(settings['BASE_URL'])

    app = OpenAPI(
        __name__,
        info=info,
        validation_error_status=400,
        validation_error_callback=make_validation_error_callback(hal_formatter)
    )
    app.config.update(settings)

    add_observability_middleware(app)

    mongodb_service = services.get('mongodb_service') or MongoDBService(
        settings['MONGODB_URI'], settings['MONGODB_DATABASE']
    )
    redis_service = services.get('redis_service') or RedisService(
        settings['REDIS_URL'], settings['REDIS_TOKEN']
    )
    auth_service = services.get('auth_service') or AuthService()
    dispatch_service = services.get('dispatch_service') or create_dispatch_service()

    audit_service = AuditService(mongodb_service)

    app.mongodb_service = mongodb_service
    app.redis_service = redis_service
    app.auth_service = auth_service
    app.dispatch_service = dispatch_service
    app.audit_service = audit_service
    app.hal_formatter = hal_formatter
    app.auth_middleware = AuthMiddleware(auth_service, redis_service)
    app.workflow_tracker = WorkflowStepTracker(mongodb_service, audit_service)
    app.approval_orchestrator = ApprovalOrchestrator(mongodb_service, dispatch_service, audit_service)
    app.calendar_service = CalendarService(
        mongodb_service,
        redis_service if redis_service.is_available() else None
    )
    app.health_service = HealthCheckService(
        mongodb_service,
        redis_service if redis_service.is_available() else None,
        dispatch_service
    )

    register_custom_error_handlers(app, hal_formatter)

    from routes.tasks import tasks_bp
    from routes.events import events_bp
    from routes.calendar import calendar_bp

    app.register_api(tasks_bp)
    app.register_api(events_bp)
    app.register_api(calendar_bp)

    @app.get('/api/healthz', tags=[tags[3]])
    def health_check():
        """Health check with dependency status."""
        health_data = app.health_service.get_health()
        status_code = 503 if health_data["status"] == "unhealthy" else 200

        health_response = hal_formatter.builder.build_resource_response(
            health_data,
            {'self': hal_formatter.builder.link_builder.build_self_link('/api/healthz')}
        )

        return jsonify(health_response), status_code

    return app


if __name__ == '__main__':
    setup_observability()
    application = create_app()
    application.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=application.config['DEBUG']
    )
