# SPDX-License-Identifier: Apache-2.0

"""
Observability Middleware

Instruments Flask with OpenTelemetry and writes one structured log line per
request, tagged with the tenant and route so lifecycle calls can be
correlated with their audit entries.
"""

import time
import logging
from flask import Flask, request, g
from opentelemetry import trace
from opentelemetry.instrumentation.flask import FlaskInstrumentor

logger = logging.getLogger(__name__)


def _route_of(req) -> str:
    return req.url_rule.rule if req.url_rule else req.path


def add_observability_middleware(app: Flask) -> None:
    """Add OpenTelemetry instrumentation and request logging to Flask app."""

    FlaskInstrumentor().instrument_app(app)

    @app.before_request
    def start_request_timer():
        g.start_time = time.time()
        span = trace.get_current_span()
        g.trace_id = format(span.get_span_context().trace_id, "032x") if span.is_recording() else None

    @app.after_request
    def log_request(response):
        duration_ms = round((time.time() - g.get('start_time', time.time())) * 1000, 2)
        user_context = g.get('user_context')
        politician_id = user_context.politician_id if user_context else None

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("http.duration_ms", duration_ms)
            if user_context:
                span.set_attributes({"politician.id": politician_id, "user.role": user_context.role})

        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            f"{request.method} {_route_of(request)} {response.status_code}",
            extra={
                "extra_fields": {
                    "method": request.method,
                    "route": _route_of(request),
                    "path": request.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                    "trace_id": g.get('trace_id'),
                    "politician_id": politician_id
                }
            }
        )

        if g.get('trace_id'):
            response.headers['X-Trace-Id'] = g.trace_id

        return response
