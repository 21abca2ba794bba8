# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Error handling middleware with structured HAL problem responses.
Provides the application exception taxonomy and its Flask handlers.
"""

from flask import Flask, Response, request, jsonify
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException
from typing import Dict, Any
from opentelemetry import trace
import json
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class CustomException(Exception):
    """Base class for custom application exceptions."""

    def __init__(self, message: str, status_code: int = 500, error_type: str = "application-error"):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type


class ValidationException(CustomException):
    """Exception for validation errors."""

    def __init__(self, message: str, validation_errors: list = None):
        super().__init__(message, 400, "validation-error")
        self.validation_errors = validation_errors or []


class AuthenticationException(CustomException):
    """Exception for authentication errors."""

    def __init__(self, message: str):
        super().__init__(message, 401, "authentication-required")


class AuthorizationException(CustomException):
    """Exception for authorization errors."""

    def __init__(self, message: str):
        super().__init__(message, 403, "insufficient-permissions")


class NotFoundException(CustomException):
    """Exception for resource not found errors."""

    def __init__(self, message: str):
        super().__init__(message, 404, "resource-not-found")


class ConflictException(CustomException):
    """Exception for state conflicts and lost optimistic-concurrency races."""

    def __init__(self, message: str):
        super().__init__(message, 409, "resource-conflict")


class TransientException(CustomException):
    """Exception for retryable persistence or infrastructure failures."""

    def __init__(self, message: str):
        super().__init__(message, 503, "service-unavailable")


def _problem_for(hal_formatter, error: CustomException) -> Dict[str, Any]:
    if isinstance(error, ValidationException):
        return hal_formatter.format_validation_error(
            error.message,
            request.path,
            error.validation_errors
        )
    if isinstance(error, AuthenticationException):
        return hal_formatter.format_authentication_error(error.message, request.path)
    if isinstance(error, AuthorizationException):
        return hal_formatter.format_authorization_error(error.message, request.path)
    if isinstance(error, NotFoundException):
        return hal_formatter.format_not_found_error(error.message, request.path)
    if isinstance(error, ConflictException):
        return hal_formatter.format_conflict_error(error.message, request.path)
    if isinstance(error, TransientException):
        return hal_formatter.format_service_unavailable_error(error.message, request.path)
    return hal_formatter.format_server_error(error.message, request.path)


def register_custom_error_handlers(app: Flask, hal_formatter) -> None:
    """
    Register handlers for custom exceptions, HTTP errors and unexpected errors.

    Args:
        app: Flask application
        hal_formatter: HAL formatter instance
    """

    @app.errorhandler(CustomException)
    def handle_custom_exception(error: CustomException):
        with tracer.start_as_current_span("error_handler.custom_exception") as span:
            span.set_attributes({
                "error.type": error.error_type,
                "error.status": error.status_code,
                "http.method": request.method,
                "http.path": request.path
            })

            log = logger.error if error.status_code >= 500 else logger.warning
            log(
                f"Custom exception: {error.error_type}",
                extra={
                    "error_type": error.error_type,
                    "status_code": error.status_code,
                    "error_message": error.message,
                    "path": request.path,
                    "method": request.method
                }
            )

            return jsonify(_problem_for(hal_formatter, error)), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        if error.response is not None:
            return error.response

        detail = str(error.description) if error.description else error.name

        logger.warning(
            f"HTTP error: {error.name}",
            extra={
                "status_code": error.code,
                "detail": detail,
                "path": request.path,
                "method": request.method
            }
        )

        error_response = hal_formatter.builder.build_error_response(
            error.name.lower().replace(' ', '-'),
            error.name,
            error.code,
            detail,
            request.path
        )
        return jsonify(error_response), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        with tracer.start_as_current_span("error_handler.unexpected_error") as span:
            span.set_attributes({
                "error.type": "unexpected-error",
                "error.class": error.__class__.__name__,
                "http.method": request.method,
                "http.path": request.path
            })
            span.record_exception(error)

            logger.error(
                f"Unexpected error: {error.__class__.__name__}",
                extra={
                    "error_type": "unexpected-error",
                    "error_class": error.__class__.__name__,
                    "path": request.path,
                    "method": request.method
                },
                exc_info=True
            )

            # Don't expose internal error details in production
            detail = "An unexpected error occurred"
            if app.config.get('ENV') != 'production':
                detail = f"{error.__class__.__name__}: {str(error)}"

            return jsonify(hal_formatter.format_server_error(detail, request.path)), 500


def make_validation_error_callback(hal_formatter):
    """
    Build the request-validation callback handed to the OpenAPI app.

    Pydantic errors raised while parsing path, query or body models are
    rendered as 400 problem documents like every other validation failure.
    """

    def validation_error_callback(error: ValidationError) -> Response:
        validation_errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ())),
                "message": err.get("msg"),
                "type": err.get("type")
            }
            for err in error.errors()
        ]

        logger.warning(
            "Request validation failed",
            extra={"path": request.path, "error_count": len(validation_errors)}
        )

        body = hal_formatter.format_validation_error(
            "Request validation failed",
            request.path,
            validation_errors
        )
        return Response(json.dumps(body, default=str), status=400, mimetype="application/problem+json")

    return validation_error_callback

