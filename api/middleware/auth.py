# SPDX-License-Identifier: Apache-2.0

"""
Authentication middleware for JWT token validation and user context extraction.

This module provides Flask middleware for validating JWT tokens, checking
the blocklist, and building the tenant-scoped user context for request
processing.
"""

from functools import wraps
from flask import request, g, current_app
from typing import Optional, Dict, Any, Callable
from opentelemetry import trace
import logging

from middleware.error_handler import AuthenticationException
from models.entities import UserContext
from services.auth import TokenValidationError

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthMiddleware:
    """
    JWT authentication middleware for Flask applications.

    Handles token extraction, validation, blocklist checking, and user context
    building for protected endpoints.
    """

    def __init__(self, auth_service, redis_service):
        """
        Initialize the authentication middleware.

        Args:
            auth_service: JWT authentication service
            redis_service: Redis service for token blocklist
        """
        self.auth_service = auth_service
        self.redis_service = redis_service

    def extract_token_from_request(self) -> Optional[str]:
        """
        Extract JWT token from request headers.

        Returns:
            JWT token string or None if not found
        """
        auth_header = request.headers.get('Authorization', '')

        if not auth_header:
            return None

        if auth_header.startswith('Bearer '):
            return auth_header[7:] or None

        return auth_header

    def is_token_blocked(self, token: str) -> bool:
        """
        Check if token is in the Redis blocklist.

        Returns:
            True if token is blocked, False otherwise
        """
        if self.redis_service is None:
            return False

        try:
            token_id = self.auth_service.extract_token_id(token)
            return self.redis_service.is_token_blocked(token_id)
        except Exception as e:
            logger.error(f"Error checking token blocklist: {str(e)}")
            # Fail secure - treat as blocked if we can't check
            return True

    def build_user_context(self, token_payload: Dict[str, Any], request_info: Dict[str, Any]) -> UserContext:
        """
        Build user context from validated token payload and request information.

        Args:
            token_payload: Decoded JWT payload
            request_info: Request metadata (IP, user agent, etc.)

        Returns:
            UserContext object for request processing
        """
        return UserContext(
            user_id=token_payload["sub"],
            politician_id=token_payload["politician_id"],
            role=token_payload.get("role", "staff"),
            email=token_payload.get("email"),
            name=token_payload.get("name"),
            permissions=token_payload.get("permissions", []),
            token_payload=token_payload,
            ip_address=request_info.get("ip_address"),
            user_agent=request_info.get("user_agent"),
            session_id=request_info.get("session_id")
        )

    def get_request_info(self) -> Dict[str, Any]:
        """Extract request metadata for user context."""
        return {
            "ip_address": request.remote_addr,
            "user_agent": request.headers.get('User-Agent', ''),
            "session_id": request.headers.get('X-Session-ID')
        }

    def authenticate(self) -> UserContext:
        """
        Authenticate the current request.

        Raises:
            AuthenticationException: Missing, revoked or invalid token
        """
        with tracer.start_as_current_span("auth.middleware.validate_request") as span:
            token = self.extract_token_from_request()
            if not token:
                span.set_attribute("auth.result", "missing_token")
                logger.warning("Authentication failed: missing token")
                raise AuthenticationException("Missing authorization token")

            if self.is_token_blocked(token):
                span.set_attribute("auth.result", "token_blocked")
                logger.warning("Authentication failed: token is blocked")
                raise AuthenticationException("Token has been revoked")

            try:
                token_payload = self.auth_service.validate_token(token, "access")
            except TokenValidationError as e:
                span.set_attribute("auth.result", "invalid_token")
                logger.warning(f"Authentication failed: {str(e)}")
                raise AuthenticationException(str(e))

            user_context = self.build_user_context(token_payload, self.get_request_info())

            span.set_attributes({
                "auth.result": "success",
                "user.id": user_context.user_id,
                "user.role": user_context.role,
                "politician.id": user_context.politician_id
            })

            logger.debug(
                "Authentication successful",
                extra={
                    "user_id": user_context.user_id,
                    "politician_id": user_context.politician_id,
                    "ip_address": user_context.ip_address
                }
            )

            return user_context


def require_auth(auth_middleware: AuthMiddleware) -> Callable:
    """
    Decorator to require JWT authentication for Flask routes.

    The user context is stored on flask.g for the view.
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            g.user_context = auth_middleware.authenticate()
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_jwt(f: Callable) -> Callable:
    """Require authentication using the middleware attached to the current app."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        return require_auth(current_app.auth_middleware)(f)(*args, **kwargs)
    return decorated_function
