# SPDX-License-Identifier: Apache-2.0

"""
JWT validation service.

Tokens are issued by the identity provider of the portal and signed with
RS256; this service only verifies them and exposes their claims.
"""

import os
import jwt
from typing import Optional, Dict, Any, Tuple
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from opentelemetry import trace
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ("sub", "politician_id")


class TokenValidationError(Exception):
    """Raised when token validation fails."""
    pass


def generate_key_pair() -> Tuple[str, str]:
    """Generate an RSA key pair (PEM private, PEM public) for development use."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048
    )

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    ).decode('utf-8')

    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('utf-8')

    return private_pem, public_pem


class AuthService:
    """JWT verification with RS256 public keys."""

    def __init__(self, public_key: Optional[str] = None, algorithm: Optional[str] = None):
        """
        Initialize the authentication service.

        Args:
            public_key: RS256 public key for token verification (PEM format)
            algorithm: JWT signing algorithm
        """
        self.public_key = public_key or self._get_public_key()
        self.algorithm = algorithm or os.getenv("JWT_ALGORITHM", "RS256")

    def _get_public_key(self) -> str:
        """Get public key from environment or generate for development."""
        public_key_env = os.getenv("JWT_PUBLIC_KEY")
        if public_key_env:
            # Single-line env values carry escaped newlines
            return public_key_env.replace("\\n", "\n")

        # No token can verify against a throwaway key: every request is rejected
        logger.warning("No JWT_PUBLIC_KEY found, generating development key pair")
        return generate_key_pair()[1]

    def validate_token(self, token: str, token_type: str = "access") -> Dict[str, Any]:
        """
        Validate and decode a JWT token.

        Args:
            token: JWT token string to validate
            token_type: Expected token type

        Returns:
            Decoded token payload

        Raises:
            TokenValidationError: If token is invalid, expired or lacks tenant claims
        """
        with tracer.start_as_current_span("auth.validate_token") as span:
            span.set_attributes({
                "auth.operation": "validate_token",
                "auth.token_type": token_type
            })

            try:
                payload = jwt.decode(
                    token,
                    self.public_key,
                    algorithms=[self.algorithm],
                    options={"verify_exp": True}
                )
            except jwt.ExpiredSignatureError:
                span.set_attribute("auth.validation_result", "expired")
                logger.warning("Token validation failed: token expired")
                raise TokenValidationError("Token has expired")
            except jwt.InvalidTokenError as e:
                span.set_attribute("auth.validation_result", "invalid")
                logger.warning(f"Token validation failed: {str(e)}")
                raise TokenValidationError(f"Invalid token: {str(e)}")

            if payload.get("type") != token_type:
                span.set_attribute("auth.validation_result", "wrong_type")
                raise TokenValidationError(f"Invalid token type. Expected {token_type}")

            missing = [claim for claim in REQUIRED_CLAIMS if not payload.get(claim)]
            if missing:
                span.set_attribute("auth.validation_result", "missing_claims")
                raise TokenValidationError(f"Token is missing claims: {', '.join(missing)}")

            span.set_attributes({
                "auth.validation_result": "success",
                "user.id": payload["sub"],
                "politician.id": payload["politician_id"]
            })

            logger.debug(
                "Token validated successfully",
                extra={
                    "user_id": payload["sub"],
                    "politician_id": payload["politician_id"],
                    "token_type": token_type
                }
            )

            return payload

    def extract_token_id(self, token: str) -> str:
        """
        Extract a unique identifier from a token for blocklist purposes.

        Uses the jti claim when present, otherwise subject, tenant and issue time.
        """
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            logger.error(f"Failed to extract token ID: {str(e)}")
            raise TokenValidationError(f"Cannot extract token ID: {str(e)}")

        if payload.get("jti"):
            return str(payload["jti"])

        return f"{payload.get('sub')}:{payload.get('politician_id')}:{payload.get('iat')}:{payload.get('type')}"
