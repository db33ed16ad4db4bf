"""Session-token authentication for the Web API.

Clients send the identity provider's session JWT as
``Authorization: Bearer <token>``. The ``sub`` claim is mapped to an
internal UUID and a users row is created on first sight.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import jwt
import structlog
from fastapi import Header, HTTPException, status

from speaking.config.app_config import AuthConfig, load_app_config
from speaking.core.identity import external_to_uuid
from speaking.db.users_repository import ensure_user

logger = structlog.get_logger(__name__)


class AuthError(Exception):
    """Session token is missing or invalid."""


@dataclass
class CurrentUser:
    """Authenticated user of a request."""

    id: str
    external_id: str
    email: str = ""
    claims: dict[str, Any] = field(default_factory=dict)


def _bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise AuthError("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Authorization header must be a Bearer token")
    return token.strip()


def decode_session_token(token: str, settings: AuthConfig | None = None) -> dict[str, Any]:
    """Verify a session JWT and return its claims.

    Without a configured secret, signatures are only skipped when
    authentication is not required (local development).

    Raises:
        AuthError: If the token is invalid or cannot be verified
    """
    if settings is None:
        settings = load_app_config().auth

    secret = settings.get_secret()
    if not secret:
        if settings.required:
            raise AuthError(f"Token secret not configured ({settings.jwt_secret_env})")
        logger.warning("auth_signature_not_verified")
        options = {"verify_signature": False, "verify_aud": False}
        try:
            return jwt.decode(token, options=options)
        except jwt.InvalidTokenError as e:
            raise AuthError(f"Invalid session token: {e}") from e

    try:
        return jwt.decode(
            token,
            secret,
            algorithms=settings.algorithms,
            audience=settings.audience,
            options={"verify_aud": settings.audience is not None},
        )
    except jwt.InvalidTokenError as e:
        raise AuthError(f"Invalid session token: {e}") from e


def authenticate(authorization: str | None) -> CurrentUser:
    """Resolve the user of an Authorization header.

    Raises:
        AuthError: If the header, token or its subject is invalid
    """
    claims = decode_session_token(_bearer_token(authorization))

    subject = claims.get("sub")
    if not subject:
        raise AuthError("Session token has no subject")

    user_id = external_to_uuid(str(subject))
    email = str(claims.get("email") or "")
    ensure_user(user_id, external_id=str(subject), email=email)

    return CurrentUser(id=user_id, external_id=str(subject), email=email, claims=claims)


def get_current_user(authorization: str | None = Header(default=None)) -> CurrentUser:
    """FastAPI dependency requiring an authenticated user."""
    try:
        return authenticate(authorization)
    except AuthError as e:
        logger.info("auth_rejected", reason=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def optional_user(authorization: str | None = Header(default=None)) -> CurrentUser | None:
    """FastAPI dependency returning the user when a valid token is sent."""
    if not authorization:
        return None
    try:
        return authenticate(authorization)
    except AuthError as e:
        logger.warning("optional_auth_failed", reason=str(e))
        return None
