"""Bearer token handling for booking callers."""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from jose import JWTError, jwt

from app.config import settings
from app.schemas.auth import Principal, Role

TOKEN_TYPE = "access"


class InvalidTokenError(ValueError):
    """Token could not be turned into a caller."""


def create_access_token(
    subject: UUID | str,
    role: Role | str = Role.PATIENT,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed access token for a caller.

    The identity service issues these in production; the helper exists for
    operators and tests.

    Args:
        subject: Caller id (provider id for doctor and lab tokens)
        role: Caller role
        expires_delta: Optional lifetime, defaults to ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        Encoded JWT token
    """
    issued_at = datetime.now(UTC)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {
        "sub": str(subject),
        "role": Role(role).value,
        "type": TOKEN_TYPE,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Verify signature, expiry and token type; None when any check fails."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    if payload.get("type") != TOKEN_TYPE:
        return None
    return payload


def principal_from_token(token: str) -> Principal:
    """
    Resolve the caller a bearer token speaks for.

    A missing ``role`` claim means patient.

    Raises:
        InvalidTokenError: Token is unverifiable or its claims are malformed
    """
    payload = decode_access_token(token)
    if payload is None:
        raise InvalidTokenError("Could not validate credentials")

    subject = payload.get("sub")
    if not isinstance(subject, str):
        raise InvalidTokenError("Could not validate credentials")

    try:
        principal_id = UUID(subject)
    except ValueError:
        raise InvalidTokenError("Invalid caller id format")

    try:
        role = Role(payload.get("role") or Role.PATIENT.value)
    except ValueError:
        raise InvalidTokenError("Unknown role")

    return Principal(id=principal_id, role=role)
