"""
Security Utilities

Password verification and JWT token handling.

Passwords:
    Directory entries may carry bcrypt hashes or legacy plaintext values
    (students historically log in with their birthday). Hashes are verified
    with bcrypt; plaintext is compared in constant time.

Tokens:
    Stateless HS256 JWTs. Access tokens carry the user's role and lookup
    fields; refresh tokens carry only the subject.
"""

import logging
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
import jwt
from jwt.exceptions import InvalidTokenError

from hostel_pass.core.config import settings

logger = logging.getLogger(__name__)

_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def is_password_hash(value: str) -> bool:
    """Check whether a stored password value is a bcrypt hash."""
    return value.startswith(_BCRYPT_PREFIXES)


def verify_password(plain_password: str, stored_password: str | None) -> bool:
    """
    Verify a password against a stored value.

    Args:
        plain_password: Password submitted by the user
        stored_password: bcrypt hash or legacy plaintext from the directory

    Returns:
        True if the password matches
    """
    if not plain_password or not stored_password:
        return False

    if is_password_hash(stored_password):
        try:
            return bcrypt.checkpw(plain_password.encode(), stored_password.encode())
        except ValueError:
            logger.warning("Malformed bcrypt hash in directory entry")
            return False

    return secrets.compare_digest(plain_password.encode(), stored_password.encode())


def _create_token(
    subject: str,
    token_type: str,
    expires_delta: timedelta,
    additional_claims: dict[str, Any] | None = None,
) -> str:
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": subject,
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
    }
    if additional_claims:
        payload.update(additional_claims)
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(subject: str, additional_claims: dict[str, Any] | None = None) -> str:
    """Create a signed access token for a subject (the username)."""
    return _create_token(
        subject,
        "access",
        timedelta(minutes=settings.access_token_expire_minutes),
        additional_claims,
    )


def create_refresh_token(subject: str, additional_claims: dict[str, Any] | None = None) -> str:
    """Create a signed refresh token for a subject."""
    return _create_token(
        subject,
        "refresh",
        timedelta(days=settings.refresh_token_expire_days),
        additional_claims,
    )


def decode_token(token: str) -> dict[str, Any] | None:
    """
    Decode and validate a JWT.

    Returns:
        The token payload, or None if the signature is invalid or it expired
    """
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except InvalidTokenError as e:
        logger.debug(f"Token rejected: {e}")
        return None
