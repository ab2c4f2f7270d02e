"""
Authentication and Authorization Module

Provides authentication dependencies for FastAPI endpoints.
This module handles JWT token validation and role-based access control
using the security utilities defined in security.py.

Roles come from the directory table a user logged in against (student,
warden or hod) and travel in the access token, so no lookup is needed per
request.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hostel_pass.core.security import decode_token
from hostel_pass.modules.directory.models import UserRole

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)


@dataclass
class CurrentUser:
    """
    Represents an authenticated user.

    Populated from JWT claims after token validation.

    Attributes:
        username: Login name (emp_code for students)
        role: student, warden or hod
        name: Display name
        department: Department (students, HODs)
        block: Hostel block (students, wardens)
    """

    username: str
    role: UserRole
    name: str = ""
    department: str = ""
    block: str = ""

    def __str__(self) -> str:
        return f"CurrentUser(username={self.username}, role={self.role.value})"


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def user_from_token(token: str) -> CurrentUser:
    """
    Validate an access token and extract the user.

    Args:
        token: JWT token string

    Returns:
        CurrentUser built from the token claims

    Raises:
        HTTPException 401: If the token is invalid, expired, not an access
            token, or carries unusable claims
    """
    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    token_type = payload.get("type", "access")
    if token_type != "access":
        logger.warning(f"Invalid token type: {token_type}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        return CurrentUser(
            username=str(payload["sub"]),
            role=UserRole(payload.get("role", "")),
            name=payload.get("name") or "",
            department=payload.get("department") or "",
            block=payload.get("block") or "",
        )
    except (ValueError, KeyError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """
    FastAPI dependency that validates the bearer token and returns the user.

    Raises:
        HTTPException 401: If token is missing, invalid, or expired
    """
    user = user_from_token(credentials.credentials)
    logger.debug(f"Authenticated user: {user.username} ({user.role.value})")
    return user


def require_roles(*roles: UserRole) -> Callable[..., Awaitable[CurrentUser]]:
    """
    Build a dependency that only admits users with one of the given roles.

    Usage:
        @router.get("/staff/endpoint")
        async def staff_endpoint(
            user: CurrentUser = Depends(require_roles(UserRole.HOD, UserRole.WARDEN))
        ):
            ...
    """
    allowed = set(roles)

    async def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed:
            logger.warning(
                f"Access denied: {user.username} has role '{user.role.value}', "
                f"requires one of {sorted(r.value for r in allowed)}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "ROLE_NOT_ALLOWED",
                    "message": "Your role does not have access to this endpoint.",
                },
            )
        return user

    return dependency


def authenticate_websocket_token(token: str | None) -> CurrentUser | None:
    """
    Validate a token passed as a websocket query parameter.

    Returns:
        The user, or None if the token is missing or invalid
    """
    if not token:
        return None
    try:
        return user_from_token(token)
    except HTTPException:
        return None


__all__ = [
    "CurrentUser",
    "authenticate_websocket_token",
    "get_current_user",
    "require_roles",
    "user_from_token",
]
