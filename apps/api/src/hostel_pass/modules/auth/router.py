"""
Authentication router.

Users log in with the username and password stored in the directory. The
student, warden and hod tables are checked in that order; the first entry
whose password matches decides the role.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from hostel_pass.core.auth import CurrentUser, get_current_user
from hostel_pass.core.database import get_db
from hostel_pass.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    verify_password,
)
from hostel_pass.modules.auth.schemas import (
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    TokenResponse,
    UserResponse,
)
from hostel_pass.modules.directory import repository as directory
from hostel_pass.modules.directory.models import DirectoryUser

logger = logging.getLogger(__name__)

router = APIRouter()

_INVALID_CREDENTIALS = {
    "error": "INVALID_CREDENTIALS",
    "message": "Invalid username or password.",
}


def _claims(user: DirectoryUser) -> dict[str, str]:
    return {
        "role": user.role.value,
        "name": user.name,
        "department": user.department,
        "block": user.block,
    }


def _issue_tokens(user: DirectoryUser) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(subject=user.username, additional_claims=_claims(user)),
        refresh_token=create_refresh_token(
            subject=user.username, additional_claims={"role": user.role.value}
        ),
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """
    Authenticate a user and return JWT tokens.

    Raises:
        HTTPException 401: Invalid credentials
    """
    candidates = await directory.find_login_candidates(db, credentials.username)

    user = next(
        (c for c in candidates if verify_password(credentials.password, c.password)),
        None,
    )

    if user is None:
        if candidates:
            logger.warning(f"Invalid password for user: {credentials.username}")
        else:
            logger.warning(f"Login attempt for unknown user: {credentials.username}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=_INVALID_CREDENTIALS,
        )

    tokens = _issue_tokens(user)
    logger.info(f"User logged in: {user.username} (role: {user.role.value})")

    return LoginResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        user=UserResponse(
            username=user.username,
            role=user.role,
            name=user.name,
            department=user.department or None,
            block=user.block or None,
        ),
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    data: RefreshRequest,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    """
    Exchange a refresh token for new tokens.

    The user is looked up again so role or profile changes take effect.

    Raises:
        HTTPException 401: Invalid refresh token or user no longer exists
    """
    payload = decode_token(data.refresh_token)
    if payload is None or payload.get("type") != "refresh":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "INVALID_TOKEN",
                "message": "Invalid or expired refresh token.",
            },
        )

    # The same username can exist in several tables; the role picks the one
    # that logged in. Tokens without a role only refresh unambiguous users.
    candidates = await directory.find_login_candidates(db, payload["sub"])
    role = payload.get("role")
    if role is not None:
        candidates = [c for c in candidates if c.role.value == role]
    elif len(candidates) > 1:
        candidates = []

    if not candidates:
        logger.warning(f"Refresh for unknown user: {payload['sub']}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "USER_NOT_FOUND",
                "message": "The user for this token no longer exists.",
            },
        )

    return _issue_tokens(candidates[0])


@router.get("/me", response_model=UserResponse)
async def me(user: CurrentUser = Depends(get_current_user)) -> UserResponse:
    """Return the authenticated user."""
    return UserResponse(
        username=user.username,
        role=user.role,
        name=user.name,
        department=user.department or None,
        block=user.block or None,
    )
