"""Authentication schemas."""

from pydantic import BaseModel, Field

from hostel_pass.modules.directory.models import UserRole


class LoginRequest(BaseModel):
    """Login request schema."""

    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=200)


class RefreshRequest(BaseModel):
    """Refresh request schema."""

    refresh_token: str


class TokenResponse(BaseModel):
    """Token response schema."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    """The authenticated user."""

    username: str
    role: UserRole
    name: str
    department: str | None = None
    block: str | None = None


class LoginResponse(TokenResponse):
    """Login response schema."""

    user: UserResponse
