"""Authentication module."""

from hostel_pass.modules.auth.router import router
from hostel_pass.modules.auth.schemas import LoginRequest, LoginResponse, TokenResponse

__all__ = ["router", "LoginRequest", "LoginResponse", "TokenResponse"]
