"""Pydantic schemas for API request/response validation."""

from storefront_auth.schemas.user import (
    UserRegister,
    UserLogin,
    PasswordChange,
    UserPublic,
    PendingUserResponse,
    SessionResponse,
    RegisterResponse,
    LoginResponse,
    AccessTokenResponse,
    MessageResponse,
)

__all__ = [
    "UserRegister",
    "UserLogin",
    "PasswordChange",
    "UserPublic",
    "PendingUserResponse",
    "SessionResponse",
    "RegisterResponse",
    "LoginResponse",
    "AccessTokenResponse",
    "MessageResponse",
]
