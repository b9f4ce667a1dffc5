"""User and auth schemas for API validation."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

MAX_EMAIL_LENGTH = 255


class UserRegister(BaseModel):
    """Schema for registration form fields. Password strength is checked separately."""
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def _email_length(cls, value):
        if isinstance(value, str):
            value = value.strip()
            if len(value) > MAX_EMAIL_LENGTH:
                raise ValueError(f"must be at most {MAX_EMAIL_LENGTH} characters")
        return value


class UserLogin(BaseModel):
    """Schema for user login. Missing fields are reported by the service as 400."""
    email: Optional[str] = None
    password: Optional[str] = None


class PasswordChange(BaseModel):
    """Schema for password change."""
    current_password: str
    new_password: str


class UserPublic(BaseModel):
    """Safe projection of a user. Never carries the password hash."""
    id: str
    name: str
    email: str
    role: str
    photo_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PendingUserResponse(BaseModel):
    id: str
    name: str
    email: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SessionResponse(BaseModel):
    """One live refresh-token session. The token hash is never exposed."""
    id: int
    created_at: datetime
    last_used_at: datetime
    expires_at: datetime
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class RegisterResponse(BaseModel):
    message: str
    user: UserPublic


class LoginResponse(BaseModel):
    """Access token plus user. The refresh secret travels only in the cookie."""
    access_token: str = Field(alias="accessToken")
    user: UserPublic

    model_config = ConfigDict(populate_by_name=True)


class AccessTokenResponse(BaseModel):
    access_token: str = Field(alias="accessToken")

    model_config = ConfigDict(populate_by_name=True)


class MessageResponse(BaseModel):
    """Simple message response."""
    message: str
