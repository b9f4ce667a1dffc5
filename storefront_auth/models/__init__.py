"""Database models."""

from storefront_auth.models.user import User, UserRole
from storefront_auth.models.refresh_token import RefreshToken

__all__ = [
    "User",
    "UserRole",
    "RefreshToken",
]
