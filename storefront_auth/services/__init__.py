"""Services for business logic."""

from storefront_auth.services.auth_service import AuthService
from storefront_auth.services.lockout_guard import LockoutGuard
from storefront_auth.services.password_service import PasswordHasher, PasswordPolicy
from storefront_auth.services.refresh_token_store import RefreshTokenStore
from storefront_auth.services.storage_service import StorageService
from storefront_auth.services.token_service import TokenService
from storefront_auth.services.user_store import UserStore

__all__ = [
    "AuthService",
    "LockoutGuard",
    "PasswordHasher",
    "PasswordPolicy",
    "RefreshTokenStore",
    "StorageService",
    "TokenService",
    "UserStore",
]
