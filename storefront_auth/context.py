"""Explicit wiring of the authentication core.

Everything the request handlers need is built once from ``Settings`` and
hung off ``app.state.context``; nothing lives at module level.
"""

from dataclasses import dataclass

from storefront_auth.core.config import Settings
from storefront_auth.db.session import Database
from storefront_auth.services.auth_service import AuthService
from storefront_auth.services.lockout_guard import LockoutGuard
from storefront_auth.services.password_service import PasswordHasher
from storefront_auth.services.refresh_token_store import RefreshTokenStore
from storefront_auth.services.storage_service import StorageService
from storefront_auth.services.token_service import TokenService
from storefront_auth.services.user_store import UserStore


@dataclass
class AuthContext:
    settings: Settings
    db: Database
    hasher: PasswordHasher
    tokens: TokenService
    users: UserStore
    refresh_tokens: RefreshTokenStore
    lockout: LockoutGuard
    storage: StorageService
    auth: AuthService

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthContext":
        db = Database(settings.database_url, echo=settings.debug)
        hasher = PasswordHasher(settings)
        tokens = TokenService(settings)
        users = UserStore(settings, hasher)
        refresh_tokens = RefreshTokenStore()
        lockout = LockoutGuard(settings, users)
        storage = StorageService(settings)
        auth = AuthService(
            settings=settings,
            hasher=hasher,
            tokens=tokens,
            users=users,
            refresh_tokens=refresh_tokens,
            lockout=lockout,
            storage=storage,
        )
        return cls(
            settings=settings,
            db=db,
            hasher=hasher,
            tokens=tokens,
            users=users,
            refresh_tokens=refresh_tokens,
            lockout=lockout,
            storage=storage,
            auth=auth,
        )
