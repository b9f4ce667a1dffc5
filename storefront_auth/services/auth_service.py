"""Authentication gateway: login, refresh rotation, logout and revocation.

Every flow is a sequence of checks where each step can end the request
with its own ``AuthError``. Unknown emails and wrong passwords are
indistinguishable to the caller, and a refresh secret redeems exactly once.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront_auth.core.config import Settings
from storefront_auth.core.errors import (
    AccountLocked,
    BadRequest,
    CurrentPasswordIncorrect,
    EmailAlreadyRegistered,
    InvalidCredentials,
    InvalidRefreshToken,
    NoRefreshToken,
    PendingApproval,
    RefreshTokenExpired,
    RequestValidationFailed,
    TokenRevoked,
    UserNotFound,
    WeakPassword,
)
from storefront_auth.core.request_info import ClientInfo
from storefront_auth.core.timeutils import utcnow
from storefront_auth.models.user import User
from storefront_auth.schemas.user import UserRegister
from storefront_auth.services.image_validator import validate_image
from storefront_auth.services.lockout_guard import LockoutGuard
from storefront_auth.services.password_service import PasswordHasher, PasswordPolicy
from storefront_auth.services.refresh_token_store import RefreshTokenStore
from storefront_auth.services.sanitizer import strip_markup
from storefront_auth.services.storage_service import StorageService
from storefront_auth.services.token_service import TokenService
from storefront_auth.services.user_store import UserStore

logger = logging.getLogger(__name__)


@dataclass
class PhotoUpload:
    filename: str
    content_type: str
    data: bytes


@dataclass
class LoginResult:
    access_token: str
    refresh_secret: str
    user: User


@dataclass
class RefreshResult:
    access_token: str
    refresh_secret: str


class AuthService:
    """Orchestrates the credential store, lockout guard, token issuer and session store."""

    def __init__(
        self,
        settings: Settings,
        hasher: PasswordHasher,
        tokens: TokenService,
        users: UserStore,
        refresh_tokens: RefreshTokenStore,
        lockout: LockoutGuard,
        storage: StorageService,
    ):
        self.settings = settings
        self.hasher = hasher
        self.tokens = tokens
        self.users = users
        self.refresh_tokens = refresh_tokens
        self.lockout = lockout
        self.storage = storage

    # ─── Registration ───────────────────────────
    async def register(
        self,
        db: AsyncSession,
        name: str,
        email: str,
        password: str,
        photo: Optional[PhotoUpload] = None,
    ) -> User:
        try:
            data = UserRegister(name=name, email=email, password=password)
        except ValidationError as e:
            raise RequestValidationFailed(_field_errors(e))

        check = PasswordPolicy.validate_strength(data.password)
        if not check.valid:
            raise WeakPassword(check.violations)

        if await self.users.find_by_email(db, data.email):
            raise EmailAlreadyRegistered()

        clean_name = strip_markup(data.name)
        if len(clean_name) < 2:
            raise RequestValidationFailed(
                [{"field": "name", "message": "name is invalid after removing markup"}]
            )

        photo_url = None
        if photo is not None:
            extension = validate_image(
                photo.filename,
                photo.content_type,
                photo.data,
                self.settings.max_photo_size_bytes,
            )
            photo_url = await self.storage.upload_photo(photo.data, extension, photo.content_type)

        try:
            user = await self.users.create_user(
                db,
                name=clean_name,
                email=data.email,
                password=data.password,
                photo_url=photo_url,
            )
        except Exception:
            await self.storage.delete_photo(photo_url)
            raise

        logger.info(f"Registered user {user.id[:8]}... (pending approval)")
        return user

    # ─── Login ──────────────────────────────────
    async def login(
        self,
        db: AsyncSession,
        email: Optional[str],
        password: Optional[str],
        client: ClientInfo,
    ) -> LoginResult:
        if not email or not password:
            raise BadRequest()

        user = await self.users.find_by_email(db, email)
        if user is None:
            # Same cost and same response as a wrong password
            await self.hasher.verify_dummy_async(password)
            raise InvalidCredentials()

        decision = await self.lockout.check(db, user.id)
        if decision.locked:
            raise AccountLocked(decision.minutes_remaining, decision.locked_until)

        if not await self.hasher.verify_async(password, user.password_hash):
            decision = await self.lockout.register_failure(db, user.id)
            if decision.locked:
                raise AccountLocked(decision.minutes_remaining, decision.locked_until)
            if self.settings.expose_attempts_remaining:
                raise InvalidCredentials(decision.attempts_remaining)
            raise InvalidCredentials()

        await self.lockout.register_success(db, user.id)

        if user.is_pending:
            raise PendingApproval()

        token_version = await self.users.get_token_version(db, user.id)
        access_token = self.tokens.sign_access_token(user.id, user.email, user.role, token_version)
        refresh_secret = await self._open_session(db, user.id, client)
        await self.users.touch_last_login(db, user.id)

        logger.info(f"Login for user {user.id[:8]}... from {client.ip_address}")
        return LoginResult(access_token=access_token, refresh_secret=refresh_secret, user=user)

    # ─── Refresh (rotation) ─────────────────────
    async def refresh(self, db: AsyncSession, secret: Optional[str], client: ClientInfo) -> RefreshResult:
        if not secret or not isinstance(secret, str):
            raise NoRefreshToken()

        token_hash = self.tokens.hash_refresh_token(secret)
        record = await self.refresh_tokens.find_by_hash(db, token_hash)
        if record is None:
            logger.warning(f"Unknown or already rotated refresh token presented from {client.ip_address}")
            raise InvalidRefreshToken()

        if record.is_expired:
            await self.refresh_tokens.delete(db, token_hash)
            raise RefreshTokenExpired()

        if record.role is None:
            await self.refresh_tokens.delete(db, token_hash)
            raise UserNotFound()

        decision = await self.lockout.check(db, record.user_id)
        if decision.locked:
            raise AccountLocked(decision.minutes_remaining, decision.locked_until)

        # Claim step: whoever deletes the row owns this redemption
        if not await self.refresh_tokens.delete(db, token_hash):
            logger.warning(
                f"Refresh token for user {record.user_id[:8]}... redeemed concurrently; possible theft"
            )
            raise InvalidRefreshToken()

        new_secret = await self._open_session(db, record.user_id, client)
        token_version = await self.users.get_token_version(db, record.user_id)
        access_token = self.tokens.sign_access_token(
            record.user_id, record.email, record.role, token_version
        )
        return RefreshResult(access_token=access_token, refresh_secret=new_secret)

    # ─── Logout ─────────────────────────────────
    async def logout(self, db: AsyncSession, secret: Optional[str]) -> None:
        """Drop the presented session. Absence is not an error."""
        if secret and isinstance(secret, str):
            await self.refresh_tokens.delete(db, self.tokens.hash_refresh_token(secret))

    async def logout_all(self, db: AsyncSession, user_id: str) -> int:
        count = await self.refresh_tokens.delete_all_for_user(db, user_id)
        logger.info(f"Closed {count} session(s) for user {user_id[:8]}...")
        return count

    # ─── Access token verification ──────────────
    async def authenticate(self, db: AsyncSession, access_token: str) -> User:
        """Resolve a bearer token to its user.

        Raises:
            TokenExpired / TokenInvalid: from signature and claim checks
            TokenRevoked: ``ver`` no longer matches, or the user is gone
        """
        claims = self.tokens.verify_access_token(access_token)

        user = await self.users.find_by_id(db, claims.sub)
        if user is None:
            raise TokenRevoked()

        current_version = await self.users.get_token_version(db, user.id)
        if claims.ver != current_version:
            logger.warning(
                f"Revoked access token presented for user {user.id[:8]}... "
                f"(version {claims.ver}, current {current_version})"
            )
            raise TokenRevoked()

        return user

    # ─── Password change ────────────────────────
    async def change_password(
        self,
        db: AsyncSession,
        user: User,
        current_password: str,
        new_password: str,
    ) -> int:
        if not await self.hasher.verify_async(current_password, user.password_hash):
            raise CurrentPasswordIncorrect()

        new_version = await self.users.update_password(db, user.id, new_password)
        revoked = await self.refresh_tokens.revoke_all_for_user(db, user.id)
        logger.info(f"Password changed for user {user.id[:8]}..., {revoked} session(s) revoked")
        return new_version

    # ─── Admin ──────────────────────────────────
    async def list_pending_users(self, db: AsyncSession) -> List[User]:
        return await self.users.list_pending_users(db)

    async def approve_user(self, db: AsyncSession, user_id: str) -> bool:
        approved = await self.users.approve_user(db, user_id)
        if approved:
            logger.info(f"User {user_id[:8]}... approved")
        return approved

    # ─── Helpers ────────────────────────────────
    async def _open_session(self, db: AsyncSession, user_id: str, client: ClientInfo) -> str:
        """Store a fresh refresh token, enforce the cap, return the raw secret."""
        refresh = self.tokens.generate_refresh_token()
        expires_at: datetime = utcnow() + self.settings.refresh_token_ttl
        await self.refresh_tokens.store(
            db,
            user_id=user_id,
            token_hash=refresh.hash,
            expires_at=expires_at,
            user_agent=client.user_agent,
            ip_address=client.ip_address,
        )
        await self.refresh_tokens.limit_sessions(db, user_id, self.settings.max_sessions_per_user)
        return refresh.secret


def _field_errors(error: ValidationError) -> List[dict]:
    errors = []
    for item in error.errors():
        field = ".".join(str(part) for part in item.get("loc", ())) or "body"
        errors.append({"field": field, "message": item.get("msg", "invalid value")})
    return errors
