"""Credential store: user identity, password hash, lockout state, token version.

Counter mutations are single ``UPDATE`` statements so two concurrent
requests for the same account cannot both read a stale value.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront_auth.core.config import Settings
from storefront_auth.core.errors import EmailAlreadyRegistered, WeakPassword
from storefront_auth.core.timeutils import as_utc, utcnow
from storefront_auth.models.user import User, UserRole
from storefront_auth.services.password_service import PasswordHasher, PasswordPolicy

logger = logging.getLogger(__name__)


@dataclass
class LockStatus:
    locked: bool
    until: Optional[datetime] = None


@dataclass
class FailedLoginResult:
    failed_login_attempts: int
    locked_until: Optional[datetime]


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore:
    """Persistence for ``User`` rows."""

    def __init__(self, settings: Settings, hasher: PasswordHasher):
        self._hasher = hasher
        self._max_failed = settings.max_failed_logins
        self._lockout = settings.lockout_duration

    # ─── Lookup ──────────────────────────────────
    async def find_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(
            select(User)
            .where(User.email == normalize_email(email))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_by_id(self, db: AsyncSession, user_id: str) -> Optional[User]:
        result = await db.execute(
            select(User)
            .where(User.id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_pending_users(self, db: AsyncSession) -> List[User]:
        result = await db.execute(
            select(User)
            .where(User.role == UserRole.PENDING.value)
            .order_by(User.created_at.desc())
        )
        return list(result.scalars().all())

    # ─── Registration / approval ────────────────
    async def create_user(
        self,
        db: AsyncSession,
        name: str,
        email: str,
        password: str,
        photo_url: Optional[str] = None,
    ) -> User:
        email = normalize_email(email)
        if await self.find_by_email(db, email):
            raise EmailAlreadyRegistered()

        check = PasswordPolicy.validate_strength(password)
        if not check.valid:
            raise WeakPassword(check.violations)

        user = User(
            name=name,
            email=email,
            password_hash=await self._hasher.hash_async(password),
            photo_url=photo_url,
            role=UserRole.PENDING.value,
            token_version=1,
            failed_login_attempts=0,
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            await db.rollback()
            raise EmailAlreadyRegistered()
        await db.refresh(user)
        return user

    async def approve_user(self, db: AsyncSession, user_id: str) -> bool:
        """Move a pending account to ``user``. Returns False if nothing changed."""
        result = await db.execute(
            update(User)
            .where(User.id == user_id, User.role == UserRole.PENDING.value)
            .values(role=UserRole.USER.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def set_role(self, db: AsyncSession, user_id: str, role: UserRole) -> bool:
        result = await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(role=role.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def touch_last_login(self, db: AsyncSession, user_id: str) -> None:
        await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(last_login=utcnow())
            .execution_options(synchronize_session=False)
        )

    # ─── Lockout ────────────────────────────────
    async def increment_failed_logins(self, db: AsyncSession, user_id: str) -> Optional[FailedLoginResult]:
        """Bump the counter and, on reaching the threshold, lock in the same statement."""
        next_count = User.failed_login_attempts + 1
        result = await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                failed_login_attempts=next_count,
                locked_until=case(
                    (next_count >= self._max_failed, utcnow() + self._lockout),
                    else_=User.locked_until,
                ),
            )
            .returning(User.failed_login_attempts, User.locked_until)
            .execution_options(synchronize_session=False)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return FailedLoginResult(
            failed_login_attempts=row.failed_login_attempts,
            locked_until=as_utc(row.locked_until),
        )

    async def reset_failed_logins(self, db: AsyncSession, user_id: str) -> None:
        await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(failed_login_attempts=0, locked_until=None)
            .execution_options(synchronize_session=False)
        )

    async def is_account_locked(self, db: AsyncSession, user_id: str) -> LockStatus:
        """Locked only while ``locked_until`` is in the future.

        An elapsed lock is cleared here, together with the failure counter,
        so no separate cleanup job is needed.
        """
        result = await db.execute(select(User.locked_until).where(User.id == user_id))
        locked_until = result.scalar_one_or_none()
        if locked_until is None:
            return LockStatus(locked=False)

        now = utcnow()
        until = as_utc(locked_until)
        if until > now:
            return LockStatus(locked=True, until=until)

        # Only clear the lock we just saw expire, not a newer one
        await db.execute(
            update(User)
            .where(User.id == user_id, User.locked_until <= now)
            .values(failed_login_attempts=0, locked_until=None)
            .execution_options(synchronize_session=False)
        )
        return LockStatus(locked=False, until=until)

    # ─── Token version ──────────────────────────
    async def get_token_version(self, db: AsyncSession, user_id: str) -> int:
        result = await db.execute(select(User.token_version).where(User.id == user_id))
        return result.scalar_one_or_none() or 1

    async def increment_token_version(self, db: AsyncSession, user_id: str) -> Optional[int]:
        result = await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(token_version=User.token_version + 1)
            .returning(User.token_version)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    # ─── Password ───────────────────────────────
    async def update_password(self, db: AsyncSession, user_id: str, new_password: str) -> Optional[int]:
        """Rehash, bump ``token_version`` and clear lockout in one statement.

        Every access token issued before this call stops verifying. Refresh
        tokens are left to the caller to revoke.

        Returns:
            The new token version, or None if the user does not exist.
        """
        check = PasswordPolicy.validate_strength(new_password)
        if not check.valid:
            raise WeakPassword(check.violations)

        password_hash = await self._hasher.hash_async(new_password)
        result = await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                password_hash=password_hash,
                token_version=User.token_version + 1,
                failed_login_attempts=0,
                locked_until=None,
                updated_at=utcnow(),
            )
            .returning(User.token_version)
            .execution_options(synchronize_session=False)
        )
        new_version = result.scalar_one_or_none()
        if new_version is not None:
            logger.info(f"Password updated for user {user_id[:8]}..., access tokens invalidated")
        return new_version
