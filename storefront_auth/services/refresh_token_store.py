"""Refresh token persistence and session limiting."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront_auth.core.timeutils import as_utc, utcnow
from storefront_auth.models.refresh_token import RefreshToken
from storefront_auth.models.user import User

logger = logging.getLogger(__name__)

MAX_USER_AGENT_LENGTH = 500


@dataclass
class RefreshTokenRecord:
    """A stored session joined with the owner's current state.

    ``role``, ``email`` and ``token_version`` are None when the owning user
    can no longer be resolved.
    """

    id: int
    user_id: str
    token_hash: str
    expires_at: datetime
    created_at: datetime
    last_used_at: datetime
    user_agent: Optional[str]
    ip_address: Optional[str]
    role: Optional[str]
    email: Optional[str]
    token_version: Optional[int]

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= utcnow()


def _live(user_id: str, now: datetime):
    return (
        RefreshToken.user_id == user_id,
        RefreshToken.expires_at > now,
        RefreshToken.revoked_at.is_(None),
    )


class RefreshTokenStore:
    """Stores only the SHA-256 of each refresh secret."""

    async def store(
        self,
        db: AsyncSession,
        user_id: str,
        token_hash: str,
        expires_at: datetime,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> RefreshToken:
        now = utcnow()
        token = RefreshToken(
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            created_at=now,
            last_used_at=now,
            user_agent=user_agent[:MAX_USER_AGENT_LENGTH] if user_agent else None,
            ip_address=ip_address,
        )
        db.add(token)
        await db.flush()
        return token

    async def find_by_hash(self, db: AsyncSession, token_hash: str) -> Optional[RefreshTokenRecord]:
        """Look up an unrevoked session by hash, with its owner's current role and version."""
        result = await db.execute(
            select(RefreshToken, User.role, User.email, User.token_version)
            .outerjoin(User, RefreshToken.user_id == User.id)
            .where(
                RefreshToken.token_hash == token_hash,
                RefreshToken.revoked_at.is_(None),
            )
        )
        row = result.one_or_none()
        if row is None:
            return None

        token = row[0]
        return RefreshTokenRecord(
            id=token.id,
            user_id=token.user_id,
            token_hash=token.token_hash,
            expires_at=as_utc(token.expires_at),
            created_at=as_utc(token.created_at),
            last_used_at=as_utc(token.last_used_at),
            user_agent=token.user_agent,
            ip_address=token.ip_address,
            role=row.role,
            email=row.email,
            token_version=row.token_version,
        )

    async def update_last_used(self, db: AsyncSession, token_hash: str) -> None:
        await db.execute(
            update(RefreshToken)
            .where(RefreshToken.token_hash == token_hash)
            .values(last_used_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    async def delete(self, db: AsyncSession, token_hash: str) -> bool:
        """Delete one session. True only for the caller that actually removed the row.

        Rotation relies on this: of two concurrent redemptions of the same
        secret, only one sees True.
        """
        result = await db.execute(
            delete(RefreshToken)
            .where(RefreshToken.token_hash == token_hash)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def delete_all_for_user(self, db: AsyncSession, user_id: str) -> int:
        result = await db.execute(
            delete(RefreshToken)
            .where(RefreshToken.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def revoke_all_for_user(self, db: AsyncSession, user_id: str) -> int:
        """Soft revoke: rows stay for auditing but no longer redeem."""
        result = await db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def limit_sessions(self, db: AsyncSession, user_id: str, max_sessions: int) -> int:
        """Evict the least recently used live sessions beyond ``max_sessions``.

        Runs after the new session is inserted, so the cap applies to what is
        actually standing. Ties on ``last_used_at`` evict the earlier insert.
        """
        beyond_cap = (
            select(RefreshToken.id)
            .where(*_live(user_id, utcnow()))
            .order_by(RefreshToken.last_used_at.desc(), RefreshToken.id.desc())
            .offset(max(0, max_sessions))
        )
        result = await db.execute(
            delete(RefreshToken)
            .where(RefreshToken.id.in_(beyond_cap))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info(f"Evicted {result.rowcount} old session(s) for user {user_id[:8]}...")
        return result.rowcount

    async def active_session_count(self, db: AsyncSession, user_id: str) -> int:
        result = await db.execute(
            select(func.count(RefreshToken.id)).where(*_live(user_id, utcnow()))
        )
        return result.scalar() or 0

    async def list_active_sessions(self, db: AsyncSession, user_id: str) -> List[RefreshToken]:
        result = await db.execute(
            select(RefreshToken)
            .where(*_live(user_id, utcnow()))
            .order_by(RefreshToken.last_used_at.desc(), RefreshToken.id.desc())
        )
        return list(result.scalars().all())

    # ─── Maintenance ────────────────────────────
    async def cleanup_expired(self, db: AsyncSession) -> int:
        result = await db.execute(
            delete(RefreshToken)
            .where(RefreshToken.expires_at < utcnow())
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount
        if count > 0:
            logger.info(f"Cleaned up {count} expired refresh tokens")
        return count

    async def cleanup_inactive(self, db: AsyncSession, days: int = 30) -> int:
        cutoff = utcnow() - timedelta(days=days)
        result = await db.execute(
            delete(RefreshToken)
            .where(RefreshToken.last_used_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount
        if count > 0:
            logger.info(f"Cleaned up {count} refresh tokens unused for {days} days")
        return count
