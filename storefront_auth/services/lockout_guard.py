"""Account lockout decisions built on the credential store primitives."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from storefront_auth.core.config import Settings
from storefront_auth.core.timeutils import minutes_until, utcnow
from storefront_auth.services.user_store import UserStore

logger = logging.getLogger(__name__)


@dataclass
class LockoutDecision:
    locked: bool
    locked_until: Optional[datetime] = None
    minutes_remaining: Optional[int] = None
    attempts_remaining: Optional[int] = None


class LockoutGuard:
    def __init__(self, settings: Settings, users: UserStore):
        self._users = users
        self._max_failed = settings.max_failed_logins

    async def check(self, db: AsyncSession, user_id: str) -> LockoutDecision:
        status = await self._users.is_account_locked(db, user_id)
        if not status.locked:
            return LockoutDecision(locked=False)
        return LockoutDecision(
            locked=True,
            locked_until=status.until,
            minutes_remaining=minutes_until(status.until),
        )

    async def register_failure(self, db: AsyncSession, user_id: str) -> LockoutDecision:
        result = await self._users.increment_failed_logins(db, user_id)
        if result is None:
            return LockoutDecision(locked=False)

        if result.locked_until is not None and result.locked_until > utcnow():
            logger.warning(f"Account {user_id[:8]}... locked after repeated failed logins")
            return LockoutDecision(
                locked=True,
                locked_until=result.locked_until,
                minutes_remaining=minutes_until(result.locked_until),
            )

        remaining = self._max_failed - result.failed_login_attempts
        return LockoutDecision(
            locked=False,
            attempts_remaining=remaining if remaining > 0 else None,
        )

    async def register_success(self, db: AsyncSession, user_id: str) -> None:
        await self._users.reset_failed_logins(db, user_id)
