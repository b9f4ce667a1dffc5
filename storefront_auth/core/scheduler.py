"""Periodic removal of expired and long-idle refresh tokens."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from storefront_auth.db.session import Database
from storefront_auth.services.refresh_token_store import RefreshTokenStore

logger = logging.getLogger(__name__)

CLEANUP_JOB_ID = "session_cleanup"


class SessionCleanupScheduler:
    def __init__(
        self,
        db: Database,
        refresh_tokens: RefreshTokenStore,
        interval_minutes: int = 60,
        inactive_days: int = 30,
    ):
        self.db = db
        self.refresh_tokens = refresh_tokens
        self.interval_minutes = interval_minutes
        self.inactive_days = inactive_days
        self.scheduler = AsyncIOScheduler(timezone="UTC")

    async def run_cleanup(self) -> int:
        """One cleanup pass. Errors are logged, never raised into the scheduler."""
        try:
            async with self.db.session() as db:
                expired = await self.refresh_tokens.cleanup_expired(db)
                inactive = await self.refresh_tokens.cleanup_inactive(db, self.inactive_days)
            return expired + inactive
        except Exception as e:
            logger.error(f"Error in session cleanup job: {str(e)}")
            return 0

    def start(self) -> None:
        self.scheduler.add_job(
            self.run_cleanup,
            IntervalTrigger(minutes=self.interval_minutes),
            id=CLEANUP_JOB_ID,
            name="Remove expired and inactive sessions",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(f"Session cleanup scheduled every {self.interval_minutes} minutes")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
