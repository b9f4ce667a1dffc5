"""Async database engine and session handling."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from storefront_auth.core.errors import AuthError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class Database:
    """Owns one engine and its session factory for the life of the process."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(
            url,
            echo=echo,
            pool_pre_ping=True,
        )
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def init_models(self) -> None:
        """Create tables if they do not exist."""
        # Registers the mapped classes on Base.metadata
        from storefront_auth import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Transactional scope: commit on success, roll back on error or cancellation.

        Client-facing ``AuthError``s still commit: a rejected login must keep
        its failure count and a rejected refresh must keep its deleted row.
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except AuthError:
                await session.commit()
                raise
            except asyncio.CancelledError:
                # Timed-out request: nothing it did may persist
                await session.rollback()
                raise
            except Exception:
                await session.rollback()
                raise
