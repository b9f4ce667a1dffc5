"""
Tests for refresh token persistence, session limiting and cleanup.

Run with: pytest tests/test_refresh_token_store.py -v
"""

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from storefront_auth.core.timeutils import as_utc, utcnow
from storefront_auth.models.refresh_token import RefreshToken
from storefront_auth.services.token_service import TokenService

from conftest import STRONG_PASSWORD


async def _new_user(context, db, email="alice@shop.com"):
    user = await context.users.create_user(db, name="Alice", email=email, password=STRONG_PASSWORD)
    return user.id


async def _store(context, db, user_id, expires_in=timedelta(days=30), **kwargs):
    refresh = TokenService.generate_refresh_token()
    await context.refresh_tokens.store(
        db,
        user_id=user_id,
        token_hash=refresh.hash,
        expires_at=utcnow() + expires_in,
        **kwargs,
    )
    return refresh


class TestRefreshTokenStore:
    """Tests for RefreshTokenStore."""

    @pytest.mark.asyncio
    async def test_store_and_find(self, context, db):
        user_id = await _new_user(context, db)
        refresh = await _store(context, db, user_id, user_agent="pytest", ip_address="10.0.0.1")

        record = await context.refresh_tokens.find_by_hash(db, refresh.hash)

        assert record is not None
        assert record.user_id == user_id
        assert record.role == "pending"
        assert record.email == "alice@shop.com"
        assert record.token_version == 1
        assert record.user_agent == "pytest"
        assert record.ip_address == "10.0.0.1"
        assert record.is_expired is False

    @pytest.mark.asyncio
    async def test_only_the_hash_is_stored(self, context, db):
        user_id = await _new_user(context, db)
        refresh = await _store(context, db, user_id)

        stored = (await db.execute(select(RefreshToken.token_hash))).scalars().all()
        assert stored == [refresh.hash]
        assert refresh.secret not in stored

    @pytest.mark.asyncio
    async def test_delete_succeeds_once(self, context, db):
        user_id = await _new_user(context, db)
        refresh = await _store(context, db, user_id)

        assert await context.refresh_tokens.delete(db, refresh.hash) is True
        assert await context.refresh_tokens.delete(db, refresh.hash) is False
        assert await context.refresh_tokens.find_by_hash(db, refresh.hash) is None

    @pytest.mark.asyncio
    async def test_update_last_used_moves_timestamp_forward(self, context, db):
        user_id = await _new_user(context, db)
        refresh = await _store(context, db, user_id)
        await db.execute(
            update(RefreshToken)
            .where(RefreshToken.token_hash == refresh.hash)
            .values(last_used_at=utcnow() - timedelta(days=2))
        )

        await context.refresh_tokens.update_last_used(db, refresh.hash)

        last_used = (
            await db.execute(select(RefreshToken.last_used_at).where(RefreshToken.token_hash == refresh.hash))
        ).scalar_one()
        assert as_utc(last_used) > utcnow() - timedelta(minutes=1)

    @pytest.mark.asyncio
    async def test_expired_record_is_flagged(self, context, db):
        user_id = await _new_user(context, db)
        refresh = await _store(context, db, user_id, expires_in=timedelta(seconds=-5))

        record = await context.refresh_tokens.find_by_hash(db, refresh.hash)
        assert record.is_expired is True

    @pytest.mark.asyncio
    async def test_sixth_session_evicts_least_recently_used(self, context, db):
        user_id = await _new_user(context, db)
        sessions = []
        for _ in range(5):
            sessions.append(await _store(context, db, user_id))
            await context.refresh_tokens.limit_sessions(db, user_id, 5)

        # Make the first session the most recently used one
        await db.execute(
            update(RefreshToken)
            .where(RefreshToken.token_hash == sessions[0].hash)
            .values(last_used_at=utcnow() + timedelta(seconds=5))
        )

        sessions.append(await _store(context, db, user_id))
        evicted = await context.refresh_tokens.limit_sessions(db, user_id, 5)

        assert evicted == 1
        assert await context.refresh_tokens.active_session_count(db, user_id) == 5
        assert await context.refresh_tokens.find_by_hash(db, sessions[1].hash) is None
        assert await context.refresh_tokens.find_by_hash(db, sessions[0].hash) is not None
        assert await context.refresh_tokens.find_by_hash(db, sessions[5].hash) is not None

    @pytest.mark.asyncio
    async def test_limit_is_per_user(self, context, db):
        alice = await _new_user(context, db, "alice@shop.com")
        bob = await _new_user(context, db, "bob@shop.com")
        for _ in range(3):
            await _store(context, db, alice)
        await _store(context, db, bob)

        await context.refresh_tokens.limit_sessions(db, alice, 2)

        assert await context.refresh_tokens.active_session_count(db, alice) == 2
        assert await context.refresh_tokens.active_session_count(db, bob) == 1

    @pytest.mark.asyncio
    async def test_revoke_all_hides_sessions(self, context, db):
        user_id = await _new_user(context, db)
        refresh = await _store(context, db, user_id)
        await _store(context, db, user_id)

        assert await context.refresh_tokens.revoke_all_for_user(db, user_id) == 2
        assert await context.refresh_tokens.find_by_hash(db, refresh.hash) is None
        assert await context.refresh_tokens.list_active_sessions(db, user_id) == []

    @pytest.mark.asyncio
    async def test_delete_all_for_user(self, context, db):
        user_id = await _new_user(context, db)
        await _store(context, db, user_id)
        await _store(context, db, user_id)

        assert await context.refresh_tokens.delete_all_for_user(db, user_id) == 2
        assert await context.refresh_tokens.active_session_count(db, user_id) == 0

    @pytest.mark.asyncio
    async def test_cleanup(self, context, db):
        user_id = await _new_user(context, db)
        expired = await _store(context, db, user_id, expires_in=timedelta(seconds=-5))
        idle = await _store(context, db, user_id)
        live = await _store(context, db, user_id)
        await db.execute(
            update(RefreshToken)
            .where(RefreshToken.token_hash == idle.hash)
            .values(last_used_at=utcnow() - timedelta(days=31))
        )

        assert await context.refresh_tokens.cleanup_expired(db) == 1
        assert await context.refresh_tokens.cleanup_inactive(db, days=30) == 1

        remaining = (await db.execute(select(RefreshToken.token_hash))).scalars().all()
        assert remaining == [live.hash]
        assert expired.hash not in remaining
