"""Shared fixtures: cheap Argon2 settings, a throwaway SQLite file per test."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from storefront_auth.context import AuthContext
from storefront_auth.core.config import Settings
from storefront_auth.main import create_app
from storefront_auth.models.user import UserRole

STRONG_PASSWORD = "Sup3r$ecretPass"
TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256-0123456789"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        app_env="test",
        jwt_secret_key=TEST_SECRET,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}",
        upload_dir=str(tmp_path / "uploads"),
        argon2_time_cost=1,
        argon2_memory_cost=1024,
        argon2_parallelism=1,
        s3_endpoint_url="",
        s3_access_key_id="",
        s3_secret_access_key="",
        s3_bucket_name="",
        allowed_hosts="*",
    )


@pytest_asyncio.fixture
async def context(settings):
    ctx = AuthContext.from_settings(settings)
    await ctx.db.init_models()
    yield ctx
    await ctx.db.close()


@pytest_asyncio.fixture
async def db(context):
    async with context.db.session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def app(settings):
    application = create_app(settings)
    await application.state.context.db.init_models()
    yield application
    await application.state.context.db.close()


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


async def create_account(context, email="alice@shop.com", password=STRONG_PASSWORD, name="Alice", role=UserRole.USER):
    """Insert a user directly and give it ``role``. Committed."""
    async with context.db.session() as session:
        user = await context.users.create_user(session, name=name, email=email, password=password)
        if role != UserRole.PENDING:
            await context.users.set_role(session, user.id, role)
        return user.id
