"""
End-to-end tests for the HTTP surface.

Run with: pytest tests/test_auth_routes.py -v
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from storefront_auth.main import create_app
from storefront_auth.models.user import UserRole

from conftest import STRONG_PASSWORD, create_account


async def _login(client, email="alice@shop.com", password=STRONG_PASSWORD):
    return await client.post("/api/auth/login", json={"email": email, "password": password})


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def _refresh_cookie(secret):
    return {"Cookie": f"refreshToken={secret}"}


@pytest_asyncio.fixture
async def short_timeout_app(settings):
    application = create_app(settings.model_copy(update={"request_timeout_seconds": 0.5}))
    await application.state.context.db.init_models()
    yield application
    await application.state.context.db.close()


@pytest_asyncio.fixture
async def short_timeout_client(short_timeout_app):
    transport = ASGITransport(app=short_timeout_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


async def _stall(*args, **kwargs):
    await asyncio.sleep(2)
    return 1


class TestRegisterEndpoint:
    """Tests for POST /api/auth/register."""

    @pytest.mark.asyncio
    async def test_register_returns_pending_user(self, client):
        response = await client.post(
            "/api/auth/register",
            data={"name": "Alice", "email": "alice@shop.com", "password": STRONG_PASSWORD},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "User created. Pending admin approval."
        assert body["user"]["role"] == "pending"
        assert body["user"]["email"] == "alice@shop.com"
        assert "password_hash" not in body["user"]

    @pytest.mark.asyncio
    async def test_weak_password(self, client):
        response = await client.post(
            "/api/auth/register",
            data={"name": "Alice", "email": "alice@shop.com", "password": "NoDigitsHere!"},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "WEAK_PASSWORD"
        assert "must contain a number" in body["details"]

    @pytest.mark.asyncio
    async def test_empty_password_is_a_weak_password(self, client):
        response = await client.post(
            "/api/auth/register",
            data={"name": "Alice", "email": "alice@shop.com", "password": ""},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "WEAK_PASSWORD"
        assert "must be at least 8 characters long" in body["details"]

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client):
        form = {"name": "Alice", "email": "alice@shop.com", "password": STRONG_PASSWORD}
        await client.post("/api/auth/register", data=form)

        response = await client.post("/api/auth/register", data=form)

        assert response.status_code == 400
        assert response.json() == {"error": "Email already registered", "code": "EMAIL_TAKEN"}

    @pytest.mark.asyncio
    async def test_photo_upload(self, client):
        photo = b"\x89PNG\r\n\x1a\n" + b"\x00" * 300
        with patch("storefront_auth.services.image_validator.magic") as mock_magic:
            mock_magic.from_buffer.return_value = "image/png"
            response = await client.post(
                "/api/auth/register",
                data={"name": "Alice", "email": "alice@shop.com", "password": STRONG_PASSWORD},
                files={"photo": ("me.png", photo, "image/png")},
            )

        assert response.status_code == 201
        photo_url = response.json()["user"]["photo_url"]
        assert "/api/media/users/" in photo_url

        served = await client.get(photo_url.replace("http://localhost:4000", ""))
        assert served.status_code == 200
        assert served.content == photo

    @pytest.mark.asyncio
    async def test_bad_photo_type(self, client):
        response = await client.post(
            "/api/auth/register",
            data={"name": "Alice", "email": "alice@shop.com", "password": STRONG_PASSWORD},
            files={"photo": ("doc.pdf", b"%PDF-1.4" + b" " * 200, "application/pdf")},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_UPLOAD"


class TestLoginEndpoint:
    """Tests for POST /api/auth/login."""

    @pytest.mark.asyncio
    async def test_login_sets_refresh_cookie(self, client, app):
        await create_account(app.state.context)

        response = await _login(client)

        assert response.status_code == 200
        body = response.json()
        assert body["accessToken"]
        assert body["user"]["email"] == "alice@shop.com"
        assert "refreshToken" not in body

        set_cookie = response.headers["set-cookie"]
        assert set_cookie.startswith("refreshToken=")
        assert "HttpOnly" in set_cookie
        assert "Path=/api/auth" in set_cookie
        assert "samesite=strict" in set_cookie.lower()
        assert "Max-Age=2592000" in set_cookie

    @pytest.mark.asyncio
    async def test_unknown_email_and_wrong_password_are_identical(self, client, app):
        await create_account(app.state.context)

        wrong_password = await _login(client, password="Wr0ng!Password")
        unknown_email = await _login(client, email="ghost@shop.com", password="Wr0ng!Password")

        assert wrong_password.status_code == unknown_email.status_code == 401
        assert wrong_password.content == unknown_email.content

    @pytest.mark.asyncio
    async def test_missing_credentials(self, client):
        response = await client.post("/api/auth/login", json={"email": "alice@shop.com"})

        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_CREDENTIALS"

    @pytest.mark.asyncio
    async def test_lockout_after_five_failures(self, client, app):
        await create_account(app.state.context)

        statuses = [(await _login(client, password="Wr0ng!Password")).status_code for _ in range(5)]
        assert statuses == [401, 401, 401, 401, 423]

        response = await _login(client)
        assert response.status_code == 423
        body = response.json()
        assert body["code"] == "ACCOUNT_LOCKED"
        assert body["error"].startswith("Account temporarily locked. Try again in")
        assert body["minutesRemaining"] in (14, 15)

    @pytest.mark.asyncio
    async def test_pending_user_gets_403_and_no_cookie(self, client, app):
        await create_account(app.state.context, role=UserRole.PENDING)

        response = await _login(client)

        assert response.status_code == 403
        assert response.json()["code"] == "PENDING_APPROVAL"
        assert "set-cookie" not in response.headers


class TestSessionEndpoints:
    """Tests for refresh, logout and bearer-protected routes."""

    @pytest.mark.asyncio
    async def test_refresh_rotates_cookie(self, client, app):
        await create_account(app.state.context)
        login = await _login(client)
        first_secret = login.cookies["refreshToken"]

        response = await client.post("/api/auth/refresh")

        assert response.status_code == 200
        assert response.json()["accessToken"]
        assert response.cookies["refreshToken"] != first_secret

    @pytest.mark.asyncio
    async def test_reused_refresh_token_rejected(self, client, app):
        await create_account(app.state.context)
        login = await _login(client)
        secret = login.cookies["refreshToken"]
        client.cookies.clear()

        first = await client.post("/api/auth/refresh", headers={"Cookie": f"refreshToken={secret}"})
        client.cookies.clear()
        second = await client.post("/api/auth/refresh", headers={"Cookie": f"refreshToken={secret}"})

        assert first.status_code == 200
        assert second.status_code == 401
        assert second.json()["code"] == "INVALID_REFRESH_TOKEN"

    @pytest.mark.asyncio
    async def test_refresh_without_cookie(self, client):
        response = await client.post("/api/auth/refresh")

        assert response.status_code == 401
        assert response.json()["code"] == "NO_REFRESH_TOKEN"

    @pytest.mark.asyncio
    async def test_me_requires_token(self, client):
        response = await client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.json()["code"] == "TOKEN_REQUIRED"

    @pytest.mark.asyncio
    async def test_me_rejects_garbage_token(self, client):
        response = await client.get("/api/auth/me", headers=_bearer("garbage"))

        assert response.status_code == 401
        assert response.json()["code"] == "TOKEN_INVALID"

    @pytest.mark.asyncio
    async def test_me_and_sessions(self, client, app):
        await create_account(app.state.context)
        token = (await _login(client)).json()["accessToken"]

        me = await client.get("/api/auth/me", headers=_bearer(token))
        sessions = await client.get("/api/auth/sessions", headers=_bearer(token))

        assert me.status_code == 200
        assert me.json()["email"] == "alice@shop.com"
        assert sessions.status_code == 200
        assert len(sessions.json()) == 1
        assert "token_hash" not in sessions.json()[0]

    @pytest.mark.asyncio
    async def test_change_password_revokes_access_token(self, client, app):
        await create_account(app.state.context)
        token = (await _login(client)).json()["accessToken"]

        response = await client.post(
            "/api/auth/change-password",
            json={"current_password": STRONG_PASSWORD, "new_password": "N3w&ImprovedPass"},
            headers=_bearer(token),
        )
        assert response.status_code == 200

        me = await client.get("/api/auth/me", headers=_bearer(token))
        assert me.status_code == 401
        assert me.json()["code"] == "TOKEN_REVOKED"

        assert (await _login(client, password="N3w&ImprovedPass")).status_code == 200

    @pytest.mark.asyncio
    async def test_logout_clears_cookie(self, client, app):
        await create_account(app.state.context)
        await _login(client)

        response = await client.post("/api/auth/logout")

        assert response.status_code == 200
        assert 'refreshToken=""' in response.headers["set-cookie"]
        assert (await client.post("/api/auth/refresh")).status_code == 401

    @pytest.mark.asyncio
    async def test_logout_all(self, client, app):
        context = app.state.context
        user_id = await create_account(context)
        token = (await _login(client)).json()["accessToken"]
        await _login(client)

        response = await client.post("/api/auth/logout-all", headers=_bearer(token))

        assert response.status_code == 200
        async with context.db.session() as db:
            assert await context.refresh_tokens.active_session_count(db, user_id) == 0


class TestAdminEndpoints:
    """Tests for the approval workflow."""

    @pytest.mark.asyncio
    async def test_admin_approves_pending_user(self, client, app):
        context = app.state.context
        await create_account(context, email="admin@shop.com", role=UserRole.ADMIN)
        pending_id = await create_account(context, email="bob@shop.com", name="Bob", role=UserRole.PENDING)
        token = (await _login(client, email="admin@shop.com")).json()["accessToken"]

        pending = await client.get("/api/admin/pending-users", headers=_bearer(token))
        assert [u["email"] for u in pending.json()] == ["bob@shop.com"]

        approved = await client.post(f"/api/admin/approve/{pending_id}", headers=_bearer(token))
        assert approved.status_code == 200

        again = await client.post(f"/api/admin/approve/{pending_id}", headers=_bearer(token))
        assert again.status_code == 404

        assert (await _login(client, email="bob@shop.com")).status_code == 200

    @pytest.mark.asyncio
    async def test_regular_user_is_forbidden(self, client, app):
        await create_account(app.state.context)
        token = (await _login(client)).json()["accessToken"]

        response = await client.get("/api/admin/pending-users", headers=_bearer(token))

        assert response.status_code == 403
        assert response.json()["code"] == "ADMIN_REQUIRED"


class TestAppBehaviour:
    """Tests for health, error rendering and middleware."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_unhandled_error_is_opaque(self, client, app):
        context = app.state.context
        with patch.object(context.auth, "login", side_effect=RuntimeError("db password is hunter2")):
            response = await _login(client)

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "code": "INTERNAL_ERROR"}


class TestConcurrentRequests:
    """Tests for requests racing on the same account."""

    @pytest.mark.asyncio
    async def test_parallel_redemption_of_one_secret(self, client, app):
        await create_account(app.state.context)
        secret = (await _login(client)).cookies["refreshToken"]
        client.cookies.clear()

        responses = await asyncio.gather(
            client.post("/api/auth/refresh", headers=_refresh_cookie(secret)),
            client.post("/api/auth/refresh", headers=_refresh_cookie(secret)),
        )

        assert sorted(r.status_code for r in responses) == [200, 401]
        rejected = next(r for r in responses if r.status_code == 401)
        assert rejected.json()["code"] == "INVALID_REFRESH_TOKEN"

    @pytest.mark.asyncio
    async def test_parallel_wrong_passwords_still_lock(self, client, app):
        context = app.state.context
        user_id = await create_account(context)

        responses = await asyncio.gather(
            *(_login(client, password="Wr0ng!Password") for _ in range(5))
        )

        assert {r.status_code for r in responses} <= {401, 423}
        assert any(r.status_code == 423 for r in responses)
        async with context.db.session() as db:
            user = await context.users.find_by_id(db, user_id)
            assert user.failed_login_attempts == 5
            assert user.locked_until is not None

        response = await _login(client)
        assert response.status_code == 423
        assert response.json()["code"] == "ACCOUNT_LOCKED"


class TestRequestTimeout:
    """Tests for the request deadline."""

    @pytest.mark.asyncio
    async def test_slow_request_gets_504(self, short_timeout_client, short_timeout_app):
        context = short_timeout_app.state.context
        await create_account(context)

        with patch.object(context.auth, "login", new=AsyncMock(side_effect=_stall)):
            response = await _login(short_timeout_client)

        assert response.status_code == 504
        assert response.json() == {"error": "Request timed out", "code": "REQUEST_TIMEOUT"}

        health = await short_timeout_client.get("/api/health")
        assert health.status_code == 200

    @pytest.mark.asyncio
    async def test_timed_out_refresh_is_rolled_back(self, short_timeout_client, short_timeout_app):
        context = short_timeout_app.state.context
        await create_account(context)
        secret = (await _login(short_timeout_client)).cookies["refreshToken"]
        short_timeout_client.cookies.clear()

        # Stalls after the old row is claimed and the new one inserted
        with patch.object(context.users, "get_token_version", new=AsyncMock(side_effect=_stall)):
            response = await short_timeout_client.post("/api/auth/refresh", headers=_refresh_cookie(secret))

        assert response.status_code == 504
        assert response.json()["code"] == "REQUEST_TIMEOUT"
        assert "set-cookie" not in response.headers

        # The client never got a new secret, so the old one must still work
        short_timeout_client.cookies.clear()
        retry = await short_timeout_client.post("/api/auth/refresh", headers=_refresh_cookie(secret))
        assert retry.status_code == 200
        assert retry.cookies["refreshToken"] != secret
