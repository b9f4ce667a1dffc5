"""Authentication endpoints."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Cookie, File, Form, Request, Response, UploadFile, status

from storefront_auth.core.config import Settings
from storefront_auth.core.dependencies import Context, CurrentUser, DbSession
from storefront_auth.core.request_info import get_client_info
from storefront_auth.schemas.user import (
    AccessTokenResponse,
    LoginResponse,
    MessageResponse,
    PasswordChange,
    RegisterResponse,
    SessionResponse,
    UserLogin,
    UserPublic,
)
from storefront_auth.services.auth_service import PhotoUpload

logger = logging.getLogger(__name__)
router = APIRouter()

REFRESH_COOKIE_NAME = "refreshToken"
REFRESH_COOKIE_PATH = "/api/auth"


# ─────────────────────────────────────────────
# Refresh Cookie
# ─────────────────────────────────────────────

def set_refresh_cookie(response: Response, secret: str, settings: Settings) -> None:
    response.set_cookie(
        key=REFRESH_COOKIE_NAME,
        value=secret,
        max_age=int(settings.refresh_token_ttl.total_seconds()),
        path=REFRESH_COOKIE_PATH,
        secure=settings.is_production,
        httponly=True,
        samesite="strict",
    )


def clear_refresh_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=REFRESH_COOKIE_NAME,
        path=REFRESH_COOKIE_PATH,
        secure=settings.is_production,
        httponly=True,
        samesite="strict",
    )


async def read_photo(photo: Optional[UploadFile], max_bytes: int) -> Optional[PhotoUpload]:
    """Read at most one byte past the limit so oversize uploads are still rejected."""
    if photo is None or not photo.filename:
        return None
    data = await photo.read(max_bytes + 1)
    await photo.close()
    return PhotoUpload(
        filename=photo.filename,
        content_type=photo.content_type or "",
        data=data,
    )


# ─────────────────────────────────────────────
# Register
# ─────────────────────────────────────────────

@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    context: Context,
    db: DbSession,
    name: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    photo: Optional[UploadFile] = File(None),
):
    """
    Register a new account with an optional profile photo.
    The account starts as pending until an administrator approves it.
    """
    upload = await read_photo(photo, context.settings.max_photo_size_bytes)
    user = await context.auth.register(db, name=name, email=email, password=password, photo=upload)
    return RegisterResponse(
        message="User created. Pending admin approval.",
        user=UserPublic.model_validate(user),
    )


# ─────────────────────────────────────────────
# Login
# ─────────────────────────────────────────────

@router.post("/login", response_model=LoginResponse)
async def login(credentials: UserLogin, request: Request, response: Response, context: Context, db: DbSession):
    """
    Authenticate with email and password.
    Returns an access token; the refresh token is set as an HTTP-only cookie.
    """
    result = await context.auth.login(
        db,
        email=credentials.email,
        password=credentials.password,
        client=get_client_info(request),
    )
    set_refresh_cookie(response, result.refresh_secret, context.settings)
    return LoginResponse(access_token=result.access_token, user=UserPublic.model_validate(result.user))


# ─────────────────────────────────────────────
# Refresh Token (Rotation)
# ─────────────────────────────────────────────

@router.post("/refresh", response_model=AccessTokenResponse)
async def refresh_token(
    request: Request,
    response: Response,
    context: Context,
    db: DbSession,
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE_NAME),
):
    """
    Exchange the refresh cookie for a new access token.
    The presented refresh token is consumed and replaced.
    """
    result = await context.auth.refresh(db, refresh_cookie, get_client_info(request))
    set_refresh_cookie(response, result.refresh_secret, context.settings)
    return AccessTokenResponse(access_token=result.access_token)


# ─────────────────────────────────────────────
# Logout
# ─────────────────────────────────────────────

@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    context: Context,
    db: DbSession,
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE_NAME),
):
    """End the current session."""
    await context.auth.logout(db, refresh_cookie)
    clear_refresh_cookie(response, context.settings)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(response: Response, current_user: CurrentUser, context: Context, db: DbSession):
    """End every session of the current user."""
    await context.auth.logout_all(db, current_user.id)
    clear_refresh_cookie(response, context.settings)
    return MessageResponse(message="Logged out from all devices")


# ─────────────────────────────────────────────
# Current User
# ─────────────────────────────────────────────

@router.get("/me", response_model=UserPublic)
async def get_current_user(current_user: CurrentUser):
    """Return authenticated user's info."""
    return current_user


@router.get("/sessions", response_model=List[SessionResponse])
async def list_sessions(current_user: CurrentUser, context: Context, db: DbSession):
    return await context.refresh_tokens.list_active_sessions(db, current_user.id)


# ─────────────────────────────────────────────
# Change Password
# ─────────────────────────────────────────────

@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    password_data: PasswordChange,
    response: Response,
    current_user: CurrentUser,
    context: Context,
    db: DbSession,
):
    """
    Change the user's password.
    Signs out every session, including the current one.
    """
    await context.auth.change_password(
        db,
        current_user,
        password_data.current_password,
        password_data.new_password,
    )
    clear_refresh_cookie(response, context.settings)
    return MessageResponse(message="Password changed successfully. Please sign in again.")
