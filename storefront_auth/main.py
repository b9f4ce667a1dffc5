"""Application factory."""

import asyncio
import logging
import traceback
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from storefront_auth import __version__
from storefront_auth.api.routes import api_router
from storefront_auth.context import AuthContext
from storefront_auth.core.config import Settings, get_settings
from storefront_auth.core.errors import AuthError
from storefront_auth.core.scheduler import SessionCleanupScheduler
from storefront_auth.services.storage_service import MEDIA_ROUTE, PHOTO_PREFIX

logger = logging.getLogger("storefront_auth")

INTERNAL_ERROR_BODY = {"error": "Internal server error", "code": "INTERNAL_ERROR"}
TIMEOUT_ERROR_BODY = {"error": "Request timed out", "code": "REQUEST_TIMEOUT"}


# ─────────────────────────────────────────────────────────────
# Exception handlers
# ─────────────────────────────────────────────────────────────
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    for item in exc.errors():
        # Drop the leading "body" / "query" location segment
        loc = [str(part) for part in item.get("loc", ())[1:]]
        errors.append({"field": ".".join(loc) or "body", "message": item.get("msg", "invalid value")})
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "code": "VALIDATION_ERROR", "errors": errors},
    )


# ─────────────────────────────────────────────────────────────
# Middleware
# ─────────────────────────────────────────────────────────────
async def catch_exceptions_middleware(request: Request, call_next):
    """Log the traceback of anything unhandled; the client only sees a generic 500."""
    try:
        return await call_next(request)
    except Exception as exc:
        logger.error("=" * 60)
        logger.error(f"500 ERROR on {request.method} {request.url.path}")
        logger.error(f"Exception: {type(exc).__name__}: {exc}")
        logger.error(traceback.format_exc())
        logger.error("=" * 60)
        return JSONResponse(status_code=500, content=INTERNAL_ERROR_BODY)


class RequestTimeoutMiddleware:
    """Cancel the handler once the deadline passes and answer 504.

    Runs the downstream app in the current task, so cancellation reaches the
    route and its database session rolls back instead of committing.
    """

    def __init__(self, app: ASGIApp, timeout_seconds: float):
        self.app = app
        self.timeout_seconds = timeout_seconds

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await asyncio.wait_for(self.app(scope, receive, send_wrapper), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                f"Request timed out after {self.timeout_seconds}s: {scope['method']} {scope['path']}"
            )
            if response_started:
                return
            response = JSONResponse(status_code=504, content=TIMEOUT_ERROR_BODY)
            await response(scope, receive, send)


# ─────────────────────────────────────────────────────────────
# Lifespan: Startup + Shutdown
# ─────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    context: AuthContext = app.state.context
    settings = context.settings
    logger.info(f"Starting up {settings.app_name} v{app.version}...")

    await context.db.init_models()
    logger.info("Database tables initialized")

    await context.storage.ensure_bucket()

    cleanup = SessionCleanupScheduler(
        context.db,
        context.refresh_tokens,
        interval_minutes=settings.session_cleanup_interval_minutes,
        inactive_days=settings.inactive_session_days,
    )
    cleanup.start()

    logger.info("Application startup complete")
    yield

    logger.info("Shutting down application...")
    cleanup.stop()
    await context.db.close()
    logger.info("Database connections closed")


# ─────────────────────────────────────────────────────────────
# FastAPI App
# ─────────────────────────────────────────────────────────────
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    context = AuthContext.from_settings(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Account registration, approval and session management for the storefront",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        default_response_class=JSONResponse,
    )
    app.state.context = context

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.add_middleware(RequestTimeoutMiddleware, timeout_seconds=settings.request_timeout_seconds)
    app.add_middleware(BaseHTTPMiddleware, dispatch=catch_exceptions_middleware)

    # Trusted hosts (prevent DNS rebinding, host header attacks)
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts_list)

    # Credentials are required for the refresh cookie
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        max_age=600,
    )

    # Locally stored profile photos
    if not context.storage.use_cloud:
        photo_dir = Path(settings.upload_dir) / PHOTO_PREFIX
        photo_dir.mkdir(parents=True, exist_ok=True)
        app.mount(MEDIA_ROUTE, StaticFiles(directory=str(photo_dir), html=False), name="photos")

    app.include_router(api_router, prefix="/api")
    return app
