"""FastAPI dependencies: database session, context and current user."""

from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from storefront_auth.context import AuthContext
from storefront_auth.core.errors import AdminRequired, TokenRequired
from storefront_auth.models.user import User

bearer_scheme = HTTPBearer(auto_error=False)


def get_context(request: Request) -> AuthContext:
    return request.app.state.context


Context = Annotated[AuthContext, Depends(get_context)]


async def get_db(context: Context) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session that commits when the request handler returns."""
    async with context.db.session() as session:
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    context: Context,
    db: DbSession,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> User:
    """Resolve the bearer access token. Stale token versions are rejected."""
    if credentials is None or not credentials.credentials:
        raise TokenRequired()
    return await context.auth.authenticate(db, credentials.credentials)


CurrentUser = Annotated[User, Depends(get_current_user)]


async def require_admin(current_user: CurrentUser) -> User:
    if not current_user.is_admin:
        raise AdminRequired()
    return current_user


AdminUser = Annotated[User, Depends(require_admin)]
