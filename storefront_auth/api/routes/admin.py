"""Administrator endpoints: account approval."""

from typing import List

from fastapi import APIRouter

from storefront_auth.core.dependencies import AdminUser, Context, DbSession
from storefront_auth.core.errors import NotFound
from storefront_auth.schemas.user import MessageResponse, PendingUserResponse

router = APIRouter()


@router.get("/pending-users", response_model=List[PendingUserResponse])
async def list_pending_users(admin: AdminUser, context: Context, db: DbSession):
    """Accounts waiting for approval, newest first."""
    return await context.auth.list_pending_users(db)


@router.post("/approve/{user_id}", response_model=MessageResponse)
async def approve_user(user_id: str, admin: AdminUser, context: Context, db: DbSession):
    if not await context.auth.approve_user(db, user_id):
        raise NotFound("Pending user not found")
    return MessageResponse(message="User approved")
