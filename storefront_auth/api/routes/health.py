"""Health check endpoints."""

from fastapi import APIRouter

from storefront_auth.core.dependencies import Context

router = APIRouter()


@router.get("/health")
async def health_check(context: Context):
    """Check if the API is running."""
    return {"status": "healthy", "app": context.settings.app_name}
