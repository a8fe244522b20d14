"""API Routes."""

from fastapi import APIRouter

from .api_tokens import router as api_tokens_router
from .auth import router as auth_router
from .billing import router as billing_router
from .blogs import admin_router as admin_blogs_router
from .blogs import router as blogs_router
from .health import router as health_router
from .upgrades import router as upgrades_router
from .webhooks import router as webhooks_router

# Create main API router
api_router = APIRouter()

# Include route modules
api_router.include_router(health_router, tags=["Health"])
api_router.include_router(auth_router)
api_router.include_router(billing_router)
api_router.include_router(webhooks_router)
api_router.include_router(api_tokens_router)
api_router.include_router(blogs_router)
api_router.include_router(admin_blogs_router)
api_router.include_router(upgrades_router)
