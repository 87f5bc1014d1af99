"""API route modules."""

from fastapi import APIRouter

from tenantauth.entrypoints.api.routes.account import router as account_router
from tenantauth.entrypoints.api.routes.auth import router as auth_router

# Create main API router
api_router = APIRouter()

api_router.include_router(auth_router)
api_router.include_router(account_router)

__all__ = ["api_router"]
