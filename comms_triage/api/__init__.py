"""API routes for the triage service."""

from fastapi import APIRouter

from .auth import router as auth_router
from .gmail import router as gmail_router
from .slack import router as slack_router

api_router = APIRouter()

# OAuth connect flows (browser-facing)
api_router.include_router(auth_router)

# Provider webhooks and sync/watch
api_router.include_router(gmail_router)
api_router.include_router(slack_router)

__all__ = ["api_router"]
