"""API routes for Grievance Desk."""

from fastapi import APIRouter

from .auth import router as auth_router
from .chat import router as chat_router
from .chat import ws_router
from .complaints import router as complaints_router

# Main API router
api_router = APIRouter()

# Include all route modules
api_router.include_router(auth_router)
api_router.include_router(complaints_router)
api_router.include_router(chat_router)

__all__ = ["api_router", "ws_router"]
