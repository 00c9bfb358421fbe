"""API router configuration."""

from fastapi import APIRouter

from app.api.v1.endpoints import events, health, notifications

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(notifications.router, tags=["Notifications"])
api_router.include_router(events.router, tags=["Events"])
