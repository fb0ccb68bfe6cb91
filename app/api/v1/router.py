"""
Keyhost Flights - API V1 Router
Main router for API version 1 endpoints
"""

from fastapi import APIRouter

from app.api.v1.endpoints import flight_search
from app.core.config import settings


api_router = APIRouter()


# === Flight Search Routes ===
api_router.include_router(
    flight_search.router,
    prefix="/flights",
    tags=["Flight Search"]
)


# === Health Check ===
@api_router.get("/health", tags=["Health"])
async def health_check():
    """API health check endpoint."""
    return {
        "status": "healthy",
        "service": "keyhost-flights",
        "version": settings.APP_VERSION
    }
