"""
Keyhost Flights - API Dependencies
FastAPI dependencies shared by the endpoints
"""

from fastapi import Request

from app.services.flight_search_service import FlightSearchService, flight_search_service


# === Service Dependencies ===

def get_flight_search_service() -> FlightSearchService:
    """Search service singleton; overridden in tests"""
    return flight_search_service


# === Common Headers ===

def get_client_ip(request: Request) -> str:
    """Get client IP address from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "127.0.0.1"
