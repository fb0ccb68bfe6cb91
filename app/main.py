"""
Keyhost Flights - Main Application
FastAPI application entry point
"""

from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.v1.router import api_router
from app.core.config import settings
from app.core.exceptions import AppException
from app.core.logging import setup_logging
from app.schemas.base import HealthCheckResponse
from app.services.flight_search_service import flight_search_service
from integrations.flight_hub import flight_hub


# === Lifespan Context Manager ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events"""
    # Startup
    setup_logging()
    logger.info(f"Starting {settings.APP_NAME} API...")
    logger.info(
        f"Flight hub: {flight_hub.base_url} "
        f"(providers: {', '.join(flight_search_service.provider_names)})"
    )

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME} API...")

    await flight_search_service.close()
    await flight_hub.close()

    logger.info(f"{settings.APP_NAME} API shutdown complete")


# === FastAPI Application ===

app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="""
    Keyhost Flights - Flight Offer Aggregation API

    One search fans out to every enabled flight inventory provider through
    the search hub. Offers are normalized, duplicate itineraries collapse to
    the cheapest fare, and results are readable while providers are still
    answering.

    ## Features

    * **Search** - One-way, round-trip and multi-city searches
    * **Live Results** - Per-provider status and partial result sets
    * **Filters** - Airlines, stops, price, departure time and layover
    * **Offer Details** - Full provider record for booking handoff
    """,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.SHOW_DOCS else None,
    redoc_url="/redoc" if settings.SHOW_DOCS else None,
    openapi_url="/openapi.json" if settings.SHOW_DOCS else None,
    lifespan=lifespan,
)


# === Middleware ===

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# GZip compression
app.add_middleware(GZipMiddleware, minimum_size=1000)


# Request timing middleware
class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = datetime.utcnow()
        response = await call_next(request)
        process_time = (datetime.utcnow() - start_time).total_seconds() * 1000
        response.headers["X-Process-Time"] = f"{process_time:.2f}ms"
        return response


app.add_middleware(RequestTimingMiddleware)


# === Exception Handlers ===

@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """Handle custom application exceptions"""
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc.error_code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.message,
            "error_code": exc.error_code,
            "details": exc.details
        }
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors"""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": "Validation error",
            "error_code": "VALIDATION_ERROR",
            "details": {"errors": errors}
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    logger.exception(f"Unexpected error: {exc}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "An unexpected error occurred" if settings.is_production else str(exc),
            "error_code": "INTERNAL_SERVER_ERROR"
        }
    )


# === Include Routers ===

app.include_router(api_router, prefix=settings.API_V1_PREFIX)


# === Root Endpoints ===

@app.get("/", tags=["Root"])
async def root():
    """Root endpoint - API information"""
    return {
        "name": f"{settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "description": settings.APP_DESCRIPTION,
        "status": "running",
        "docs": "/docs" if settings.SHOW_DOCS else "disabled",
        "api": settings.API_V1_PREFIX
    }


@app.get("/health", tags=["Health"], response_model=HealthCheckResponse)
async def health_check():
    """Health check endpoint for monitoring"""
    return HealthCheckResponse(
        service="keyhost-flights",
        version=settings.APP_VERSION,
        timestamp=datetime.utcnow(),
        environment=settings.APP_ENV,
        services={"flight_hub": "configured" if flight_hub.is_configured() else "not_configured"},
    )


# === Run with Uvicorn (for development) ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level="info"
    )
