"""
FastAPI Application Entry Point.

This is the main application file for the CivicConnect backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from civicconnect.app.core.config import settings
from civicconnect.app.api.v1.router import router as api_v1_router
from civicconnect.app.core.observability import ObservabilityMiddleware, configure_logging
from civicconnect.app.core.redis_client import close_redis, ping_redis
from civicconnect.app.db.session import close_engine, init_models
from civicconnect.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from civicconnect.app.models.user import User
from civicconnect.app.models.audit_log import AuditLog
from civicconnect.app.models.report import Report
from civicconnect.app.models.report_timeline import ReportTimelineEntry
from civicconnect.app.models.report_image import ReportImage
from civicconnect.app.models.notification import Notification

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup; releases pooled connections on shutdown.
    """
    await init_models()
    yield
    await close_redis()
    await close_engine()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Civic issue reporting backend: reports, field work, notifications and admin analytics",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and Redis reachability
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "up" if await ping_redis() else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to CivicConnect API",
        "docs": "/docs",
        "health": "/health",
    }
