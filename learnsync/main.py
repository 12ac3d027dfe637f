"""
Main FastAPI application entry point.

This module creates the FastAPI application instance and configures
all routes, middleware, and application lifecycle events.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from learnsync.api.errors import error_body, status_for
from learnsync.api.routes import groups, schools
from learnsync.config.logging_config import configure_logging
from learnsync.config.settings import settings
from learnsync.core.database import create_tables, engine
from learnsync.core.redis import redis_manager
from learnsync.services.base import ServiceError

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown operations for the FastAPI application,
    including logging setup and database initialization.
    """
    configure_logging(settings.log_level)
    logger.info(f"Starting {settings.project_name} API")

    # Ensure database tables exist
    create_tables()
    logger.info("Database tables verified")

    yield

    logger.info(f"Shutting down {settings.project_name} API")


# Create FastAPI application instance
app = FastAPI(
    title=settings.project_name,
    description="""
    ## LearnSync Groups API

    Nested group management for schools.

    - **Group forest**: each school organises its groups as trees; a group may
      be moved anywhere in its school, cycles are broken automatically
    - **Cascading membership**: adding a user to a group adds them to every
      parent group as well
    - **Transitive members**: listing a group's members includes all subgroups
    - **Background jobs**: large assignments can be queued for Celery workers

    Callers identify themselves with the `X-User-Id` header and must be an
    administrator of the school in the path.
    """,
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url=f"{settings.api_v1_str}/openapi.json",
    lifespan=lifespan
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_exception_handler(request: Request, exc: ServiceError):
    """Service errors raised outside a ServiceResult, e.g. from dependencies."""
    return JSONResponse(status_code=status_for(exc), content={"detail": error_body(exc)})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and parameters are invalid arguments."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {
            "error_code": "VALIDATION_ERROR",
            "message": "Invalid request",
            "details": {"errors": jsonable_encoder(exc.errors())}
        }}
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors.

    Provides consistent error responses and logging for debugging.
    """
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    error_detail = str(exc) if settings.debug else "Internal server error"

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": error_detail,
            "path": str(request.url),
            "method": request.method
        }
    )


# Root endpoint
@app.get("/", tags=["System"])
async def root():
    """
    Root endpoint providing API information.
    """
    return {
        "message": f"Welcome to {settings.project_name}",
        "version": VERSION,
        "documentation": {
            "interactive": "/docs",
            "alternative": "/redoc",
            "openapi_spec": f"{settings.api_v1_str}/openapi.json"
        },
        "endpoints": {
            "groups": f"{settings.api_v1_str}/school/{{school_id}}/group",
            "members": f"{settings.api_v1_str}/school/{{school_id}}/member"
        },
        "celery_queues": ["default", "groups"]
    }


# Health check endpoint
@app.get("/health", tags=["System"])
def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Reports the database and Redis connections; the lock backend needs Redis
    only when ``LOCK_BACKEND=redis``.
    """
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        database = "unavailable"

    redis_status = "connected" if redis_manager.ping() else "unavailable"
    healthy = database == "connected" and (redis_status == "connected" or settings.lock_backend != "redis")

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
            "environment": "development" if settings.debug else "production",
            "database": database,
            "redis": redis_status,
            "lock_backend": settings.lock_backend
        }
    )


# Include API routers
app.include_router(
    groups.router,
    prefix=f"{settings.api_v1_str}/school/{{school_id}}/group",
    tags=["Groups"]
)

app.include_router(
    schools.router,
    prefix=f"{settings.api_v1_str}/school/{{school_id}}/member",
    tags=["School Members"]
)


# Development server entry point
if __name__ == "__main__":
    uvicorn.run(
        "learnsync.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
