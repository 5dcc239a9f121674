"""FastAPI application setup for the LabSync scoring API.

This module creates and configures the FastAPI application with lifespan
management, error handling and routing setup.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from labsync import __version__
from labsync.services.exceptions import ServiceError
from labsync.shared.config import get_settings
from labsync.shared.database import close_database, create_tables, init_database
from labsync.shared.redis_client import close_redis, init_redis
from labsync.web.api.exceptions import service_error_status
from labsync.web.api.routers.challenges import router as challenges_router
from labsync.web.api.routers.rankings import router as rankings_router
from labsync.web.api.routers.stats import router as stats_router
from labsync.web.api.schemas import ErrorDetail, ErrorResponse, HealthResponse, ValidationErrorResponse
from labsync.web.crud import ConflictError, DatabaseOperationError, NotFoundError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage FastAPI application lifespan.

    Opens the database and creates missing tables on startup, connects to
    Redis when it backs the per-user locks, and releases both on shutdown.

    Args:
        app: FastAPI application instance

    Yields:
        None: Control to the application
    """
    settings = get_settings()

    try:
        await init_database()
        await create_tables()
        if settings.lock_backend == "redis":
            await init_redis()
        app.state.settings = settings
        yield
    finally:
        await close_redis()
        await close_database()


# Create FastAPI application
api = FastAPI(
    title="LabSync Scoring API",
    description="REST API for task points, streaks, badges, challenges and rankings",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)


# Request ID middleware
@api.middleware("http")
async def add_request_id_middleware(request: Request, call_next):
    """Add request ID to request state for tracking."""
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["x-request-id"] = request_id
    return response


# Add CORS middleware for development
settings = get_settings()
if settings.is_development:
    api.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _error_response(request: Request, status_code: int, detail: str, error_type: str) -> JSONResponse:
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    response = ErrorResponse(
        detail=detail,
        type=error_type,
        timestamp=datetime.now(timezone.utc),
        request_id=request_id
    )
    return JSONResponse(status_code=status_code, content=response.model_dump())


# Exception handlers
@api.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors.

    Args:
        request: FastAPI request object
        exc: Validation exception

    Returns:
        JSONResponse: Formatted validation error response
    """
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    errors = []
    for error in exc.errors():
        field_path = " -> ".join(str(loc) for loc in error["loc"])
        errors.append(ErrorDetail(
            code=error["type"],
            message=error["msg"],
            field=field_path
        ))

    logger.warning(
        "Validation error",
        extra={
            "request_id": request_id,
            "url": str(request.url),
            "method": request.method,
            "errors": [error.model_dump() for error in errors]
        }
    )

    response = ValidationErrorResponse(
        detail="Request validation failed",
        errors=errors,
        timestamp=datetime.now(timezone.utc),
        request_id=request_id
    )

    return JSONResponse(
        status_code=422,
        content=response.model_dump()
    )


@api.exception_handler(ServiceError)
async def service_exception_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle engine errors.

    The status code follows the error class; the body carries the
    user-facing message, never the technical one.
    """
    status_code, error_type = service_error_status(exc)

    log = logger.error if status_code >= 500 else logger.info
    log(
        f"Service error: {exc}",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "url": str(request.url),
            "method": request.method,
            "error_code": exc.error_code
        }
    )

    return _error_response(request, status_code, exc.get_user_message(), error_type)


@api.exception_handler(NotFoundError)
async def not_found_exception_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Handle NotFoundError exceptions with a 404 response."""
    logger.info(f"Resource not found: {exc}")
    return _error_response(request, 404, str(exc), "not_found_error")


@api.exception_handler(ConflictError)
async def conflict_exception_handler(request: Request, exc: ConflictError) -> JSONResponse:
    """Handle ConflictError exceptions with a 409 response."""
    logger.warning(f"Conflict error: {exc}")
    return _error_response(request, 409, str(exc), "conflict_error")


@api.exception_handler(DatabaseOperationError)
async def database_exception_handler(request: Request, exc: DatabaseOperationError) -> JSONResponse:
    """Handle DatabaseOperationError exceptions.

    Internal database errors are only exposed in development.
    """
    logger.error(f"Database operation error: {exc}")

    if get_settings().is_development:
        detail = f"Database error: {str(exc)}"
    else:
        detail = "A database error occurred"

    return _error_response(request, 500, detail, "database_error")


@api.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions globally."""
    logger.exception(
        "Unhandled exception",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "url": str(request.url),
            "method": request.method,
            "exception_type": type(exc).__name__
        }
    )

    if get_settings().is_development:
        detail = f"Internal server error: {str(exc)}"
    else:
        detail = "Internal server error"

    return _error_response(request, 500, detail, "internal_error")


# Include routers
api.include_router(rankings_router)
api.include_router(challenges_router)
api.include_router(stats_router)


# Health check endpoint
@api.get("/health", tags=["Health"], response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint for monitoring."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now(timezone.utc)
    )
