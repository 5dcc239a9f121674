"""Common exception utilities for API endpoints.

This module provides utilities for consistent error handling across all API
endpoints: the status code of each engine error and helpers that build
HTTP errors in the standard error format.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple, Type

from fastapi import HTTPException, Request

from labsync.services.exceptions import (
    AccessDeniedError,
    ConcurrencyConflictError,
    PersistenceError,
    ServiceError,
    ValidationError,
)
from labsync.web.api.schemas import ErrorResponse

# Engine error -> (status code, error type)
SERVICE_ERROR_STATUS: Dict[Type[ServiceError], Tuple[int, str]] = {
    ValidationError: (400, "validation_error"),
    AccessDeniedError: (403, "forbidden_error"),
    ConcurrencyConflictError: (409, "conflict_error"),
    PersistenceError: (500, "database_error"),
}


def service_error_status(exc: ServiceError) -> Tuple[int, str]:
    """Status code and error type for an engine error, 500 when unmapped."""
    for error_class in type(exc).__mro__:
        if error_class in SERVICE_ERROR_STATUS:
            return SERVICE_ERROR_STATUS[error_class]
    return 500, "internal_error"


def create_http_exception(
    status_code: int,
    detail: str,
    error_type: str,
    request: Optional[Request] = None
) -> HTTPException:
    """Create a standardized HTTPException with proper error format.

    Args:
        status_code: HTTP status code
        detail: Error message
        error_type: Error type identifier
        request: Optional request object for request ID

    Returns:
        HTTPException: Formatted exception
    """
    request_id = None
    if request:
        request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    error_response = ErrorResponse(
        detail=detail,
        type=error_type,
        timestamp=datetime.now(timezone.utc),
        request_id=request_id
    )

    return HTTPException(
        status_code=status_code,
        detail=error_response.model_dump()
    )


def create_validation_error(
    detail: str,
    request: Optional[Request] = None
) -> HTTPException:
    """Create a 400 validation error."""
    return create_http_exception(
        status_code=400,
        detail=detail,
        error_type="validation_error",
        request=request
    )


def create_unauthorized_error(
    detail: str = "User identification required",
    request: Optional[Request] = None
) -> HTTPException:
    """Create a 401 unauthorized error.

    Args:
        detail: Unauthorized error message
        request: Optional request object

    Returns:
        HTTPException: 401 unauthorized error
    """
    return create_http_exception(
        status_code=401,
        detail=detail,
        error_type="unauthorized_error",
        request=request
    )


def validate_identifier(value: str, field_name: str = "ID", request: Optional[Request] = None) -> str:
    """Validate a user or group identifier from a path or header.

    Raises:
        HTTPException: If the identifier is blank or too long
    """
    value = value.strip()
    if not value or len(value) > 128:
        raise create_validation_error(f"Invalid {field_name} format", request=request)
    return value
