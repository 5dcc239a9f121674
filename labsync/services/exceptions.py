"""Service-specific exceptions for the scoring engine.

Every error raised by the engine derives from ``ServiceError`` and carries
an error code, context data and a message safe to show to end users. The
HTTP layer maps each subclass to a status code.
"""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """Base exception for all service layer errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
        user_message: str | None = None
    ):
        """Initialize service error.

        Args:
            message: Technical error message for logging
            error_code: Unique error code for categorization
            context: Additional context data for debugging
            user_message: User-friendly error message for API responses
        """
        super().__init__(message)
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        self.user_message = user_message or message

    def __str__(self) -> str:
        """Return technical error message."""
        return super().__str__()

    def get_user_message(self) -> str:
        """Get user-friendly error message."""
        return self.user_message


class ValidationError(ServiceError):
    """Exception for rejected input.

    Raised before any state is mutated, so a rejected event leaves
    aggregates, ledger and challenge progress untouched.
    """

    def __init__(self, field: str, message: str, **kwargs):
        """Initialize validation error.

        Args:
            field: Field name that failed validation
            message: Validation error message
            **kwargs: Additional arguments passed to parent
        """
        super().__init__(
            f"Validation failed for {field}: {message}",
            error_code="VALIDATION_FAILED",
            context={"field": field},
            user_message=message,
            **kwargs
        )
        self.field = field


class ConcurrencyConflictError(ServiceError):
    """Exception for an aggregate update that kept losing to concurrent writers."""

    def __init__(self, user_id: str, attempts: int, **kwargs):
        super().__init__(
            f"Aggregate update for user {user_id} conflicted {attempts} times",
            error_code="CONCURRENCY_CONFLICT",
            context={"user_id": user_id, "attempts": attempts},
            user_message="The update conflicted with another one. Please try again.",
            **kwargs
        )
        self.user_id = user_id
        self.attempts = attempts


class PersistenceError(ServiceError):
    """Exception for a store failure while recording or reading state."""

    def __init__(self, operation: str, **kwargs):
        """Initialize persistence error.

        Args:
            operation: Store operation that failed
            **kwargs: Additional arguments passed to parent
        """
        super().__init__(
            f"Persistence failed: {operation}",
            error_code="PERSISTENCE_FAILED",
            user_message="Temporary storage issue. Please try again.",
            **kwargs
        )
        self.operation = operation


class AccessDeniedError(ServiceError):
    """Exception for reading another user's data without a contact relation."""

    def __init__(self, user_id: str, other_user_id: str, **kwargs):
        super().__init__(
            f"User {user_id} is not a contact of {other_user_id}",
            error_code="ACCESS_DENIED",
            context={"user_id": user_id, "other_user_id": other_user_id},
            user_message="You can only compare stats with your contacts.",
            **kwargs
        )
        self.user_id = user_id
        self.other_user_id = other_user_id
