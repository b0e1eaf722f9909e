"""
Unified exception hierarchy for the event gateway.

Provides typed exceptions with retry classification so that each pipeline
boundary (endpoint resolution, deserialization, handler dispatch, forwarding)
can decide locally whether to retry, drop, or log and continue.
"""

import asyncio

from core.types import ErrorCategory


class PipelineError(Exception):
    """
    Base exception for all gateway errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.AUTH,
            ErrorCategory.UNKNOWN,
        )

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Base Categories
# =============================================================================


class AuthError(PipelineError):
    """Base class for authentication errors."""

    category = ErrorCategory.AUTH


class TransientError(PipelineError):
    """Base class for transient/retriable errors."""

    category = ErrorCategory.TRANSIENT


class PermanentError(PipelineError):
    """Base class for permanent/non-retriable errors."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Domain-Specific Errors
# =============================================================================


class ConfigurationError(PermanentError):
    """Missing or invalid gateway configuration."""

    pass


class ResolutionError(TransientError):
    """Topic endpoint descriptor could not be fetched or parsed."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.status_code = status_code


class DeserializationError(PermanentError):
    """Message payload is not a valid event envelope."""

    pass


class HandlerError(PipelineError):
    """An event handler raised while processing an event."""

    def __init__(
        self,
        handler_name: str,
        event_id: str | None,
        cause: Exception | None = None,
    ):
        super().__init__(
            f"Handler '{handler_name}' failed for event {event_id}",
            cause,
            {"handler_name": handler_name, "event_id": event_id},
        )
        self.handler_name = handler_name
        self.event_id = event_id


class ForwardError(PipelineError):
    """Event could not be delivered to the function-invocation sink."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        status_code: int | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.category = category
        self.status_code = status_code


class RegistryFrozenError(PermanentError):
    """Handler registration attempted after the registry was frozen."""

    pass


# =============================================================================
# Error Classification Utilities
# =============================================================================


def classify_http_status(status_code: int) -> ErrorCategory:
    """Classify HTTP status code into error category."""
    if 200 <= status_code < 300:
        return ErrorCategory.UNKNOWN  # Not an error

    if status_code == 401:
        return ErrorCategory.AUTH

    if status_code in (408, 429):
        return ErrorCategory.TRANSIENT

    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT

    if status_code >= 500:
        return ErrorCategory.TRANSIENT

    return ErrorCategory.UNKNOWN


def classify_exception(exc: Exception) -> ErrorCategory:
    """Classify an exception into error category."""
    if isinstance(exc, PipelineError):
        return exc.category

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return ErrorCategory.TRANSIENT

    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()

    connection_markers = (
        "connectionerror",
        "connection refused",
        "connection reset",
        "name resolution",
        "endpointconnectionerror",
    )
    if any(m in exc_type or m in exc_str for m in connection_markers):
        return ErrorCategory.TRANSIENT

    if "timeout" in exc_type or "timeout" in exc_str:
        return ErrorCategory.TRANSIENT

    if "throttl" in exc_type or "throttl" in exc_str or "toomanyrequests" in exc_type:
        return ErrorCategory.TRANSIENT

    if "unauthorized" in exc_str or "credentials" in exc_type:
        return ErrorCategory.AUTH

    return ErrorCategory.UNKNOWN
