"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- PipelineError hierarchy for typed exceptions
- Classification utilities for error handling
"""

from core.errors.exceptions import (
    AuthError,
    ConfigurationError,
    DeserializationError,
    ForwardError,
    HandlerError,
    PermanentError,
    # Base classes
    PipelineError,
    RegistryFrozenError,
    ResolutionError,
    TransientError,
    # Classification utilities
    classify_exception,
    classify_http_status,
)
from core.types import ErrorCategory

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "PipelineError",
    "AuthError",
    "TransientError",
    "PermanentError",
    # Domain errors
    "ConfigurationError",
    "ResolutionError",
    "DeserializationError",
    "HandlerError",
    "ForwardError",
    "RegistryFrozenError",
    # Classification utilities
    "classify_http_status",
    "classify_exception",
]
