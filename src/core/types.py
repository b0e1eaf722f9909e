"""
Core types shared across the gateway.

This module provides the error classification enum used by the exception
hierarchy, the retry wrapper and the log formatters.
"""

from enum import Enum


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures worth retrying
                   (e.g., network timeouts, 429/503 responses)
        AUTH: Authentication failures (401, expired credentials)
        PERMANENT: Failures that won't succeed on retry
                   (e.g., malformed payloads, 404, bad configuration)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


__all__ = [
    "ErrorCategory",
]
