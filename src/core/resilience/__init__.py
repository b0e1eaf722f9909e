"""
Resilience patterns module.

Components:
    - RetryConfig: Fixed backoff configuration
    - retry_async: Retry a coroutine with optional fallback value
"""

from .retry import (
    DEFAULT_RETRY,
    RetryConfig,
    RetryStats,
    retry_async,
)

__all__ = [
    "RetryConfig",
    "RetryStats",
    "retry_async",
    "DEFAULT_RETRY",
]
