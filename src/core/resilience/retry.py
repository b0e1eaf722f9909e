"""
Retry utilities with fixed backoff and fallback.

Uses the exception hierarchy to decide whether a failure is worth another
attempt:
- Transient/unknown errors: retry after a constant delay
- Permanent errors: stop immediately (when respect_permanent is set)
- Attempts exhausted: return the fallback value if one was given,
  otherwise re-raise the last error
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from core.errors.exceptions import classify_exception
from core.types import ErrorCategory

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Indirection so tests can replace the sleep without touching the event loop
_sleep = asyncio.sleep


@dataclass
class RetryConfig:
    """Configuration for fixed-backoff retry behavior."""

    max_attempts: int = 30
    backoff_seconds: float = 2.0

    # If True, don't retry permanent errors even if attempts remain
    respect_permanent: bool = True

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.max_attempts = int(self.max_attempts)
        self.backoff_seconds = float(self.backoff_seconds)
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.backoff_seconds < 0:
            raise ValueError(
                f"backoff_seconds must be >= 0, got {self.backoff_seconds}"
            )

    def get_delay(self, attempt: int) -> float:
        """Constant delay between attempts, independent of attempt number."""
        return self.backoff_seconds

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """
        Determine if error should be retried.

        Args:
            error: The exception that occurred
            attempt: 0-indexed current attempt

        Returns:
            True if another attempt should be made
        """
        if attempt >= self.max_attempts - 1:
            return False

        category = classify_exception(error)
        if self.respect_permanent and category == ErrorCategory.PERMANENT:
            return False

        return True


DEFAULT_RETRY = RetryConfig()


@dataclass
class RetryStats:
    """Statistics from a retry operation."""

    attempts: int = 0
    total_delay: float = 0.0
    final_error: Exception | None = None
    success: bool = False
    used_fallback: bool = False

    @property
    def retried(self) -> bool:
        """Whether any retries occurred."""
        return self.attempts > 1


def _error_category(error: Exception) -> str:
    return classify_exception(error).value


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    fallback: Callable[[Exception], T] | None = None,
    operation_name: str | None = None,
    stats: RetryStats | None = None,
) -> T:
    """
    Run ``operation`` until it succeeds or the attempts run out.

    Args:
        operation: Zero-argument coroutine function performing one attempt
        config: Retry configuration (defaults to DEFAULT_RETRY)
        fallback: Called with the last error when attempts are exhausted;
            its return value becomes the result. Without it the last error
            is re-raised.
        operation_name: Name used in log records
        stats: Optional RetryStats populated in place

    Usage:
        descriptor = await retry_async(
            fetch_descriptor,
            RetryConfig(max_attempts=30, backoff_seconds=2.0),
            fallback=lambda err: default_descriptor,
        )
    """
    config = config or DEFAULT_RETRY
    name = operation_name or getattr(operation, "__name__", "operation")
    stats = stats if stats is not None else RetryStats()

    for attempt in range(config.max_attempts):
        stats.attempts = attempt + 1
        try:
            result = await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            stats.final_error = e
            error_category = _error_category(e)

            if not config.should_retry(e, attempt):
                is_permanent = (
                    config.respect_permanent
                    and error_category == ErrorCategory.PERMANENT.value
                )
                logger.warning(
                    "Permanent error for %s, not retrying" if is_permanent
                    else "Max retries exhausted for %s",
                    name,
                    extra={
                        "operation": name,
                        "attempt": attempt + 1,
                        "max_attempts": config.max_attempts,
                        "error_category": error_category,
                        "error_message": str(e)[:200],
                    },
                )
                if fallback is None:
                    raise
                stats.used_fallback = True
                return fallback(e)

            delay = config.get_delay(attempt)
            logger.info(
                "Retryable error for %s, retrying with fixed backoff",
                name,
                extra={
                    "operation": name,
                    "attempt": attempt + 1,
                    "max_attempts": config.max_attempts,
                    "delay_seconds": delay,
                    "delay_source": "fixed_backoff",
                    "error_category": error_category,
                    "error_message": str(e)[:200],
                },
            )

            stats.total_delay += delay
            await _sleep(delay)
            continue

        if attempt > 0:
            logger.info(
                "Retry succeeded for %s after %d attempts",
                name,
                attempt + 1,
                extra={
                    "operation": name,
                    "attempt": attempt + 1,
                    "total_attempts": config.max_attempts,
                },
            )
        stats.success = True
        return result

    # Unreachable: the final attempt always returns or raises above
    raise RuntimeError(f"retry loop for {name} ended without a result")


__all__ = [
    "RetryConfig",
    "RetryStats",
    "retry_async",
    "DEFAULT_RETRY",
]
