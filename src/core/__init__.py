"""
Core library: infrastructure-agnostic building blocks for the gateway.

Modules:
    resilience  - Fixed-backoff retry with fallback
    logging     - Structured JSON logging with context propagation
    errors      - Error classification and exception hierarchy
    utils       - JSON serialization and worker id helpers
"""

from .types import ErrorCategory

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
]
