"""
Event handlers invoked by the routing pipeline.

Handlers are registered by name in a HandlerRegistry:
- scoped: content under the configured parent folder
- general: all other content
"""

from event_gateway.handlers.base import EventHandler, HandlerRegistry
from event_gateway.handlers.content import (
    GENERAL_HANDLER,
    SCOPED_HANDLER,
    GeneralContentHandler,
    ScopedContentHandler,
)


def build_default_registry() -> HandlerRegistry:
    """Registry with the two content handlers, already frozen."""
    registry = HandlerRegistry()
    registry.register(SCOPED_HANDLER, ScopedContentHandler())
    registry.register(GENERAL_HANDLER, GeneralContentHandler())
    registry.freeze()
    return registry


__all__ = [
    "EventHandler",
    "HandlerRegistry",
    "ScopedContentHandler",
    "GeneralContentHandler",
    "SCOPED_HANDLER",
    "GENERAL_HANDLER",
    "build_default_registry",
]
