"""Handlers for content events, split by whether the node sits under the watched folder."""

import logging

from event_gateway.handlers.base import EventHandler
from event_gateway.schemas.events import Event

logger = logging.getLogger(__name__)

SCOPED_HANDLER = "scoped"
GENERAL_HANDLER = "general"


class ScopedContentHandler(EventHandler):
    """Content events for nodes under the configured parent folder."""

    name = SCOPED_HANDLER

    def on_receive(self, event: Event) -> None:
        logger.info(
            "Handling Folder A events. Event type: %s, nodeId: %s",
            event.type,
            event.node_id,
            extra={
                "handler_name": self.name,
                "event_type": event.type,
                "node_id": event.node_id,
            },
        )


class GeneralContentHandler(EventHandler):
    """Content events for every other node."""

    name = GENERAL_HANDLER

    def on_receive(self, event: Event) -> None:
        logger.info(
            "Handling content events. Event type: %s, nodeId: %s",
            event.type,
            event.node_id,
            extra={
                "handler_name": self.name,
                "event_type": event.type,
                "node_id": event.node_id,
            },
        )
