"""
Content-based routing of repository events.

For every consumed message:

1. Deserialize. Malformed payloads are logged and dropped.
2. Content filter. Content events go to the ``scoped`` handler when the node
   sits under the configured parent folder, to ``general`` otherwise.
3. Folder filter. Evaluated on the same event whether or not step 2 matched;
   folder events are forwarded to the Lambda function in the background.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from core.errors.exceptions import (
    DeserializationError,
    ForwardError,
    HandlerError,
    classify_exception,
)
from core.logging.context import set_log_context
from event_gateway.forwarder import ForwardResult
from event_gateway.handlers import GENERAL_HANDLER, SCOPED_HANDLER, HandlerRegistry
from event_gateway.metrics import (
    record_event_routed,
    record_handler_error,
    record_message_dropped,
)
from event_gateway.predicates import AncestorPredicate, NodeTypePredicate, Predicate
from event_gateway.schemas.events import Event
from event_gateway.serialization import EventDataFormat
from event_gateway.types import PipelineMessage

logger = logging.getLogger(__name__)


class Forwarder(Protocol):
    async def forward(self, event: Event) -> ForwardResult: ...


@dataclass(frozen=True)
class RoutingOutcome:
    """What the pipeline did with one message."""

    dropped: bool = False
    handler: str | None = None
    forwarded: bool = False
    event_id: str | None = None


DROPPED = RoutingOutcome(dropped=True)


class RoutingPipeline:
    """
    Filter -> branch -> filter chain over consumed messages.

    No state is carried between messages apart from the set of in-flight
    forward tasks, which ``drain()`` awaits on shutdown.
    """

    def __init__(
        self,
        handlers: HandlerRegistry,
        forwarder: Forwarder,
        parent_node_id: str,
        content_predicate: Predicate | None = None,
        folder_predicate: Predicate | None = None,
        data_format: EventDataFormat | None = None,
    ):
        self.handlers = handlers
        self.forwarder = forwarder
        self.parent_node_id = parent_node_id
        self.content_predicate = content_predicate or NodeTypePredicate("cm:content")
        self.folder_predicate = folder_predicate or NodeTypePredicate("cm:folder")
        self.scope_predicate = AncestorPredicate(parent_node_id)
        self.data_format = data_format or EventDataFormat()
        self._pending_tasks: set[asyncio.Task] = set()

    @property
    def pending_forwards(self) -> int:
        return len(self._pending_tasks)

    async def process(self, message: PipelineMessage | bytes | str) -> RoutingOutcome:
        """Route one message. Never raises for malformed input or handler/forward failures."""
        raw = message.value if isinstance(message, PipelineMessage) else message
        set_log_context(event_id="")

        try:
            event = self.data_format.unmarshal(raw)
        except DeserializationError as e:
            record_message_dropped("deserialization")
            logger.error(
                "Dropping message that is not a valid event",
                extra={
                    "error_category": e.category.value,
                    "error_message": e.message,
                    "payload_size": len(raw) if raw else 0,
                },
            )
            return DROPPED

        if event.id:
            set_log_context(event_id=event.id)

        handler_name = None
        if self.content_predicate.matches(event):
            handler_name = self._select_handler(event)
            self._dispatch(handler_name, event)

        forwarded = False
        if self.folder_predicate.matches(event):
            self._schedule_forward(event)
            forwarded = True

        if handler_name is None and not forwarded:
            logger.debug(
                "Event matched no route",
                extra={
                    "event_type": event.type,
                    "node_id": event.node_id,
                    "node_type": event.node_type,
                },
            )

        return RoutingOutcome(
            dropped=False,
            handler=handler_name,
            forwarded=forwarded,
            event_id=event.id,
        )

    def _select_handler(self, event: Event) -> str:
        return SCOPED_HANDLER if self.scope_predicate.matches(event) else GENERAL_HANDLER

    def _dispatch(self, handler_name: str, event: Event) -> None:
        handler = self.handlers.get(handler_name)
        if handler is None:
            logger.warning(
                "No handler registered for route",
                extra={
                    "route": handler_name,
                    "handler_name": handler_name,
                    "event_id": event.id,
                },
            )
            return

        record_event_routed(handler_name)
        try:
            handler.on_receive(event)
        except Exception as e:
            error = HandlerError(handler_name, event.id, cause=e)
            record_handler_error(handler_name)
            logger.error(
                str(error),
                extra={
                    "route": handler_name,
                    "handler_name": handler_name,
                    "event_id": event.id,
                    "error_category": classify_exception(e).value,
                },
                exc_info=True,
            )

    def _schedule_forward(self, event: Event) -> None:
        task = asyncio.create_task(
            self._forward(event), name=f"forward-{event.id or 'event'}"
        )
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)

    async def _forward(self, event: Event) -> ForwardResult | None:
        try:
            return await self.forwarder.forward(event)
        except asyncio.CancelledError:
            raise
        except ForwardError as e:
            logger.error(
                "Failed to forward event",
                extra={
                    "route": "forward",
                    "event_id": event.id,
                    "node_id": event.node_id,
                    "error_category": e.category.value,
                    "status_code": e.status_code,
                    "error_message": str(e)[:200],
                },
            )
        except Exception as e:
            logger.error(
                "Unexpected error forwarding event",
                extra={
                    "route": "forward",
                    "event_id": event.id,
                    "node_id": event.node_id,
                    "error_category": classify_exception(e).value,
                },
                exc_info=True,
            )
        return None

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight forwards; cancel whatever is left after ``timeout``."""
        if not self._pending_tasks:
            return

        pending = list(self._pending_tasks)
        logger.info(
            "Waiting for pending forwards to complete",
            extra={"pending_forwards": len(pending)},
        )
        done, not_done = await asyncio.wait(pending, timeout=timeout)
        if not_done:
            logger.warning(
                "Cancelling forwards still running at shutdown",
                extra={"pending_forwards": len(not_done)},
            )
            for task in not_done:
                task.cancel()
            await asyncio.gather(*not_done, return_exceptions=True)


__all__ = [
    "Forwarder",
    "RoutingOutcome",
    "RoutingPipeline",
]
