"""Subscription message context for structured logging.

Every record emitted while a consumed message is being routed carries the
topic, partition, offset and consumer group of that message.
"""

from contextvars import ContextVar, Token
from typing import Any, Dict, Optional

_message_context: ContextVar[Dict[str, Any]] = ContextVar("message_context", default={})


def get_message_context() -> Dict[str, Any]:
    """Return the transport fields of the message currently being processed."""
    return dict(_message_context.get())


def clear_message_context() -> None:
    _message_context.set({})


class MessageLogContext:
    """
    Context manager binding message transport fields to the current context.

    Usage:
        with MessageLogContext(topic="alfresco.events", partition=0, offset=12):
            await pipeline.process(message)
    """

    def __init__(
        self,
        topic: Optional[str] = None,
        partition: Optional[int] = None,
        offset: Optional[int] = None,
        key: Optional[str] = None,
        consumer_group: Optional[str] = None,
    ):
        fields = {
            "message_topic": topic,
            "message_partition": partition,
            "message_offset": offset,
            "message_key": key,
            "message_consumer_group": consumer_group,
        }
        self.fields = {k: v for k, v in fields.items() if v is not None}
        self._token: Optional[Token] = None

    def __enter__(self) -> "MessageLogContext":
        merged = {**_message_context.get(), **self.fields}
        self._token = _message_context.set(merged)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._token is not None:
            _message_context.reset(self._token)
            self._token = None
        return False
