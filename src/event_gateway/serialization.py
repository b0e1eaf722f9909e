"""
Wire format for repository events.

Events travel as UTF-8 JSON objects with camelCase field names. Parsing
failures are reported as DeserializationError so the routing pipeline can drop
the message without retrying it.
"""

import json
import logging
from typing import Any

from pydantic import ValidationError

from core.errors.exceptions import DeserializationError
from event_gateway.schemas.events import Event

logger = logging.getLogger(__name__)

# Error descriptions attached to DeserializationError are cut to this length
ERROR_TRUNCATE = 200

CONTENT_TYPE = "application/json"


def _truncate(text: str, limit: int = ERROR_TRUNCATE) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def deserialize(data: bytes | str | None) -> Event:
    """
    Parse one wire message into an Event.

    Raises:
        DeserializationError: Empty payload, invalid UTF-8 or JSON, a root that
            is not an object, or an envelope/resource that fails validation
    """
    if data is None or len(data) == 0:
        raise DeserializationError("Empty event payload")

    if isinstance(data, (bytes, bytearray)):
        try:
            text = bytes(data).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DeserializationError(
                _truncate(f"Event payload is not valid UTF-8: {e}"), cause=e
            ) from e
    else:
        text = data

    try:
        raw: Any = json.loads(text)
    except json.JSONDecodeError as e:
        raise DeserializationError(
            _truncate(f"Event payload is not valid JSON: {e}"), cause=e
        ) from e

    if not isinstance(raw, dict):
        raise DeserializationError(
            f"Event payload must be a JSON object, got {type(raw).__name__}"
        )

    try:
        return Event.model_validate(raw)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        )
        raise DeserializationError(
            _truncate(f"Invalid event envelope: {errors}"),
            cause=e,
            context={"error_count": e.error_count()},
        ) from e


def serialize(event: Event) -> bytes:
    """Encode an Event back to wire JSON with the fields it was received with."""
    return json.dumps(event.to_wire(), ensure_ascii=False, separators=(",", ":")).encode("utf-8")


class EventDataFormat:
    """Marshal/unmarshal pair handed to the routing pipeline and forwarder."""

    content_type = CONTENT_TYPE

    def unmarshal(self, data: bytes | str | None) -> Event:
        return deserialize(data)

    def marshal(self, event: Event) -> bytes:
        return serialize(event)


__all__ = [
    "CONTENT_TYPE",
    "deserialize",
    "serialize",
    "EventDataFormat",
]
