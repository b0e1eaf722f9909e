"""Message type handed from the subscription consumer to the routing pipeline."""

from dataclasses import dataclass

from aiokafka.structs import ConsumerRecord

__all__ = [
    "PipelineMessage",
    "from_consumer_record",
]


@dataclass(frozen=True)
class PipelineMessage:
    """One message received on the event topic.

    ``value`` is the raw event payload; the routing pipeline deserializes it.
    """

    topic: str
    partition: int
    offset: int
    timestamp: int
    key: bytes | None = None
    value: bytes | None = None
    headers: tuple[tuple[str, bytes], ...] = ()

    @property
    def size(self) -> int:
        return len(self.value) if self.value else 0

    @property
    def key_text(self) -> str | None:
        if self.key is None:
            return None
        return self.key.decode("utf-8", errors="replace")

    def header(self, name: str) -> bytes | None:
        """First header value with ``name``, if any."""
        for key, value in self.headers:
            if key == name:
                return value
        return None


def from_consumer_record(record: ConsumerRecord) -> PipelineMessage:
    return PipelineMessage(
        topic=record.topic,
        partition=record.partition,
        offset=record.offset,
        timestamp=record.timestamp,
        key=record.key,
        value=record.value,
        headers=tuple(record.headers or ()),
    )
