"""Topic endpoint descriptor schemas."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

DescriptorSource = Literal["resolved", "fallback"]


class TopicEndpointEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event_topic: str = Field(..., alias="eventTopic", min_length=1)
    broker_uri: str = Field(..., alias="brokerUri", min_length=1)


class TopicEndpointResponse(BaseModel):
    """Body returned by the event gateway for the topic endpoint.

    Example:
        {"entry": {"eventTopic": "alfresco.events", "brokerUri": "tcp://broker:61616"}}
    """

    model_config = ConfigDict(extra="ignore")

    entry: TopicEndpointEntry


class EndpointDescriptor(BaseModel):
    """Broker connection string and topic name for the durable subscription.

    ``source`` records whether the values came from the event gateway or from
    the configured defaults.
    """

    model_config = ConfigDict(frozen=True)

    topic_name: str = Field(..., min_length=1)
    broker_uri: str = Field(..., min_length=1)
    source: DescriptorSource = "resolved"

    @property
    def is_fallback(self) -> bool:
        return self.source == "fallback"

    @classmethod
    def from_response(cls, response: TopicEndpointResponse) -> "EndpointDescriptor":
        return cls(
            topic_name=response.entry.event_topic,
            broker_uri=response.entry.broker_uri,
            source="resolved",
        )


__all__ = [
    "DescriptorSource",
    "TopicEndpointEntry",
    "TopicEndpointResponse",
    "EndpointDescriptor",
]
