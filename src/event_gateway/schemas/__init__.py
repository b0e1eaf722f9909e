"""Pydantic schemas for repository events and the topic endpoint descriptor."""

from event_gateway.schemas.endpoint import (
    EndpointDescriptor,
    TopicEndpointEntry,
    TopicEndpointResponse,
)
from event_gateway.schemas.events import (
    NODE_RESOURCE_TAG,
    Event,
    HierarchyEntry,
    NodeResource,
    Resource,
    UnrecognizedResource,
)

__all__ = [
    "Event",
    "HierarchyEntry",
    "NodeResource",
    "UnrecognizedResource",
    "Resource",
    "NODE_RESOURCE_TAG",
    "EndpointDescriptor",
    "TopicEndpointEntry",
    "TopicEndpointResponse",
]
