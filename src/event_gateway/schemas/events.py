"""
Repository event envelope schemas.

Contains Pydantic models for the JSON events published by the repository on
the event topic. The resource carried by an event is a tagged union keyed by
the ``@type`` wire tag: node resources (tagged, or untagged with a
``nodeType``) are modelled field by field, any other resource is kept verbatim
as an UnrecognizedResource. Serialization reproduces only the fields that were
received.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    field_validator,
    model_validator,
)

NODE_RESOURCE_TAG = "NodeResourceV1"


class HierarchyEntry(BaseModel):
    """One ancestor in a node's primary hierarchy.

    The wire form is either an object ``{"id": ..., "type": ...}`` or a bare
    node id string.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1, description="Ancestor node id")
    type: str | None = Field(default=None, description="Ancestor node type, when published")

    @model_validator(mode="before")
    @classmethod
    def accept_bare_id(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"id": data}
        return data


class NodeResource(BaseModel):
    """Resource describing a repository node (tag ``NodeResourceV1``).

    Attributes:
        resource_type: Wire tag, always ``NodeResourceV1``
        id: Node id
        name: Node name
        node_type: Node type, e.g. ``cm:content`` or ``cm:folder``
        primary_hierarchy: Ancestor ids from the direct parent upwards

    Example:
        >>> node = NodeResource.model_validate({
        ...     "@type": "NodeResourceV1",
        ...     "id": "d71dd823",
        ...     "nodeType": "cm:content",
        ...     "primaryHierarchy": ["5f355d16", "93f7edf5"],
        ... })
        >>> node.node_type
        'cm:content'
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    resource_type: Literal["NodeResourceV1"] = Field(default=NODE_RESOURCE_TAG, alias="@type")
    id: str | None = None
    name: str | None = None
    node_type: str | None = Field(default=None, alias="nodeType")
    primary_hierarchy: tuple[HierarchyEntry, ...] = Field(default=(), alias="primaryHierarchy")
    is_file: bool | None = Field(default=None, alias="isFile")
    is_folder: bool | None = Field(default=None, alias="isFolder")
    created_at: str | None = Field(default=None, alias="createdAt")
    modified_at: str | None = Field(default=None, alias="modifiedAt")
    created_by_user: dict[str, Any] | None = Field(default=None, alias="createdByUser")
    modified_by_user: dict[str, Any] | None = Field(default=None, alias="modifiedByUser")
    properties: dict[str, Any] | None = None
    aspect_names: list[str] | None = Field(default=None, alias="aspectNames")
    content: dict[str, Any] | None = None

    @field_validator("primary_hierarchy", mode="before")
    @classmethod
    def none_hierarchy_is_empty(cls, v: Any) -> Any:
        return () if v is None else v

    @property
    def ancestor_ids(self) -> tuple[str, ...]:
        return tuple(entry.id for entry in self.primary_hierarchy)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class UnrecognizedResource(BaseModel):
    """Resource with a tag this gateway does not model.

    Every attribute received on the wire is retained so the resource
    re-serializes unchanged. It never has a primary hierarchy and never has a
    node type, so type and ancestor checks do not match it.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    resource_type: str | None = Field(default=None, alias="@type")
    id: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @property
    def node_type(self) -> None:
        return None

    @property
    def primary_hierarchy(self) -> tuple[HierarchyEntry, ...]:
        return ()

    @property
    def ancestor_ids(self) -> tuple[str, ...]:
        return ()

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


def _resource_variant(value: Any) -> str | None:
    """Tag of the union member for ``value``; None when it is not an object.

    Untagged objects that carry ``nodeType`` are node resources.
    """
    if isinstance(value, dict):
        tag = value.get("@type")
        if tag == NODE_RESOURCE_TAG or (tag is None and "nodeType" in value):
            return "node"
        return "unrecognized"
    if isinstance(value, NodeResource):
        return "node"
    if isinstance(value, UnrecognizedResource):
        return "unrecognized"
    return None


Resource = Annotated[
    Union[
        Annotated[NodeResource, Tag("node")],
        Annotated[UnrecognizedResource, Tag("unrecognized")],
    ],
    Discriminator(
        _resource_variant,
        custom_error_type="invalid_resource",
        custom_error_message="resource must be an object",
    ),
]

class Event(BaseModel):
    """Repository change event envelope.

    Attributes:
        schema_version: Envelope schema version (wire name ``schema``)
        id: Event id
        type: Event type, e.g. ``org.alfresco.event.node.Created``
        time: Event timestamp as published
        principal: User that caused the event
        resource: The node (or other resource) the event is about

    Immutable once deserialized; unknown envelope fields are retained.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    schema_version: int = Field(default=1, alias="schema")
    id: str | None = None
    type: str | None = Field(default=None, description="Event type")
    time: str | None = None
    principal: str | None = None
    resource: Resource

    @property
    def node_id(self) -> str | None:
        return self.resource.id

    @property
    def node_type(self) -> str | None:
        return self.resource.node_type

    @property
    def resource_type(self) -> str | None:
        return self.resource.resource_type

    def to_wire(self) -> dict[str, Any]:
        payload = self.model_dump(
            mode="json", by_alias=True, exclude_unset=True, exclude={"resource"}
        )
        payload["resource"] = self.resource.to_wire()
        return payload


__all__ = [
    "NODE_RESOURCE_TAG",
    "HierarchyEntry",
    "NodeResource",
    "UnrecognizedResource",
    "Resource",
    "Event",
]
