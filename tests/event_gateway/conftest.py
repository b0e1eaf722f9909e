"""Shared event builders for gateway tests."""

import json

import pytest

from event_gateway.schemas.events import Event

PARENT_ID = "5f355d16-f824-4173-bf4b-b1ec37ef5549"
OTHER_ID = "93f7edf5-e4d8-4749-9b4c-e45097e2e19d"


def make_event_dict(
    node_type="cm:content",
    hierarchy=(OTHER_ID,),
    event_id="368818d9-dddd-4b8b-8eab-e050253d7f61",
    event_type="org.alfresco.event.node.Created",
    resource_tag="NodeResourceV1",
    node_id="d71dd823-82c7-477c-8490-04cb0e826e65",
    **resource_extra,
):
    resource = {
        "@type": resource_tag,
        "id": node_id,
        "name": "document.txt",
        "nodeType": node_type,
        "primaryHierarchy": list(hierarchy),
        "isFile": node_type == "cm:content",
        "isFolder": node_type == "cm:folder",
        **resource_extra,
    }
    return {
        "schema": 1,
        "id": event_id,
        "type": event_type,
        "time": "2026-01-05T14:30:00.000Z",
        "principal": "admin",
        "resource": resource,
    }


def make_payload(**kwargs) -> bytes:
    return json.dumps(make_event_dict(**kwargs)).encode("utf-8")


def make_event(**kwargs) -> Event:
    return Event.model_validate(make_event_dict(**kwargs))


@pytest.fixture
def content_event():
    return make_event(node_type="cm:content")


@pytest.fixture
def folder_event():
    return make_event(node_type="cm:folder")
