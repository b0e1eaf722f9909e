"""Tests for the content/folder routing pipeline."""

import asyncio
import json
import logging
from unittest.mock import AsyncMock, Mock

import pytest

from core.errors.exceptions import ForwardError
from core.logging.context import get_log_context
from core.logging.formatters import JSONFormatter
from core.types import ErrorCategory
from event_gateway.forwarder import ForwardResult, LambdaForwarder
from event_gateway.handlers import (
    GENERAL_HANDLER,
    SCOPED_HANDLER,
    EventHandler,
    HandlerRegistry,
)
from event_gateway.routing import DROPPED, RoutingOutcome, RoutingPipeline
from event_gateway.types import PipelineMessage

from .conftest import OTHER_ID, PARENT_ID, make_event_dict, make_payload


class RecordingHandler(EventHandler):

    def __init__(self, name, error=None):
        self.name = name
        self.events = []
        self.error = error

    def on_receive(self, event):
        self.events.append(event)
        if self.error:
            raise self.error


@pytest.fixture
def scoped():
    return RecordingHandler(SCOPED_HANDLER)


@pytest.fixture
def general():
    return RecordingHandler(GENERAL_HANDLER)


@pytest.fixture
def forwarder():
    mock = AsyncMock()
    mock.forward.return_value = ForwardResult(status_code=202, function_name="fn")
    return mock


@pytest.fixture
def pipeline(scoped, general, forwarder):
    registry = HandlerRegistry()
    registry.register(SCOPED_HANDLER, scoped)
    registry.register(GENERAL_HANDLER, general)
    registry.freeze()
    return RoutingPipeline(registry, forwarder, parent_node_id=PARENT_ID)


class TestContentRouting:

    @pytest.mark.asyncio
    async def test_content_under_parent_goes_to_scoped_handler(self, pipeline, scoped, general, forwarder):
        outcome = await pipeline.process(make_payload(node_type="cm:content", hierarchy=(PARENT_ID, OTHER_ID)))
        await pipeline.drain()

        assert outcome.handler == SCOPED_HANDLER
        assert outcome.forwarded is False
        assert len(scoped.events) == 1
        assert general.events == []
        forwarder.forward.assert_not_called()

    @pytest.mark.asyncio
    async def test_content_elsewhere_goes_to_general_handler(self, pipeline, scoped, general, forwarder):
        outcome = await pipeline.process(make_payload(node_type="cm:content", hierarchy=(OTHER_ID,)))
        await pipeline.drain()

        assert outcome == RoutingOutcome(handler=GENERAL_HANDLER, event_id=general.events[0].id)
        assert scoped.events == []
        forwarder.forward.assert_not_called()

    @pytest.mark.asyncio
    async def test_content_with_empty_hierarchy_is_general(self, pipeline, general):
        outcome = await pipeline.process(make_payload(node_type="cm:content", hierarchy=()))
        assert outcome.handler == GENERAL_HANDLER
        assert len(general.events) == 1

    @pytest.mark.asyncio
    async def test_accepts_pipeline_message(self, pipeline, scoped):
        message = PipelineMessage(
            topic="alfresco.events",
            partition=0,
            offset=7,
            timestamp=0,
            value=make_payload(hierarchy=(PARENT_ID,)),
        )

        outcome = await pipeline.process(message)

        assert outcome.handler == SCOPED_HANDLER
        assert len(scoped.events) == 1

    @pytest.mark.asyncio
    async def test_handler_failure_is_contained(self, scoped, general, forwarder, caplog):
        failing = RecordingHandler(SCOPED_HANDLER, error=RuntimeError("handler exploded"))
        registry = HandlerRegistry()
        registry.register(SCOPED_HANDLER, failing)
        registry.register(GENERAL_HANDLER, general)
        pipeline = RoutingPipeline(registry, forwarder, parent_node_id=PARENT_ID)

        with caplog.at_level(logging.ERROR, logger="event_gateway.routing"):
            outcome = await pipeline.process(make_payload(hierarchy=(PARENT_ID,)))

        assert outcome.handler == SCOPED_HANDLER
        assert outcome.dropped is False
        assert len(failing.events) == 1
        assert "handler exploded" in caplog.text

    @pytest.mark.asyncio
    async def test_missing_handler_logs_warning(self, forwarder, caplog):
        pipeline = RoutingPipeline(HandlerRegistry(), forwarder, parent_node_id=PARENT_ID)

        with caplog.at_level(logging.WARNING, logger="event_gateway.routing"):
            outcome = await pipeline.process(make_payload())

        assert outcome.handler == GENERAL_HANDLER
        assert "No handler registered for route" in caplog.text


class TestFolderForwarding:

    @pytest.mark.asyncio
    async def test_folder_event_is_forwarded_exactly_once(self, pipeline, scoped, general, forwarder):
        outcome = await pipeline.process(make_payload(node_type="cm:folder", hierarchy=(PARENT_ID,)))
        await pipeline.drain()

        assert outcome.forwarded is True
        assert outcome.handler is None
        forwarder.forward.assert_awaited_once()
        forwarded_event = forwarder.forward.await_args.args[0]
        assert forwarded_event.node_type == "cm:folder"
        assert scoped.events == []
        assert general.events == []

    @pytest.mark.asyncio
    async def test_forward_failure_is_logged_not_raised(self, pipeline, forwarder, caplog):
        forwarder.forward.side_effect = ForwardError(
            "Lambda invocation failed for fn",
            category=ErrorCategory.TRANSIENT,
            status_code=429,
        )

        with caplog.at_level(logging.ERROR, logger="event_gateway.routing"):
            outcome = await pipeline.process(make_payload(node_type="cm:folder"))
            await pipeline.drain()

        assert outcome.forwarded is True
        assert "Failed to forward event" in caplog.text
        assert pipeline.pending_forwards == 0

    @pytest.mark.asyncio
    async def test_unexpected_forward_error_is_logged(self, pipeline, forwarder, caplog):
        forwarder.forward.side_effect = RuntimeError("sdk bug")

        with caplog.at_level(logging.ERROR, logger="event_gateway.routing"):
            await pipeline.process(make_payload(node_type="cm:folder"))
            await pipeline.drain()

        assert "Unexpected error forwarding event" in caplog.text

    @pytest.mark.asyncio
    async def test_process_does_not_wait_for_forward(self, pipeline, forwarder):
        release = asyncio.Event()

        async def slow_forward(event):
            await release.wait()
            return ForwardResult(status_code=202, function_name="fn")

        forwarder.forward.side_effect = slow_forward

        outcome = await pipeline.process(make_payload(node_type="cm:folder"))
        assert outcome.forwarded is True
        assert pipeline.pending_forwards == 1

        release.set()
        await pipeline.drain()
        assert pipeline.pending_forwards == 0

    @pytest.mark.asyncio
    async def test_drain_cancels_forwards_after_timeout(self, pipeline, forwarder):
        async def never_finishes(event):
            await asyncio.Event().wait()

        forwarder.forward.side_effect = never_finishes

        await pipeline.process(make_payload(node_type="cm:folder"))
        await pipeline.drain(timeout=0.01)

        assert pipeline.pending_forwards == 0


class TestFilterIndependence:

    @pytest.mark.asyncio
    async def test_custom_predicates_can_overlap(self, scoped, general, forwarder):
        from event_gateway.predicates import NodeTypePredicate

        registry = HandlerRegistry()
        registry.register(SCOPED_HANDLER, scoped)
        registry.register(GENERAL_HANDLER, general)
        pipeline = RoutingPipeline(
            registry,
            forwarder,
            parent_node_id=PARENT_ID,
            content_predicate=NodeTypePredicate("acme:doc"),
            folder_predicate=NodeTypePredicate("acme:doc"),
        )

        outcome = await pipeline.process(make_payload(node_type="acme:doc", hierarchy=(PARENT_ID,)))
        await pipeline.drain()

        assert outcome.handler == SCOPED_HANDLER
        assert outcome.forwarded is True
        assert len(scoped.events) == 1
        forwarder.forward.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_node_type_matches_nothing(self, pipeline, scoped, general, forwarder):
        outcome = await pipeline.process(make_payload(node_type="cm:thumbnail", hierarchy=(PARENT_ID,)))
        await pipeline.drain()

        assert outcome == RoutingOutcome(event_id=outcome.event_id)
        assert scoped.events == [] and general.events == []
        forwarder.forward.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_node_resource_matches_nothing(self, pipeline, forwarder):
        payload = json.dumps(make_event_dict(node_type="cm:folder", resource_tag="PeerAssociationResourceV1"))

        outcome = await pipeline.process(payload)
        await pipeline.drain()

        assert outcome.handler is None
        assert outcome.forwarded is False
        forwarder.forward.assert_not_called()


class TestMinimalPayloads:

    @pytest.mark.asyncio
    async def test_untagged_content_under_parent_goes_to_scoped_handler(self, scoped, general, forwarder):
        registry = HandlerRegistry()
        registry.register(SCOPED_HANDLER, scoped)
        registry.register(GENERAL_HANDLER, general)
        pipeline = RoutingPipeline(registry, forwarder, parent_node_id="P")
        payload = b'{"type": "nodeCreated", "resource": {"nodeType": "cm:content", "primaryHierarchy": [{"id": "P"}]}}'

        outcome = await pipeline.process(payload)
        await pipeline.drain()

        assert outcome == RoutingOutcome(handler=SCOPED_HANDLER)
        assert len(scoped.events) == 1
        assert scoped.events[0].type == "nodeCreated"
        assert general.events == []
        forwarder.forward.assert_not_called()

    @pytest.mark.asyncio
    async def test_folder_without_type_is_forwarded_unchanged(self, scoped, general):
        client = Mock()
        client.invoke.return_value = {"StatusCode": 202, "ResponseMetadata": {"RequestId": "r"}}
        registry = HandlerRegistry()
        registry.register(SCOPED_HANDLER, scoped)
        registry.register(GENERAL_HANDLER, general)
        pipeline = RoutingPipeline(
            registry,
            LambdaForwarder("folder-events", region="eu-west-1", client=client),
            parent_node_id="P",
        )
        payload = b'{"resource": {"nodeType": "cm:folder", "primaryHierarchy": []}}'

        outcome = await pipeline.process(payload)
        await pipeline.drain()

        assert outcome == RoutingOutcome(forwarded=True)
        client.invoke.assert_called_once()
        assert json.loads(client.invoke.call_args.kwargs["Payload"]) == json.loads(payload)
        assert scoped.events == [] and general.events == []


class TestMalformedMessages:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [b"", b"{oops", b"[]", b'{"type": "x"}'])
    async def test_dropped_without_side_effects(self, pipeline, scoped, general, forwarder, caplog, payload):
        with caplog.at_level(logging.ERROR, logger="event_gateway.routing"):
            outcome = await pipeline.process(payload)

        assert outcome is DROPPED
        assert scoped.events == [] and general.events == []
        forwarder.forward.assert_not_called()
        assert "Dropping message that is not a valid event" in caplog.text

    @pytest.mark.asyncio
    async def test_next_message_still_processed(self, pipeline, general):
        await pipeline.process(b"{oops")
        outcome = await pipeline.process(make_payload())

        assert outcome.handler == GENERAL_HANDLER
        assert len(general.events) == 1


class TestLogContext:

    @pytest.mark.asyncio
    async def test_event_id_set_for_each_event(self, pipeline):
        await pipeline.process(make_payload(event_id="evt-1"))
        assert get_log_context()["event_id"] == "evt-1"

        await pipeline.process(make_payload(event_id="evt-2"))
        assert get_log_context()["event_id"] == "evt-2"

    @pytest.mark.asyncio
    async def test_malformed_message_clears_previous_event_id(self, pipeline, caplog):
        await pipeline.process(make_payload(event_id="evt-1"))

        with caplog.at_level(logging.ERROR, logger="event_gateway.routing"):
            outcome = await pipeline.process(b"{oops")

        assert outcome is DROPPED
        assert get_log_context()["event_id"] == ""
        dropped = [r for r in caplog.records if r.getMessage().startswith("Dropping message")]
        assert "event_id" not in json.loads(JSONFormatter().format(dropped[0]))
