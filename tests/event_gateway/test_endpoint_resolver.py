"""Tests for topic endpoint resolution."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from config.config import EVENT_TOPIC_PATH, config_from_dict
from core.errors.exceptions import ResolutionError
from core.resilience.retry import RetryConfig
from event_gateway.endpoint_resolver import EndpointResolver, resolve
from event_gateway.schemas.endpoint import EndpointDescriptor

DEFAULT_TOPIC = "alfresco.events"
DEFAULT_BROKER = "localhost:9092"
RESOLVED_BODY = {"entry": {"eventTopic": "alfresco.repo.event2", "brokerUri": "tcp://activemq:61616"}}


@pytest.fixture
def sleep_mock():
    mock = AsyncMock()
    with patch("core.resilience.retry._sleep", new=mock):
        yield mock


def _app(handler):
    app = web.Application()
    app.router.add_route("OPTIONS", EVENT_TOPIC_PATH, handler)
    return app


def _json_handler(body, status=200, calls=None):
    async def handler(request):
        if calls is not None:
            calls.append(request.method)
        return web.json_response(body, status=status)
    return handler


def _resolver(url, max_attempts=3, **kwargs):
    return EndpointResolver(
        url,
        DEFAULT_TOPIC,
        DEFAULT_BROKER,
        retry_config=RetryConfig(max_attempts=max_attempts, backoff_seconds=2.0, respect_permanent=False),
        **kwargs,
    )


class TestResolve:

    @pytest.mark.asyncio
    async def test_resolves_from_options_response(self, sleep_mock):
        calls = []
        async with TestServer(_app(_json_handler(RESOLVED_BODY, calls=calls))) as server:
            async with _resolver(str(server.make_url(EVENT_TOPIC_PATH))) as resolver:
                descriptor = await resolver.resolve()

        assert descriptor == EndpointDescriptor(
            topic_name="alfresco.repo.event2",
            broker_uri="tcp://activemq:61616",
            source="resolved",
        )
        assert calls == ["OPTIONS"]
        assert resolver.stats.attempts == 1
        sleep_mock.assert_not_called()

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self, sleep_mock):
        responses = iter([500, 503, 200])

        async def handler(request):
            status = next(responses)
            if status != 200:
                return web.Response(status=status)
            return web.json_response(RESOLVED_BODY)

        async with TestServer(_app(handler)) as server:
            async with _resolver(str(server.make_url(EVENT_TOPIC_PATH)), max_attempts=5) as resolver:
                descriptor = await resolver.resolve()

        assert descriptor.source == "resolved"
        assert resolver.stats.attempts == 3
        assert sleep_mock.await_count == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body, status",
        [
            ({"error": "boom"}, 500),
            ({"error": "missing"}, 404),
            ({"unexpected": True}, 200),
            ({"entry": {"eventTopic": "t"}}, 200),
        ],
    )
    async def test_falls_back_after_exactly_max_attempts(self, sleep_mock, caplog, body, status):
        calls = []
        async with TestServer(_app(_json_handler(body, status=status, calls=calls))) as server:
            async with _resolver(str(server.make_url(EVENT_TOPIC_PATH)), max_attempts=4) as resolver:
                with caplog.at_level(logging.WARNING, logger="event_gateway.endpoint_resolver"):
                    descriptor = await resolver.resolve()

        assert descriptor == EndpointDescriptor(
            topic_name=DEFAULT_TOPIC,
            broker_uri=DEFAULT_BROKER,
            source="fallback",
        )
        assert len(calls) == 4
        assert sleep_mock.await_count == 3
        sleep_mock.assert_awaited_with(2.0)
        assert resolver.stats.used_fallback is True
        assert "Couldn't get the topic info after 4 tries. Falling back to default values." in caplog.text

    @pytest.mark.asyncio
    async def test_unreachable_gateway_falls_back(self, sleep_mock):
        async with TestServer(_app(_json_handler(RESOLVED_BODY))) as server:
            url = str(server.make_url(EVENT_TOPIC_PATH))

        # server is closed now
        async with _resolver(url, max_attempts=2) as resolver:
            descriptor = await resolver.resolve()

        assert descriptor.is_fallback
        assert resolver.stats.attempts == 2
        assert isinstance(resolver.stats.final_error, ResolutionError)

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self, sleep_mock):
        async with TestServer(_app(_json_handler({}, status=502))) as server:
            async with _resolver(str(server.make_url(EVENT_TOPIC_PATH)), max_attempts=1) as resolver:
                descriptor = await resolver.resolve()

        assert descriptor.is_fallback
        sleep_mock.assert_not_called()


class TestFetchDescriptor:

    @pytest.mark.asyncio
    async def test_timeout_raises_resolution_error(self):
        session = MagicMock()
        session.closed = False
        session.options = MagicMock(side_effect=asyncio.TimeoutError())
        resolver = _resolver("http://gateway/alfresco" + EVENT_TOPIC_PATH, session=session, timeout_seconds=0.5)

        with pytest.raises(ResolutionError):
            await resolver.fetch_descriptor()

        assert session.options.call_args.kwargs["timeout"].total == 0.5

    @pytest.mark.asyncio
    async def test_non_2xx_carries_status(self):
        async with TestServer(_app(_json_handler({}, status=401))) as server:
            async with _resolver(str(server.make_url(EVENT_TOPIC_PATH))) as resolver:
                with pytest.raises(ResolutionError) as exc_info:
                    await resolver.fetch_descriptor()

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_json_body(self):
        async def handler(request):
            return web.Response(text="<html>not json</html>")

        async with TestServer(_app(handler)) as server:
            async with _resolver(str(server.make_url(EVENT_TOPIC_PATH))) as resolver:
                with pytest.raises(ResolutionError, match="invalid descriptor body"):
                    await resolver.fetch_descriptor()


class TestGetDescriptor:

    @pytest.mark.asyncio
    async def test_resolves_once_for_concurrent_callers(self, sleep_mock):
        calls = []
        async with TestServer(_app(_json_handler(RESOLVED_BODY, calls=calls))) as server:
            async with _resolver(str(server.make_url(EVENT_TOPIC_PATH))) as resolver:
                first, second = await asyncio.gather(
                    resolver.get_descriptor(), resolver.get_descriptor()
                )
                third = await resolver.get_descriptor()

        assert first is second is third
        assert resolver.descriptor is first
        assert calls == ["OPTIONS"]

    def test_descriptor_is_none_before_resolution(self):
        assert _resolver("http://gateway").descriptor is None


class TestFromConfig:

    def test_uses_gateway_settings(self):
        config = config_from_dict({
            "broker_url": "broker:9092",
            "event_gateway_url": "http://gateway:8080/alfresco/",
            "topic": "events",
            "predicates": {"parent_node_id": "parent"},
            "lambda": {"function_name": "fn"},
            "resolver": {"max_attempts": 7, "backoff_seconds": 0.5, "timeout_seconds": 3},
        })

        resolver = EndpointResolver.from_config(config)

        assert resolver.topic_endpoint_url == "http://gateway:8080/alfresco" + EVENT_TOPIC_PATH
        assert resolver.default_topic_name == "events"
        assert resolver.default_broker_uri == "broker:9092"
        assert resolver.retry_config.max_attempts == 7
        assert resolver.retry_config.backoff_seconds == 0.5
        assert resolver.timeout_seconds == 3


class TestModuleResolve:

    @pytest.mark.asyncio
    async def test_returns_resolved_descriptor(self, sleep_mock):
        async with TestServer(_app(_json_handler(RESOLVED_BODY))) as server:
            descriptor = await resolve(
                str(server.make_url(EVENT_TOPIC_PATH)),
                DEFAULT_TOPIC,
                DEFAULT_BROKER,
                retry_config=RetryConfig(max_attempts=2, backoff_seconds=0),
            )

        assert descriptor.topic_name == "alfresco.repo.event2"
        assert descriptor.source == "resolved"

    @pytest.mark.asyncio
    async def test_returns_fallback_when_unavailable(self, sleep_mock):
        async with TestServer(_app(_json_handler({}, status=503))) as server:
            descriptor = await resolve(
                str(server.make_url(EVENT_TOPIC_PATH)),
                DEFAULT_TOPIC,
                DEFAULT_BROKER,
                retry_config=RetryConfig(max_attempts=3, backoff_seconds=0, respect_permanent=False),
            )

        assert descriptor.is_fallback
        assert descriptor.topic_name == DEFAULT_TOPIC
        assert sleep_mock.await_count == 2
