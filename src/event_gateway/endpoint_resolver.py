"""
Topic endpoint resolution.

The event gateway publishes the broker connection string and topic name at
``<gateway url>/api/public/events/versions/1/events`` (HTTP OPTIONS). The
resolver asks for them with fixed-backoff retry and, once attempts run out,
falls back to the configured defaults instead of failing startup.
"""

import asyncio
import json
import logging
from typing import Optional

import aiohttp
from pydantic import ValidationError

from config.config import GatewayConfig
from core.errors.exceptions import ResolutionError
from core.resilience.retry import RetryConfig, RetryStats, retry_async
from event_gateway.schemas.endpoint import EndpointDescriptor, TopicEndpointResponse

logger = logging.getLogger(__name__)

DEFAULT_RESOLVER_RETRY = RetryConfig(
    max_attempts=30,
    backoff_seconds=2.0,
    respect_permanent=False,
)
DEFAULT_TIMEOUT_SECONDS = 10.0


class EndpointResolver:
    """
    Resolves and caches the EndpointDescriptor for the process lifetime.

    Usage:
        async with EndpointResolver.from_config(config) as resolver:
            descriptor = await resolver.get_descriptor()
    """

    def __init__(
        self,
        topic_endpoint_url: str,
        default_topic_name: str,
        default_broker_uri: str,
        retry_config: RetryConfig | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        session: aiohttp.ClientSession | None = None,
    ):
        self.topic_endpoint_url = topic_endpoint_url
        self.default_topic_name = default_topic_name
        self.default_broker_uri = default_broker_uri
        self.retry_config = retry_config or DEFAULT_RESOLVER_RETRY
        self.timeout_seconds = timeout_seconds

        self._session = session
        self._owns_session = session is None
        self._descriptor: EndpointDescriptor | None = None
        self._lock = asyncio.Lock()
        self.stats = RetryStats()

    @classmethod
    def from_config(cls, config: GatewayConfig) -> "EndpointResolver":
        return cls(
            topic_endpoint_url=config.topic_endpoint_url,
            default_topic_name=config.topic_name,
            default_broker_uri=config.broker_url,
            retry_config=config.resolver_retry_config(),
            timeout_seconds=config.resolver_timeout_seconds,
        )

    async def __aenter__(self) -> "EndpointResolver":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Accept": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            await asyncio.sleep(0)
        self._session = None

    @property
    def descriptor(self) -> EndpointDescriptor | None:
        """Cached descriptor, or None before the first resolution."""
        return self._descriptor

    def fallback_descriptor(self) -> EndpointDescriptor:
        return EndpointDescriptor(
            topic_name=self.default_topic_name,
            broker_uri=self.default_broker_uri,
            source="fallback",
        )

    async def fetch_descriptor(self) -> EndpointDescriptor:
        """
        One OPTIONS request against the topic endpoint.

        Raises:
            ResolutionError: Transport failure, timeout, non-2xx status or a
                body without ``entry.eventTopic`` / ``entry.brokerUri``
        """
        session = await self._ensure_session()
        try:
            async with session.options(
                self.topic_endpoint_url,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                if not 200 <= response.status < 300:
                    raise ResolutionError(
                        f"Topic endpoint returned HTTP {response.status}",
                        status_code=response.status,
                        context={"url": self.topic_endpoint_url},
                    )
                body = await response.text()
        except ResolutionError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ResolutionError(
                f"Topic endpoint request failed: {type(e).__name__}: {e}",
                cause=e,
                context={"url": self.topic_endpoint_url},
            ) from e

        try:
            parsed = TopicEndpointResponse.model_validate(json.loads(body))
        except (ValueError, ValidationError) as e:
            raise ResolutionError(
                "Topic endpoint returned an invalid descriptor body",
                status_code=response.status,
                cause=e,
                context={"url": self.topic_endpoint_url},
            ) from e

        return EndpointDescriptor.from_response(parsed)

    def _use_fallback(self, error: Exception) -> EndpointDescriptor:
        logger.warning(
            "Couldn't get the topic info after %d tries. Falling back to default values.",
            self.retry_config.max_attempts,
            extra={
                "operation": "resolve_topic_endpoint",
                "max_attempts": self.retry_config.max_attempts,
                "topic_name": self.default_topic_name,
                "broker_uri": self.default_broker_uri,
                "descriptor_source": "fallback",
                "error_message": str(error)[:200],
            },
        )
        return self.fallback_descriptor()

    async def resolve(self) -> EndpointDescriptor:
        """
        Fetch the descriptor with fixed-backoff retry.

        Never raises for resolution failures: after the last attempt the
        configured defaults are returned with ``source="fallback"``.
        """
        logger.info(
            "Resolving topic endpoint",
            extra={
                "http_url": self.topic_endpoint_url,
                "max_attempts": self.retry_config.max_attempts,
                "delay_seconds": self.retry_config.backoff_seconds,
            },
        )
        self.stats = RetryStats()
        descriptor = await retry_async(
            self.fetch_descriptor,
            config=self.retry_config,
            fallback=self._use_fallback,
            operation_name="resolve_topic_endpoint",
            stats=self.stats,
        )
        if not descriptor.is_fallback:
            logger.info(
                "Resolved topic endpoint",
                extra={
                    "topic_name": descriptor.topic_name,
                    "broker_uri": descriptor.broker_uri,
                    "descriptor_source": descriptor.source,
                    "attempt": self.stats.attempts,
                },
            )
        return descriptor

    async def get_descriptor(self) -> EndpointDescriptor:
        """Resolve once; later and concurrent callers share the same result."""
        if self._descriptor is not None:
            return self._descriptor
        async with self._lock:
            if self._descriptor is None:
                self._descriptor = await self.resolve()
        return self._descriptor


async def resolve(
    configured_topic_endpoint_url: str,
    default_topic_name: str,
    default_broker_uri: str,
    retry_config: Optional[RetryConfig] = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> EndpointDescriptor:
    """Resolve the endpoint descriptor with a short-lived resolver."""
    async with EndpointResolver(
        configured_topic_endpoint_url,
        default_topic_name,
        default_broker_uri,
        retry_config=retry_config,
        timeout_seconds=timeout_seconds,
    ) as resolver:
        return await resolver.resolve()


__all__ = [
    "DEFAULT_RESOLVER_RETRY",
    "EndpointResolver",
    "resolve",
]
