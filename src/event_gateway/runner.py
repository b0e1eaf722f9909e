"""Gateway execution: endpoint resolution, worker pool, graceful shutdown.

Resolution of the topic endpoint (or fallback to the configured defaults)
always completes before the first consumer is created.
"""

import asyncio
import logging
import os
from collections.abc import Callable, Coroutine
from typing import Any

from config.config import GatewayConfig
from core.logging.context import set_log_context
from core.logging.setup import log_worker_startup
from event_gateway.consumer import SubscriptionConsumer
from event_gateway.endpoint_resolver import EndpointResolver
from event_gateway.forwarder import LambdaForwarder
from event_gateway.handlers import HandlerRegistry, build_default_registry
from event_gateway.metrics import update_endpoint_fallback
from event_gateway.predicates import NodeTypePredicate
from event_gateway.routing import Forwarder, RoutingPipeline
from event_gateway.schemas.endpoint import EndpointDescriptor
from event_gateway.serialization import EventDataFormat

logger = logging.getLogger(__name__)

STAGE_NAME = "gateway-router"

# Startup retry configuration (overridable via env vars)
DEFAULT_STARTUP_RETRIES = 5
DEFAULT_STARTUP_BACKOFF_BASE = 5  # seconds

# Upper bound on waiting for background forwards at shutdown
DEFAULT_DRAIN_TIMEOUT = 30.0


async def _cleanup_watcher_task(task: asyncio.Task) -> None:
    """Cancel and await watcher task, suppressing expected exceptions."""
    try:
        task.cancel()
        await task
    except (asyncio.CancelledError, RuntimeError):
        pass


async def _start_with_retry(
    start_fn: Callable,
    label: str,
    max_retries: int | None = None,
    backoff_base: int | None = None,
    shutdown_event: asyncio.Event | None = None,
) -> None:
    """Retry an async start function with linear backoff.

    On exhaustion, re-raises the last exception so the caller can fail
    startup.

    Args:
        start_fn: Async callable (e.g. consumer.start)
        label: Human-readable label for log messages
        max_retries: Number of attempts (default: 5, env: STARTUP_MAX_RETRIES)
        backoff_base: Base seconds for backoff (default: 5, env: STARTUP_BACKOFF_SECONDS)
        shutdown_event: If set, skip retries during shutdown
    """
    max_retries = max_retries or int(
        os.getenv("STARTUP_MAX_RETRIES", str(DEFAULT_STARTUP_RETRIES))
    )
    backoff_base = backoff_base if backoff_base is not None else int(
        os.getenv("STARTUP_BACKOFF_SECONDS", str(DEFAULT_STARTUP_BACKOFF_BASE))
    )

    for attempt in range(1, max_retries + 1):
        try:
            await start_fn()
            return
        except Exception as e:
            if shutdown_event and shutdown_event.is_set():
                logger.info(f"Shutdown in progress, not retrying {label}")
                return
            if attempt == max_retries:
                logger.error(
                    f"Failed to start {label} after {max_retries} attempts, giving up",
                    extra={"error": str(e), "total_attempts": max_retries},
                )
                raise
            delay = backoff_base * attempt
            logger.warning(
                f"Failed to start {label} (attempt {attempt}/{max_retries}), "
                f"retrying in {delay}s",
                extra={"error": str(e), "attempt": attempt, "delay_seconds": delay},
            )
            await asyncio.sleep(delay)


def build_pipeline(
    config: GatewayConfig,
    registry: HandlerRegistry | None = None,
    forwarder: Forwarder | None = None,
) -> RoutingPipeline:
    """Wire handlers, forwarder and predicates from configuration."""
    data_format = EventDataFormat()
    return RoutingPipeline(
        handlers=registry or build_default_registry(),
        forwarder=forwarder or LambdaForwarder(
            config.lambda_function_name,
            region=config.lambda_region,
            data_format=data_format,
        ),
        parent_node_id=config.parent_node_id,
        content_predicate=NodeTypePredicate(config.content_node_type),
        folder_predicate=NodeTypePredicate(config.folder_node_type),
        data_format=data_format,
    )


async def run_consumer(
    config: GatewayConfig,
    descriptor: EndpointDescriptor,
    pipeline: RoutingPipeline,
    shutdown_event: asyncio.Event,
    instance_id: str | None = None,
) -> None:
    """Run one subscription consumer until shutdown."""
    consumer = SubscriptionConsumer(
        descriptor=descriptor,
        client_id=config.client_id,
        subscription_name=config.subscription_name,
        message_handler=pipeline.process,
        consumer_config=config.consumer,
        instance_id=instance_id,
    )
    set_log_context(stage=STAGE_NAME, worker_id=consumer.worker_id)
    suffix = f" (instance {instance_id})" if instance_id is not None else ""
    logger.info("Starting %s%s...", STAGE_NAME, suffix)

    async def shutdown_watcher():
        await shutdown_event.wait()
        logger.info(f"Shutdown signal received, stopping {STAGE_NAME}{suffix}...")
        await consumer.stop()

    watcher_task = asyncio.create_task(shutdown_watcher())
    try:
        await _start_with_retry(consumer.start, STAGE_NAME, shutdown_event=shutdown_event)
    finally:
        await _cleanup_watcher_task(watcher_task)
        await consumer.stop()


async def run_worker_pool(
    worker_fn: Callable[..., Coroutine[Any, Any, None]],
    count: int,
    worker_name: str,
    *args: Any,
    **kwargs: Any,
) -> None:
    """Run multiple instances of a worker concurrently.

    Each instance joins the same consumer group for automatic partition
    distribution and gets a unique instance_id for distinct logging and
    client id.
    """
    if count == 1:
        await worker_fn(*args, **kwargs)
        return

    logger.info("Starting worker instances", extra={"count": count, "worker_name": worker_name})

    tasks = []
    for i in range(count):
        instance_kwargs = kwargs.copy()
        instance_kwargs["instance_id"] = str(i)
        tasks.append(
            asyncio.create_task(
                worker_fn(*args, **instance_kwargs),
                name=f"{worker_name}-{i}",
            )
        )

    try:
        await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        logger.info("Worker pool cancelled, shutting down", extra={"worker_name": worker_name})
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    except Exception:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def run_gateway(
    config: GatewayConfig,
    shutdown_event: asyncio.Event,
    count: int = 1,
    registry: HandlerRegistry | None = None,
    forwarder: Forwarder | None = None,
    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT,
) -> EndpointDescriptor:
    """
    Resolve the endpoint, then consume with ``count`` instances until shutdown.

    Returns the descriptor the subscription ran with.
    """
    async with EndpointResolver.from_config(config) as resolver:
        descriptor = await resolver.get_descriptor()
    update_endpoint_fallback(descriptor.is_fallback)

    pipeline = build_pipeline(config, registry=registry, forwarder=forwarder)

    log_worker_startup(
        logger,
        STAGE_NAME,
        bootstrap_servers=descriptor.broker_uri,
        input_topic=descriptor.topic_name,
        consumer_group=config.subscription_name,
        extra_config={
            "Endpoint source": descriptor.source,
            "Client id": config.client_id,
            "Parent node id": config.parent_node_id,
            "Lambda function": f"{config.lambda_function_name} ({config.lambda_region})",
            "Instances": count,
        },
    )

    try:
        await run_worker_pool(
            run_consumer,
            count,
            STAGE_NAME,
            config,
            descriptor,
            pipeline,
            shutdown_event,
        )
    finally:
        await pipeline.drain(timeout=drain_timeout)

    return descriptor


__all__ = [
    "STAGE_NAME",
    "build_pipeline",
    "run_consumer",
    "run_worker_pool",
    "run_gateway",
]
