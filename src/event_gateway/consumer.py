"""Durable subscription consumer feeding the routing pipeline."""

import asyncio
import itertools
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from aiokafka import AIOKafkaConsumer
from aiokafka.structs import ConsumerRecord, TopicPartition

from core.errors.exceptions import ConfigurationError
from core.logging import MessageLogContext
from core.utils import generate_worker_id
from event_gateway.metrics import message_processing_duration_seconds, record_message_consumed
from event_gateway.schemas.endpoint import EndpointDescriptor
from event_gateway.types import PipelineMessage, from_consumer_record

logger = logging.getLogger(__name__)

_SCHEMES = ("tcp://", "ssl://", "nio://", "amqp://", "amqps://", "kafka://", "plaintext://")


def normalize_broker_uri(broker_uri: str) -> str:
    """
    Turn a broker URI into a bootstrap server list.

    Accepts plain ``host:port`` lists as well as scheme-prefixed and
    failover-wrapped forms; query options are discarded.

    Examples:
        >>> normalize_broker_uri("failover:(tcp://a:61616,tcp://b:61616)?timeout=3000")
        'a:61616,b:61616'
        >>> normalize_broker_uri("localhost:9092")
        'localhost:9092'
    """
    uri = broker_uri.strip()
    if uri.lower().startswith("failover:"):
        uri = uri[len("failover:"):]
    if uri.startswith("(") and ")" in uri:
        uri = uri[1 : uri.index(")")]

    servers = []
    for part in uri.split(","):
        part = part.strip().split("?", 1)[0]
        lowered = part.lower()
        for scheme in _SCHEMES:
            if lowered.startswith(scheme):
                part = part[len(scheme):]
                break
        part = part.rstrip("/")
        if part:
            servers.append(part)

    if not servers:
        raise ConfigurationError(f"Broker URI has no servers: {broker_uri!r}")
    return ",".join(servers)


MessageHandler = Callable[[PipelineMessage], Awaitable[Any]]


class SubscriptionConsumer:
    """
    Consumes the event topic as a member of the durable subscription.

    The subscription name is the consumer group, so several instances share
    the partitions and a restarted process resumes from committed offsets.
    Every message is committed after it has been handed to the pipeline,
    including messages the pipeline dropped.
    """

    # Optional consumer config keys forwarded to AIOKafkaConsumer if present
    _OPTIONAL_CONSUMER_KEYS = (
        "heartbeat_interval_ms",
        "request_timeout_ms",
        "metadata_max_age_ms",
        "fetch_min_bytes",
        "fetch_max_wait_ms",
        "security_protocol",
        "sasl_mechanism",
        "sasl_plain_username",
        "sasl_plain_password",
    )

    def __init__(
        self,
        descriptor: EndpointDescriptor,
        client_id: str,
        subscription_name: str,
        message_handler: MessageHandler,
        consumer_config: dict | None = None,
        instance_id: str | None = None,
    ):
        self.descriptor = descriptor
        self.topic = descriptor.topic_name
        self.bootstrap_servers = normalize_broker_uri(descriptor.broker_uri)
        self.client_id = f"{client_id}-{instance_id}" if instance_id else client_id
        self.group_id = subscription_name
        self.message_handler = message_handler
        self.consumer_config = consumer_config or {}
        self.instance_id = instance_id
        self.worker_id = generate_worker_id(self.client_id)

        self._consumer: AIOKafkaConsumer | None = None
        self._running = False
        self._loop_done: asyncio.Event | None = None

    @property
    def is_running(self) -> bool:
        return self._running and self._consumer is not None

    def _build_kafka_config(self) -> dict:
        cfg = {
            "bootstrap_servers": self.bootstrap_servers,
            "group_id": self.group_id,
            "client_id": self.client_id,
            "enable_auto_commit": False,
            "auto_offset_reset": self.consumer_config.get("auto_offset_reset", "earliest"),
            "max_poll_records": self.consumer_config.get("max_poll_records", 100),
            "max_poll_interval_ms": self.consumer_config.get("max_poll_interval_ms", 300000),
            "session_timeout_ms": self.consumer_config.get("session_timeout_ms", 30000),
        }
        for key in self._OPTIONAL_CONSUMER_KEYS:
            if key in self.consumer_config:
                cfg[key] = self.consumer_config[key]
        return cfg

    async def start(self) -> None:
        """Connect and consume until ``stop()`` is called."""
        if self._running:
            logger.warning("Consumer already running, ignoring duplicate start call")
            return

        logger.info(
            "Starting subscription consumer",
            extra={
                "topics": [self.topic],
                "group_id": self.group_id,
                "client_id": self.client_id,
                "bootstrap_servers": self.bootstrap_servers,
                "descriptor_source": self.descriptor.source,
            },
        )

        self._consumer = AIOKafkaConsumer(self.topic, **self._build_kafka_config())
        try:
            await self._consumer.start()
        except Exception:
            self._consumer = None
            raise
        self._running = True
        self._loop_done = asyncio.Event()

        try:
            await self._consume_loop()
        except asyncio.CancelledError:
            logger.info("Consumer loop cancelled, shutting down")
            raise
        except Exception:
            logger.error("Consumer loop terminated with error", exc_info=True)
            raise
        finally:
            self._running = False
            await self._close_consumer()
            self._loop_done.set()

    async def stop(self) -> None:
        """Stop fetching; the message in progress is finished and committed first."""
        if self._consumer is None:
            logger.debug("Consumer not running or already stopped")
            return

        logger.info("Stopping subscription consumer", extra={"group_id": self.group_id})
        self._running = False

        if self._loop_done is not None and not self._loop_done.is_set():
            await self._loop_done.wait()
        else:
            await self._close_consumer()

    async def _close_consumer(self) -> None:
        consumer, self._consumer = self._consumer, None
        if consumer is None:
            return
        try:
            await consumer.stop()
            logger.info("Subscription consumer stopped", extra={"group_id": self.group_id})
        except Exception:
            logger.error("Error stopping subscription consumer", exc_info=True)

    async def _consume_loop(self) -> None:
        logger.info(
            "Starting message consumption loop",
            extra={"topics": [self.topic], "group_id": self.group_id},
        )
        while self.is_running:
            try:
                data = await self._consumer.getmany(timeout_ms=1000)
                for record in itertools.chain.from_iterable(data.values()):
                    if not self.is_running:
                        return
                    await self._process_message(record)
            except asyncio.CancelledError:
                logger.info("Consumption loop cancelled")
                raise
            except Exception:
                if not self.is_running:
                    return
                logger.error("Error in consumption loop", exc_info=True)
                await asyncio.sleep(1)

    async def _process_message(self, record: ConsumerRecord) -> None:
        with MessageLogContext(
            topic=record.topic,
            partition=record.partition,
            offset=record.offset,
            key=record.key.decode("utf-8", errors="replace") if record.key else None,
            consumer_group=self.group_id,
        ):
            start_time = time.perf_counter()
            message = from_consumer_record(record)
            try:
                await self.message_handler(message)
            except Exception:
                logger.error(
                    "Unhandled error routing message, committing past it",
                    extra={"payload_size": message.size},
                    exc_info=True,
                )
            finally:
                message_processing_duration_seconds.labels(
                    topic=record.topic, consumer_group=self.group_id
                ).observe(time.perf_counter() - start_time)
                record_message_consumed(record.topic, self.group_id)

            await self._commit(record)

    async def _commit(self, record: ConsumerRecord) -> None:
        if self._consumer is None:
            logger.warning("Cannot commit: consumer not started")
            return
        tp = TopicPartition(record.topic, record.partition)
        await self._consumer.commit({tp: record.offset + 1})
        logger.debug(
            "Committed offset",
            extra={"group_id": self.group_id, "topics": [record.topic]},
        )


__all__ = [
    "SubscriptionConsumer",
    "normalize_broker_uri",
]
