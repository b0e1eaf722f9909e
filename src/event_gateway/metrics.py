"""
Prometheus metrics for gateway monitoring.

Focused on the routing path:
- Messages consumed and dropped
- Events routed per handler branch, handler failures
- Events forwarded to the Lambda function, forward failures
- Whether the subscription runs on fallback endpoint values
"""

from prometheus_client import Counter, Gauge, Histogram

messages_consumed_counter = Counter(
    "event_gateway_messages_consumed_total",
    "Total number of messages consumed from the event topic",
    labelnames=["topic", "consumer_group"],
)

messages_dropped_counter = Counter(
    "event_gateway_messages_dropped_total",
    "Messages dropped because they could not be deserialized",
    labelnames=["reason"],
)

events_routed_counter = Counter(
    "event_gateway_events_routed_total",
    "Content events dispatched to a handler",
    labelnames=["handler_name"],
)

handler_errors_counter = Counter(
    "event_gateway_handler_errors_total",
    "Handler invocations that raised",
    labelnames=["handler_name"],
)

events_forwarded_counter = Counter(
    "event_gateway_events_forwarded_total",
    "Events delivered to the Lambda function",
    labelnames=["function_name"],
)

forward_errors_counter = Counter(
    "event_gateway_forward_errors_total",
    "Events that could not be delivered to the Lambda function",
    labelnames=["function_name", "error_category"],
)

endpoint_fallback_gauge = Gauge(
    "event_gateway_endpoint_fallback",
    "1 when the subscription uses the configured fallback endpoint, 0 when resolved",
)

message_processing_duration_seconds = Histogram(
    "event_gateway_message_processing_duration_seconds",
    "Time spent routing individual messages",
    labelnames=["topic", "consumer_group"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)


def record_message_consumed(topic: str, consumer_group: str) -> None:
    messages_consumed_counter.labels(topic=topic, consumer_group=consumer_group).inc()


def record_message_dropped(reason: str) -> None:
    messages_dropped_counter.labels(reason=reason).inc()


def record_event_routed(handler_name: str) -> None:
    events_routed_counter.labels(handler_name=handler_name).inc()


def record_handler_error(handler_name: str) -> None:
    handler_errors_counter.labels(handler_name=handler_name).inc()


def record_event_forwarded(function_name: str) -> None:
    events_forwarded_counter.labels(function_name=function_name).inc()


def record_forward_error(function_name: str, error_category: str) -> None:
    forward_errors_counter.labels(
        function_name=function_name, error_category=error_category
    ).inc()


def update_endpoint_fallback(is_fallback: bool) -> None:
    endpoint_fallback_gauge.set(1 if is_fallback else 0)


__all__ = [
    "messages_consumed_counter",
    "messages_dropped_counter",
    "events_routed_counter",
    "handler_errors_counter",
    "events_forwarded_counter",
    "forward_errors_counter",
    "endpoint_fallback_gauge",
    "message_processing_duration_seconds",
    "record_message_consumed",
    "record_message_dropped",
    "record_event_routed",
    "record_handler_error",
    "record_event_forwarded",
    "record_forward_error",
    "update_endpoint_fallback",
]
