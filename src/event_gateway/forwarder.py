"""
Forwarding of routed events to an AWS Lambda function.

Events are serialized to wire JSON and sent with an asynchronous ("Event")
invocation. The boto3 client call is blocking, so it runs in a worker thread.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from core.errors.exceptions import (
    ForwardError,
    classify_exception,
    classify_http_status,
)
from core.types import ErrorCategory
from event_gateway.metrics import record_event_forwarded, record_forward_error
from event_gateway.schemas.events import Event
from event_gateway.serialization import EventDataFormat

logger = logging.getLogger(__name__)

APPLICATION_NAME = "event-gateway-example"
APPLICATION_VERSION = "0.1"
USER_AGENT_EXTRA = f"{APPLICATION_NAME}/{APPLICATION_VERSION}"

INVOCATION_TYPE = "Event"

# Error codes Lambda returns when the caller is throttled
_THROTTLING_CODES = {
    "TooManyRequestsException",
    "ThrottlingException",
    "Throttling",
    "RequestLimitExceeded",
}

# Log body previews are cut to this length
LOG_BODY_TRUNCATE = 2000


@dataclass(frozen=True)
class ForwardResult:
    """Outcome of a successful invocation."""

    status_code: int
    function_name: str
    request_id: str | None = None


def create_lambda_client(region: str) -> Any:
    """Lambda client using the default credential chain and the gateway user agent."""
    return boto3.client(
        "lambda",
        region_name=region,
        config=Config(user_agent_extra=USER_AGENT_EXTRA),
    )


def _classify_client_error(error: ClientError) -> tuple[ErrorCategory, int | None]:
    code = error.response.get("Error", {}).get("Code", "")
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    if code in _THROTTLING_CODES:
        return ErrorCategory.TRANSIENT, status
    if code in ("AccessDeniedException", "UnrecognizedClientException", "ExpiredTokenException"):
        return ErrorCategory.AUTH, status
    if status:
        return classify_http_status(status), status
    return classify_exception(error), status


class LambdaForwarder:
    """
    Sends events to one Lambda function.

    Usage:
        forwarder = LambdaForwarder("event-processor", region="eu-west-1")
        result = await forwarder.forward(event)
    """

    def __init__(
        self,
        function_name: str,
        region: str,
        data_format: EventDataFormat | None = None,
        client: Any = None,
    ):
        if not function_name:
            raise ValueError("function_name is required")
        self.function_name = function_name
        self.region = region
        self.data_format = data_format or EventDataFormat()
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = create_lambda_client(self.region)
            logger.debug(
                "Created Lambda client",
                extra={"function_region": self.region, "function_name": self.function_name},
            )
        return self._client

    def _invoke(self, payload: bytes) -> dict:
        return self.client.invoke(
            FunctionName=self.function_name,
            InvocationType=INVOCATION_TYPE,
            Payload=payload,
        )

    async def forward(self, event: Event) -> ForwardResult:
        """
        Serialize ``event`` and invoke the function once.

        Raises:
            ForwardError: On any SDK error or a non-2xx invocation status
        """
        payload = self.data_format.marshal(event)
        body = payload.decode("utf-8")
        logger.debug(
            "Sending the event to AWS Lambda %s",
            body[:LOG_BODY_TRUNCATE],
            extra={
                "function_name": self.function_name,
                "event_id": event.id,
                "payload_size": len(payload),
            },
        )

        try:
            response = await asyncio.to_thread(self._invoke, payload)
        except ClientError as e:
            category, status = _classify_client_error(e)
            record_forward_error(self.function_name, category.value)
            raise ForwardError(
                f"Lambda invocation failed for {self.function_name}",
                category=category,
                status_code=status,
                cause=e,
                context={"event_id": event.id},
            ) from e
        except BotoCoreError as e:
            category = classify_exception(e)
            record_forward_error(self.function_name, category.value)
            raise ForwardError(
                f"Lambda invocation failed for {self.function_name}",
                category=category,
                cause=e,
                context={"event_id": event.id},
            ) from e

        status = response.get("StatusCode")
        request_id = response.get("ResponseMetadata", {}).get("RequestId")
        if status is None or not 200 <= status < 300 or response.get("FunctionError"):
            category = (
                classify_http_status(status) if status else ErrorCategory.UNKNOWN
            )
            record_forward_error(self.function_name, category.value)
            raise ForwardError(
                f"Lambda invocation returned status {status} for {self.function_name}",
                category=category,
                status_code=status,
                context={
                    "event_id": event.id,
                    "request_id": request_id,
                    "function_error": response.get("FunctionError"),
                },
            )

        record_event_forwarded(self.function_name)
        logger.info(
            "Forwarded event to Lambda",
            extra={
                "function_name": self.function_name,
                "event_id": event.id,
                "status_code": status,
                "request_id": request_id,
            },
        )
        return ForwardResult(
            status_code=status,
            function_name=self.function_name,
            request_id=request_id,
        )


__all__ = [
    "APPLICATION_NAME",
    "APPLICATION_VERSION",
    "USER_AGENT_EXTRA",
    "ForwardResult",
    "LambdaForwarder",
    "create_lambda_client",
]
