"""Tests for Lambda forwarding."""

import json
import logging
from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from core.errors.exceptions import ForwardError
from core.types import ErrorCategory
from event_gateway.forwarder import (
    USER_AGENT_EXTRA,
    ForwardResult,
    LambdaForwarder,
    create_lambda_client,
)
from event_gateway.serialization import serialize

from .conftest import make_event


def _invoke_response(status=202, request_id="req-1", **extra):
    return {
        "StatusCode": status,
        "ResponseMetadata": {"RequestId": request_id, "HTTPStatusCode": status},
        **extra,
    }


def _client_error(code, status):
    return ClientError(
        {
            "Error": {"Code": code, "Message": code},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        "Invoke",
    )


def _make_forwarder(client):
    return LambdaForwarder("folder-events", region="eu-west-1", client=client)


class TestLambdaForwarder:

    @pytest.mark.asyncio
    async def test_invokes_function_asynchronously_with_serialized_event(self):
        client = Mock()
        client.invoke.return_value = _invoke_response()
        event = make_event(node_type="cm:folder")

        result = await _make_forwarder(client).forward(event)

        assert result == ForwardResult(status_code=202, function_name="folder-events", request_id="req-1")
        kwargs = client.invoke.call_args.kwargs
        assert kwargs["FunctionName"] == "folder-events"
        assert kwargs["InvocationType"] == "Event"
        assert kwargs["Payload"] == serialize(event)
        assert json.loads(kwargs["Payload"])["resource"]["nodeType"] == "cm:folder"

    @pytest.mark.asyncio
    async def test_logs_body_before_sending(self, caplog):
        client = Mock()
        client.invoke.return_value = _invoke_response()
        event = make_event(node_type="cm:folder", node_id="folder-1")

        with caplog.at_level(logging.DEBUG, logger="event_gateway.forwarder"):
            await _make_forwarder(client).forward(event)

        sending = [r for r in caplog.records if r.getMessage().startswith("Sending the event to AWS Lambda")]
        assert len(sending) == 1
        assert "folder-1" in sending[0].getMessage()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "code, status, category",
        [
            ("TooManyRequestsException", 429, ErrorCategory.TRANSIENT),
            ("ServiceException", 500, ErrorCategory.TRANSIENT),
            ("ResourceNotFoundException", 404, ErrorCategory.PERMANENT),
            ("AccessDeniedException", 403, ErrorCategory.AUTH),
        ],
    )
    async def test_client_errors_raise_forward_error(self, code, status, category):
        client = Mock()
        client.invoke.side_effect = _client_error(code, status)

        with pytest.raises(ForwardError) as exc_info:
            await _make_forwarder(client).forward(make_event(node_type="cm:folder"))

        assert exc_info.value.category == category
        assert exc_info.value.status_code == status
        assert isinstance(exc_info.value.cause, ClientError)

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self):
        client = Mock()
        client.invoke.side_effect = EndpointConnectionError(endpoint_url="https://lambda.eu-west-1.amazonaws.com")

        with pytest.raises(ForwardError) as exc_info:
            await _make_forwarder(client).forward(make_event(node_type="cm:folder"))

        assert exc_info.value.category == ErrorCategory.TRANSIENT

    @pytest.mark.asyncio
    async def test_non_2xx_status_raises(self):
        client = Mock()
        client.invoke.return_value = _invoke_response(status=500)

        with pytest.raises(ForwardError) as exc_info:
            await _make_forwarder(client).forward(make_event(node_type="cm:folder"))

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_function_error_raises(self):
        client = Mock()
        client.invoke.return_value = _invoke_response(status=200, FunctionError="Unhandled")

        with pytest.raises(ForwardError):
            await _make_forwarder(client).forward(make_event(node_type="cm:folder"))

    def test_requires_function_name(self):
        with pytest.raises(ValueError):
            LambdaForwarder("", region="eu-west-1", client=Mock())

    def test_client_created_lazily(self):
        with patch("event_gateway.forwarder.create_lambda_client") as create:
            forwarder = LambdaForwarder("folder-events", region="eu-west-1")
            create.assert_not_called()
            assert forwarder.client is create.return_value
            assert forwarder.client is create.return_value
        create.assert_called_once_with("eu-west-1")


class TestCreateLambdaClient:

    def test_region_and_user_agent(self):
        with patch("event_gateway.forwarder.boto3.client") as boto_client:
            create_lambda_client("ap-southeast-2")

        args, kwargs = boto_client.call_args
        assert args == ("lambda",)
        assert kwargs["region_name"] == "ap-southeast-2"
        assert kwargs["config"].user_agent_extra == USER_AGENT_EXTRA == "event-gateway-example/0.1"
