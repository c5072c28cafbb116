"""Tests for the HTTP sender."""
import httpx
import pytest

from webhook_engine.services import signature
from webhook_engine.services.delivery_store import ClaimedDelivery
from webhook_engine.services.sender import HttpSender, Sender

SECRET = "s" * 64


@pytest.fixture
def claim():
    return ClaimedDelivery(
        delivery_id="dlv-123",
        endpoint_id=1,
        tenant_id="t1",
        url="https://example.com/webhook",
        secret=SECRET,
        event_type="bio.created",
        payload='{"id":42}',
        attempts=0,
    )


def sender_for(handler):
    return HttpSender(timeout=5, client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_posts_signed_payload(claim):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, text="ok")

    result = sender_for(handler).send(claim)

    assert result.success is True
    assert result.response_code == 200
    assert result.error is None

    [request] = seen
    assert request.method == "POST"
    assert str(request.url) == "https://example.com/webhook"
    assert request.content == b'{"id":42}'
    assert request.headers["content-type"] == "application/json"
    assert request.headers["x-webhook-id"] == "dlv-123"
    assert request.headers["x-webhook-event"] == "bio.created"

    timestamp = int(request.headers["x-webhook-timestamp"])
    assert signature.verify(
        request.content.decode(), request.headers["x-webhook-signature"], SECRET, timestamp
    )


@pytest.mark.parametrize("status_code", [400, 404, 500, 503])
def test_non_2xx_is_failure(claim, status_code):
    result = sender_for(lambda request: httpx.Response(status_code, text="nope")).send(claim)

    assert result.success is False
    assert result.response_code == status_code
    assert result.error == f"HTTP {status_code}: nope"


def test_error_body_is_truncated(claim):
    result = sender_for(lambda request: httpx.Response(500, text="x" * 1000)).send(claim)
    assert len(result.error) == len("HTTP 500: ") + 200


def test_timeout_is_reported_not_raised(claim):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    result = sender_for(handler).send(claim)

    assert result.success is False
    assert result.response_code is None
    assert result.error == "Request timeout"


def test_connection_error_is_reported_not_raised(claim):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = sender_for(handler).send(claim)

    assert result.success is False
    assert result.response_code is None
    assert "connection refused" in result.error


def test_sender_requires_send_implementation():
    class Incomplete(Sender):
        pass

    with pytest.raises(TypeError):
        Incomplete()
