"""
Tests for outbound webhook forwarding.
"""

import json
import pytest
import httpx

from deskbridge.config import WebhookForwardConfig
from deskbridge.models.webhook import WebhookConfig, SavedWebhook
from deskbridge.services.webhook_forwarder import (
    WebhookForwarder, WebhookTarget, build_payload, extract_response_value, should_forward
)


class RecordingTransport:
    """Collects forwarded requests and answers with a fixed status per host."""

    def __init__(self, failing_hosts=()):
        self.requests = []
        self.failing_hosts = set(failing_hosts)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host in self.failing_hosts:
            return httpx.Response(500, json={"error": "boom"})
        return httpx.Response(200, json={"ok": True})


def test_extract_response_value():
    """Test reading the value field of JSON replies."""
    assert extract_response_value('{"value": "lead"}') == "lead"
    assert extract_response_value('{"value": 3}') == "3"
    assert extract_response_value('{"other": 1}') is None
    assert extract_response_value("plain text") is None
    assert extract_response_value(None) is None


def test_should_forward_filters():
    """Test enable flag and filter conditions."""
    plain = WebhookTarget(name="primary", url="https://hooks.example.com")
    assert should_forward(plain, "anything") is True

    disabled = WebhookTarget(name="primary", url="https://hooks.example.com", is_enabled=False)
    assert should_forward(disabled, "anything") is False

    equals = WebhookTarget(name="f", url="u", filter_enabled=True, filter_value="lead")
    assert should_forward(equals, '{"value": "lead"}') is True
    assert should_forward(equals, '{"value": "spam"}') is False
    assert should_forward(equals, "lead") is False

    not_equals = WebhookTarget(name="f", url="u", filter_enabled=True, filter_condition="not_equals", filter_value="spam")
    assert should_forward(not_equals, '{"value": "lead"}') is True
    assert should_forward(not_equals, '{"value": "spam"}') is False

    contains = WebhookTarget(name="f", url="u", filter_enabled=True, filter_condition="contains", filter_value="urgent")
    assert should_forward(contains, "This is urgent") is True
    assert should_forward(contains, "Nothing to see") is False


def test_build_payload_omits_empty_optionals():
    """Test payload layout."""
    payload = build_payload("SUP-1", "Hello", "John Smith", "jira", thread_id="ticket_SUP-1", response="Hi")

    assert payload["issueKey"] == "SUP-1"
    assert payload["source"] == "jira"
    assert payload["threadId"] == "ticket_SUP-1"
    assert payload["response"] == "Hi"
    assert "assistantId" not in payload
    assert "context" not in payload
    assert "timestamp" in payload


def test_get_targets_prefers_most_specific_config(test_session):
    """Test config precedence and saved webhook selection."""
    test_session.add_all([
        WebhookConfig(user_id=None, service_id=None, url="https://global.example.com"),
        WebhookConfig(user_id="tenant-1", service_id="support", url="https://tenant-support.example.com"),
        SavedWebhook(user_id="tenant-1", service_id=None, name="crm", url="https://crm.example.com"),
        SavedWebhook(user_id="tenant-1", service_id="sales", name="sales-only", url="https://sales.example.com"),
        SavedWebhook(user_id="tenant-1", service_id=None, name="off", url="https://off.example.com", is_enabled=False),
    ])
    test_session.commit()

    forwarder = WebhookForwarder(WebhookForwardConfig())

    targets = forwarder.get_targets(test_session, "tenant-1", "support")
    assert [target.url for target in targets] == ["https://tenant-support.example.com", "https://crm.example.com"]

    targets = forwarder.get_targets(test_session, "tenant-2", "support")
    assert [target.url for target in targets] == ["https://global.example.com"]


@pytest.mark.asyncio
async def test_forward_posts_payload(test_session):
    """Test delivery with the configured user agent."""
    test_session.add(WebhookConfig(user_id=None, service_id="support", url="https://hooks.example.com/in"))
    test_session.commit()

    transport = RecordingTransport()
    forwarder = WebhookForwarder(WebhookForwardConfig(), transport=httpx.MockTransport(transport))
    payload = build_payload("SUP-1", "Hello", "John Smith", "jira", response="Hi")

    delivered = await forwarder.forward(test_session, None, "support", payload)

    assert delivered == 1
    request = transport.requests[0]
    assert str(request.url) == "https://hooks.example.com/in"
    assert request.headers["User-Agent"] == "DeskBridge-Webhook/1.0"
    assert json.loads(request.content)["issueKey"] == "SUP-1"


@pytest.mark.asyncio
async def test_forward_skips_filtered_and_survives_failures(test_session):
    """Test that filtered targets are skipped and failed ones are not counted."""
    test_session.add_all([
        WebhookConfig(user_id=None, service_id=None, url="https://down.example.com/in"),
        SavedWebhook(user_id=None, service_id=None, name="leads", url="https://leads.example.com",
                     filter_enabled=True, filter_condition="response_value", filter_value="lead"),
        SavedWebhook(user_id=None, service_id=None, name="all", url="https://all.example.com"),
    ])
    test_session.commit()

    transport = RecordingTransport(failing_hosts=["down.example.com"])
    forwarder = WebhookForwarder(WebhookForwardConfig(), transport=httpx.MockTransport(transport))

    delivered = await forwarder.forward(test_session, None, "support", build_payload(None, "Hi", None, "chat", response="Hello"))

    assert delivered == 1
    assert [request.url.host for request in transport.requests] == ["down.example.com", "all.example.com"]


@pytest.mark.asyncio
async def test_forward_without_targets(test_session):
    """Test that nothing is sent when no webhook is configured."""
    transport = RecordingTransport()
    forwarder = WebhookForwarder(WebhookForwardConfig(), transport=httpx.MockTransport(transport))

    assert await forwarder.forward(test_session, "tenant-1", "support", {"message": "Hi"}) == 0
    assert transport.requests == []


@pytest.mark.asyncio
async def test_forward_survives_malformed_url(test_session):
    """Test that an unparseable target URL is logged and the other targets still receive the turn."""
    test_session.add_all([
        WebhookConfig(user_id=None, service_id="support", url="http://[::1"),
        SavedWebhook(user_id=None, service_id=None, name="all", url="https://all.example.com"),
    ])
    test_session.commit()

    transport = RecordingTransport()
    forwarder = WebhookForwarder(WebhookForwardConfig(), transport=httpx.MockTransport(transport))

    delivered = await forwarder.forward(test_session, None, "support", build_payload("SUP-1", "Hi", None, "jira", response="Hello"))

    assert delivered == 1
    assert [request.url.host for request in transport.requests] == ["all.example.com"]
