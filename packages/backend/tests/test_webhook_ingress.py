"""WebhookIngress.handle — the full parse → verify → classify → dispatch path."""

import json
import time

import pytest

from taskhub.errors import (
    HandlerError,
    InvalidSignatureError,
    PayloadTooLargeError,
    SecretNotConfiguredError,
    ValidationError,
)
from taskhub.webhooks.ingress import WebhookIngress
from taskhub.webhooks.processor import WebhookProcessor
from taskhub.webhooks.secret_resolver import SecretResolver
from taskhub.webhooks.signatures import sign_hmac, sign_stripe

SECRETS = {"github": "gh", "stripe": "whsec", "crm": "crm-secret"}


def make_ingress(**kwargs) -> tuple[WebhookIngress, list]:
    calls = []
    processor = WebhookProcessor()

    def record(payload, metadata):
        calls.append((payload, metadata))
        return {"ok": True}

    for event in ("push", "invoice.paid", "contact.created"):
        processor.register_handler(event, record)
    ingress = WebhookIngress(
        processor, SecretResolver(SECRETS, environ={}), **kwargs
    )
    return ingress, calls


def body_of(payload) -> bytes:
    return json.dumps(payload).encode()


@pytest.mark.asyncio
async def test_github_delivery_handled():
    ingress, calls = make_ingress()
    body = body_of({"ref": "refs/heads/main"})
    headers = {
        "X-GitHub-Event": "push",
        "X-Hub-Signature-256": sign_hmac(body, "gh"),
        "User-Agent": "GitHub-Hookshot/abc",
    }

    result = await ingress.handle("github", body, headers, client_ip="10.0.0.1")

    assert result.to_response() == {
        "success": True,
        "message": "Webhook processed successfully",
        "eventType": "push",
        "handled": True,
    }
    payload, metadata = calls[0]
    assert payload == {"ref": "refs/heads/main"}
    assert metadata.source == "github"
    assert metadata.ip == "10.0.0.1"
    assert metadata.user_agent == "GitHub-Hookshot/abc"
    assert metadata.signature == headers["X-Hub-Signature-256"]
    assert metadata.headers["x-github-event"] == "push"
    assert metadata.timestamp.endswith("+00:00")


@pytest.mark.asyncio
async def test_stripe_delivery_handled():
    ingress, calls = make_ingress()
    body = body_of({"type": "invoice.paid", "data": {}})
    headers = {"Stripe-Signature": sign_stripe(body, "whsec", timestamp=int(time.time()))}

    result = await ingress.handle("stripe", body, headers)
    assert result.event_type == "invoice.paid"
    assert result.handled is True
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_generic_source_uses_generic_rules():
    ingress, calls = make_ingress()
    body = body_of({"event": "contact.created"})
    result = await ingress.handle("crm", body, {"Signature": sign_hmac(body, "crm-secret")})
    assert result.handled is True
    assert result.event_type == "contact.created"


@pytest.mark.asyncio
async def test_unhandled_event_is_not_an_error():
    ingress, calls = make_ingress()
    body = body_of({"action": "labeled"})
    headers = {"X-GitHub-Event": "issues", "X-Hub-Signature-256": sign_hmac(body, "gh")}

    result = await ingress.handle("github", body, headers)
    response = result.to_response()
    assert response["success"] is True
    assert response["handled"] is False
    assert response["eventType"] == "issues"
    assert "issues" in response["message"]
    assert calls == []


@pytest.mark.asyncio
async def test_invalid_json_is_checked_before_signature():
    ingress, calls = make_ingress()
    with pytest.raises(ValidationError) as exc_info:
        await ingress.handle("github", b"{not json", {})
    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "Invalid JSON payload"


@pytest.mark.asyncio
async def test_missing_secret_is_distinct_from_bad_signature():
    ingress, calls = make_ingress()
    body = body_of({"event": "contact.created"})
    with pytest.raises(SecretNotConfiguredError) as exc_info:
        await ingress.handle("unconfigured", body, {"X-Signature": sign_hmac(body, "x")})
    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Webhook secret not configured"


@pytest.mark.asyncio
async def test_bad_signature_rejected_and_handler_not_called():
    ingress, calls = make_ingress()
    body = body_of({"ref": "x"})
    headers = {"X-GitHub-Event": "push", "X-Hub-Signature-256": sign_hmac(body, "wrong")}
    with pytest.raises(InvalidSignatureError) as exc_info:
        await ingress.handle("github", body, headers)
    assert exc_info.value.message == "Invalid webhook signature"
    assert calls == []


@pytest.mark.asyncio
async def test_missing_signature_rejected():
    ingress, calls = make_ingress()
    with pytest.raises(InvalidSignatureError):
        await ingress.handle("github", body_of({}), {"X-GitHub-Event": "push"})


@pytest.mark.asyncio
async def test_stale_stripe_signature_rejected():
    ingress, calls = make_ingress()
    body = body_of({"type": "invoice.paid"})
    headers = {"Stripe-Signature": sign_stripe(body, "whsec", timestamp=int(time.time()) - 301)}
    with pytest.raises(InvalidSignatureError):
        await ingress.handle("stripe", body, headers)


@pytest.mark.asyncio
async def test_signature_not_required_when_disabled():
    ingress, calls = make_ingress(require_signature=False)
    result = await ingress.handle("github", body_of({}), {"X-GitHub-Event": "push"})
    assert result.handled is True


@pytest.mark.asyncio
async def test_payload_too_large():
    ingress, calls = make_ingress(max_body_bytes=10)
    with pytest.raises(PayloadTooLargeError) as exc_info:
        await ingress.handle("github", body_of({"padding": "x" * 20}), {})
    assert exc_info.value.status_code == 413


@pytest.mark.asyncio
async def test_handler_failure_surfaces_as_handler_error():
    processor = WebhookProcessor()

    def boom(payload, metadata):
        raise KeyError("internal detail")

    processor.register_handler("push", boom)
    ingress = WebhookIngress(processor, SecretResolver({"github": "gh"}, environ={}))
    body = body_of({})
    headers = {"X-GitHub-Event": "push", "X-Hub-Signature-256": sign_hmac(body, "gh")}

    with pytest.raises(HandlerError) as exc_info:
        await ingress.handle("github", body, headers)
    assert exc_info.value.message == "Failed to process webhook"


@pytest.mark.asyncio
async def test_deeply_nested_json_is_a_client_error():
    ingress, calls = make_ingress(require_signature=False)
    body = b"[" * 200_000 + b"]" * 200_000
    with pytest.raises(ValidationError) as exc_info:
        await ingress.handle("crm", body, {})
    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "Invalid JSON payload"
    assert calls == []


@pytest.mark.asyncio
async def test_source_name_is_case_insensitive():
    ingress, calls = make_ingress()
    body = body_of({"ref": "refs/heads/main"})
    headers = {"X-GitHub-Event": "push", "X-Hub-Signature-256": sign_hmac(body, "gh")}

    result = await ingress.handle("GitHub", body, headers)

    assert result.event_type == "push"
    assert result.handled is True
    assert calls[0][1].source == "github"


def test_secret_resolver_ignores_case_of_configured_keys():
    resolver = SecretResolver({"GitHub": "gh"}, environ={})
    assert resolver.resolve("github") == "gh"
    assert resolver.resolve("GITHUB") == "gh"
