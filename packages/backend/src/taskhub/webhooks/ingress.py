"""Webhook ingress — parse, verify, classify, dispatch.

Learn: `handle()` is transport-agnostic: the FastAPI route hands it the raw
body bytes, the header mapping and the caller's IP. Verification must run
over the exact bytes received, which is why the route never lets FastAPI
parse the JSON for us.

Errors raised here (ValidationError, SecretNotConfiguredError,
InvalidSignatureError, HandlerError) are rendered by the app's exception
handlers; nothing before the handler call touches application state.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import structlog

from taskhub.errors import (
    InvalidSignatureError,
    PayloadTooLargeError,
    SecretNotConfiguredError,
    ValidationError,
)
from taskhub.webhooks.processor import WebhookHandler, WebhookProcessor
from taskhub.webhooks.secret_resolver import SecretResolver
from taskhub.webhooks.sources import resolve_source

logger = structlog.get_logger()

DEFAULT_MAX_BODY_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class WebhookMetadata:
    """Everything a handler may want to know about the delivery."""

    source: str
    headers: dict[str, str]
    signature: Optional[str]
    ip: Optional[str]
    user_agent: Optional[str]
    timestamp: str  # ISO-8601 UTC, captured when the request arrived


@dataclass
class WebhookResult:
    event_type: str
    handled: bool
    result: Any = field(default=None, repr=False)

    def to_response(self) -> dict:
        if self.handled:
            message = "Webhook processed successfully"
        else:
            message = f"No handler registered for event type: {self.event_type}"
        return {
            "success": True,
            "message": message,
            "eventType": self.event_type,
            "handled": self.handled,
        }


def _truncate(value: Optional[str], length: int = 20) -> Optional[str]:
    if value is None:
        return None
    return value[:length] + "..." if len(value) > length else value


class WebhookIngress:
    def __init__(
        self,
        processor: Optional[WebhookProcessor] = None,
        secrets: Optional[SecretResolver] = None,
        *,
        require_signature: bool = True,
        max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
    ):
        self.processor = processor or WebhookProcessor()
        self.secrets = secrets or SecretResolver()
        self.require_signature = require_signature
        self.max_body_bytes = max_body_bytes

    # ─── Handler registration (delegates to the processor) ─

    def register_handler(self, event_type: str, handler: WebhookHandler) -> None:
        self.processor.register_handler(event_type, handler)

    def register_handlers(self, handlers: Mapping[str, WebhookHandler]) -> None:
        self.processor.register_handlers(handlers)

    def registered_event_types(self) -> list[str]:
        return self.processor.registered_event_types()

    # ─── Delivery ────────────────────────────────────────

    async def handle(
        self,
        source: str,
        raw_body: bytes,
        headers: Mapping[str, str],
        client_ip: Optional[str] = None,
    ) -> WebhookResult:
        source = source.lower()
        received_at = datetime.now(timezone.utc).isoformat()
        log = logger.bind(source=source, ip=client_ip)

        if len(raw_body) > self.max_body_bytes:
            log.warning("webhook.payload_too_large", size=len(raw_body))
            raise PayloadTooLargeError("Payload too large")

        try:
            payload = json.loads(raw_body)
        except (ValueError, RecursionError):
            # RecursionError: pathologically nested arrays/objects
            log.info("webhook.invalid_json", size=len(raw_body))
            raise ValidationError("Invalid JSON payload")

        normalized = {k.lower(): v for k, v in headers.items()}
        strategy = resolve_source(source)
        signature = strategy.extract_signature(normalized)

        if self.require_signature:
            secret = self.secrets.resolve(source)
            if not secret:
                log.warning("webhook.secret_not_configured")
                raise SecretNotConfiguredError("Webhook secret not configured")
            if not strategy.verify(raw_body, signature, secret):
                log.warning("webhook.signature_invalid", signature=_truncate(signature))
                raise InvalidSignatureError("Invalid webhook signature")

        event_type = strategy.extract_event_type(normalized, payload)
        metadata = WebhookMetadata(
            source=source,
            headers=normalized,
            signature=signature,
            ip=client_ip,
            user_agent=normalized.get("user-agent"),
            timestamp=received_at,
        )

        outcome = await self.processor.process(event_type, payload, metadata)
        log.info(
            "webhook.received",
            event_type=event_type,
            handled=outcome.handled,
            size=len(raw_body),
        )
        return WebhookResult(
            event_type=event_type, handled=outcome.handled, result=outcome.result
        )
