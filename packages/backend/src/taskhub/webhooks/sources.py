"""Webhook sources — one strategy per sender.

Learn: Instead of `if source == "github" ... elif source == "stripe"`
scattered through the ingress, each source is a small object that knows:
- which headers carry its signature
- how to verify that signature
- how to work out the event type

Unknown source names get a GenericSource with the generic rules.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from taskhub.webhooks import signatures

UNKNOWN_EVENT = "unknown"


def _first_header(headers: Mapping[str, str], names: tuple[str, ...]) -> Optional[str]:
    for name in names:
        value = headers.get(name)
        if value:
            return value
    return None


def _payload_field(payload: Any, key: str) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    value = payload.get(key)
    if value is None or value == "":
        return None
    return str(value)


@dataclass(frozen=True)
class WebhookSource:
    """Base strategy. Headers passed in are expected to have lower-case keys."""

    name: str
    signature_headers: tuple[str, ...] = ()

    def extract_signature(self, headers: Mapping[str, str]) -> Optional[str]:
        return _first_header(headers, self.signature_headers)

    def extract_event_type(self, headers: Mapping[str, str], payload: Any) -> str:
        raise NotImplementedError

    def verify(self, raw_body: bytes, signature: Optional[str], secret: str) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class GitHubSource(WebhookSource):
    name: str = "github"
    signature_headers: tuple[str, ...] = ("x-hub-signature-256", "x-hub-signature")

    def extract_event_type(self, headers: Mapping[str, str], payload: Any) -> str:
        return (
            headers.get("x-github-event")
            or _payload_field(payload, "action")
            or UNKNOWN_EVENT
        )

    def verify(self, raw_body: bytes, signature: Optional[str], secret: str) -> bool:
        return signatures.verify_github(raw_body, signature, secret)


@dataclass(frozen=True)
class StripeSource(WebhookSource):
    name: str = "stripe"
    signature_headers: tuple[str, ...] = ("stripe-signature",)

    def extract_event_type(self, headers: Mapping[str, str], payload: Any) -> str:
        return _payload_field(payload, "type") or UNKNOWN_EVENT

    def verify(self, raw_body: bytes, signature: Optional[str], secret: str) -> bool:
        return signatures.verify_stripe(raw_body, signature, secret)


@dataclass(frozen=True)
class GenericSource(WebhookSource):
    name: str = "generic"
    signature_headers: tuple[str, ...] = ("x-signature", "signature")
    event_headers: tuple[str, ...] = ("x-event-type", "x-webhook-event")
    event_fields: tuple[str, ...] = ("event", "type")

    def extract_event_type(self, headers: Mapping[str, str], payload: Any) -> str:
        header_value = _first_header(headers, self.event_headers)
        if header_value:
            return header_value
        for key in self.event_fields:
            value = _payload_field(payload, key)
            if value:
                return value
        return UNKNOWN_EVENT

    def verify(self, raw_body: bytes, signature: Optional[str], secret: str) -> bool:
        return signatures.verify_generic(raw_body, signature, secret)


KNOWN_SOURCES: dict[str, WebhookSource] = {
    "github": GitHubSource(),
    "stripe": StripeSource(),
}


def resolve_source(name: str) -> WebhookSource:
    """Strategy for a source name; anything unrecognised is generic."""
    return KNOWN_SOURCES.get(name.lower()) or GenericSource(name=name)
