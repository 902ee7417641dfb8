"""HMAC signature schemes.

Learn: Every verifier here returns a bool and never raises — callers treat
False uniformly as "reject". Digests are compared with
hmac.compare_digest so timing doesn't leak how many leading characters
matched.

- Generic / GitHub: hex HMAC of the raw body, optionally prefixed with
  the algorithm name (`sha256=<hex>`).
- Stripe: header `t=<unix>,v1=<hex>`; the signed string is
  `"<t>.<raw body>"` and timestamps older than 300 s are rejected.
"""

import hashlib
import hmac
import time
from typing import Optional, Union

import structlog

logger = structlog.get_logger()

# Replay window for Stripe-style signatures, in seconds. Not configurable.
STRIPE_TOLERANCE_SECONDS = 300

Payload = Union[bytes, str]


def _to_bytes(value: Payload) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def compute_hmac(payload: Payload, secret: str, algorithm: str = "sha256") -> str:
    """Hex HMAC digest. Raises ValueError for unknown algorithms."""
    return hmac.new(secret.encode("utf-8"), _to_bytes(payload), algorithm).hexdigest()


def _digests_match(expected: str, provided: str) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def verify_hmac(
    payload: Payload,
    signature: Optional[str],
    secret: Optional[str],
    algorithm: str = "sha256",
) -> bool:
    """Verify a hex HMAC of the raw body, with or without an `<algorithm>=` prefix."""
    if not payload or not signature or not secret:
        return False
    try:
        expected = compute_hmac(payload, secret, algorithm)
    except ValueError:
        logger.warning("webhook.unknown_algorithm", algorithm=algorithm)
        return False

    prefix = f"{algorithm}="
    if signature.startswith(prefix):
        signature = signature[len(prefix):]
    return _digests_match(expected, signature)


def verify_github(payload: Payload, signature: Optional[str], secret: Optional[str]) -> bool:
    if not signature:
        return False
    return verify_hmac(payload, signature, secret, "sha256")


def verify_generic(
    payload: Payload,
    signature: Optional[str],
    secret: Optional[str],
    algorithm: str = "sha256",
) -> bool:
    return verify_hmac(payload, signature, secret, algorithm)


def parse_stripe_header(header: str) -> dict[str, list[str]]:
    """Split `t=1,v1=abc,v1=def` into {"t": ["1"], "v1": ["abc", "def"]}."""
    items: dict[str, list[str]] = {}
    for element in header.split(","):
        key, sep, value = element.strip().partition("=")
        if sep and key:
            items.setdefault(key, []).append(value)
    return items


def verify_stripe(
    payload: Payload,
    header: Optional[str],
    secret: Optional[str],
    now: Optional[float] = None,
) -> bool:
    """Verify a Stripe-Signature header, enforcing the 300 s replay window."""
    if not header or not secret:
        return False

    items = parse_stripe_header(header)
    timestamps = items.get("t")
    signatures = items.get("v1")
    if not timestamps or not signatures:
        return False

    timestamp = timestamps[0]
    try:
        signed_at = int(timestamp)
    except ValueError:
        return False

    current = int(time.time() if now is None else now)
    age = current - signed_at
    if age > STRIPE_TOLERANCE_SECONDS:
        logger.warning("webhook.stripe_timestamp_expired", age_seconds=age)
        return False

    signed_payload = f"{timestamp}.".encode("utf-8") + _to_bytes(payload)
    expected = compute_hmac(signed_payload, secret, "sha256")
    return any(_digests_match(expected, candidate) for candidate in signatures)


# ─── Signing (CLI + tests) ───────────────────────────────


def sign_hmac(payload: Payload, secret: str, algorithm: str = "sha256") -> str:
    """Produce a `<algorithm>=<hex>` signature header value."""
    return f"{algorithm}={compute_hmac(payload, secret, algorithm)}"


def sign_stripe(payload: Payload, secret: str, timestamp: Optional[int] = None) -> str:
    """Produce a `t=<unix>,v1=<hex>` Stripe-Signature header value."""
    if timestamp is None:
        timestamp = int(time.time())
    signed_payload = f"{timestamp}.".encode("utf-8") + _to_bytes(payload)
    return f"t={timestamp},v1={compute_hmac(signed_payload, secret, 'sha256')}"
