"""Webhook receiver API.

Learn: The receiver reads the raw body itself instead of declaring a
pydantic model: signatures are computed over the exact bytes the sender
posted, and re-serialised JSON would not match.

The body is streamed with a cap of the ingress's max_body_bytes, and a
declared Content-Length over the cap is refused before reading anything,
so an oversized upload is never held in memory in full.

No bearer auth here: senders authenticate with their signature.
Errors (400/401/413/500) are raised by WebhookIngress or read_capped_body
and rendered by the app-wide TaskhubError handler.
"""

import structlog
from fastapi import APIRouter, Depends, Request

from taskhub.errors import PayloadTooLargeError
from taskhub.webhooks.ingress import WebhookIngress

logger = structlog.get_logger()
router = APIRouter(prefix="/webhooks")


def get_webhook_ingress(request: Request) -> WebhookIngress:
    return request.app.state.webhook_ingress


async def read_capped_body(request: Request, limit: int) -> bytes:
    """Read the request body, raising PayloadTooLargeError past `limit` bytes."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        logger.warning("webhook.payload_too_large", declared=int(declared))
        raise PayloadTooLargeError("Payload too large")

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            logger.warning("webhook.payload_too_large", size=len(body))
            raise PayloadTooLargeError("Payload too large")
    return bytes(body)


@router.get("/health")
async def webhook_health(ingress: WebhookIngress = Depends(get_webhook_ingress)):
    """Liveness for webhook senders, plus the event types we handle."""
    return {"status": "ok", "registeredHandlers": ingress.registered_event_types()}


@router.post("/{source}")
async def receive_webhook(
    source: str,
    request: Request,
    ingress: WebhookIngress = Depends(get_webhook_ingress),
):
    """Receive a signed webhook from `source` (github, stripe, or any generic sender)."""
    body = await read_capped_body(request, ingress.max_body_bytes)
    client_ip = request.client.host if request.client else None
    result = await ingress.handle(source, body, request.headers, client_ip=client_ip)
    return result.to_response()
