"""Built-in webhook handlers.

Learn: Handlers return a small summary dict — it is logged by the ingress
and handy in tests, but never echoed to the sender. Only `task.created`
touches the realtime layer: when the payload names a project, the task is
relayed to `project:<id>` through the notifier.
"""

from typing import Any

import structlog

from taskhub.realtime.dispatcher import utc_timestamp
from taskhub.realtime.notifier import RealtimeNotifier
from taskhub.webhooks.processor import WebhookProcessor

logger = structlog.get_logger()


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


# ─── GitHub ──────────────────────────────────────────────


def handle_push(payload: dict, metadata) -> dict:
    payload = _dict(payload)
    ref = payload.get("ref", "")
    commits = payload.get("commits") or []
    logger.info("webhook.github_push", ref=ref, commits=len(commits))
    return {"action": f"push to {ref}: {len(commits)} commit(s)"}


def handle_pull_request(payload: dict, metadata) -> dict:
    payload = _dict(payload)
    action = payload.get("action", "unknown")
    pr = _dict(payload.get("pull_request"))
    logger.info("webhook.github_pull_request", action=action, number=pr.get("number"))
    return {"action": f"PR {action}: {pr.get('title', 'untitled')}"}


# ─── Stripe ──────────────────────────────────────────────


def handle_payment_succeeded(payload: dict, metadata) -> dict:
    intent = _dict(_dict(_dict(payload).get("data")).get("object"))
    logger.info(
        "webhook.stripe_payment_succeeded",
        payment_intent=intent.get("id"),
        amount=intent.get("amount"),
        currency=intent.get("currency"),
    )
    return {"paymentIntent": intent.get("id")}


def handle_subscription_deleted(payload: dict, metadata) -> dict:
    subscription = _dict(_dict(_dict(payload).get("data")).get("object"))
    logger.info(
        "webhook.stripe_subscription_deleted",
        subscription=subscription.get("id"),
        customer=subscription.get("customer"),
    )
    return {"subscription": subscription.get("id")}


# ─── Registration ────────────────────────────────────────


def register_default_handlers(processor: WebhookProcessor, notifier: RealtimeNotifier) -> None:
    async def handle_task_created(payload: dict, metadata) -> dict:
        payload = _dict(payload)
        project_id = payload.get("projectId")
        task = payload.get("task")
        if not project_id or task is None:
            return {"relayed": 0}
        delivered = await notifier.project_event(
            project_id,
            "task:created",
            {
                "projectId": project_id,
                "task": task,
                "source": getattr(metadata, "source", None),
                "timestamp": utc_timestamp(),
            },
        )
        return {"relayed": delivered}

    processor.register_handlers(
        {
            "push": handle_push,
            "pull_request": handle_pull_request,
            "payment_intent.succeeded": handle_payment_succeeded,
            "customer.subscription.deleted": handle_subscription_deleted,
            "task.created": handle_task_created,
        }
    )
