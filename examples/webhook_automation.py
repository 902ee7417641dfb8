#!/usr/bin/env python3
"""
TaskHub Webhook Example.

Sends one signed delivery per supported source and prints the response.
The server must share the secrets:

    WEBHOOK_SECRET_GITHUB=gh-secret WEBHOOK_SECRET_STRIPE=whsec_demo \\
    WEBHOOK_SECRET=generic-secret taskhub serve

Run with: python examples/webhook_automation.py
"""

import json
import os

import httpx

from taskhub.webhooks.signatures import sign_hmac, sign_stripe

BASE = os.environ.get("TASKHUB_API_URL", "http://localhost:8000").rstrip("/") + "/api/v1"


def send(client: httpx.Client, source: str, payload: dict, sign) -> None:
    body = json.dumps(payload).encode()
    headers = {"Content-Type": "application/json", **sign(body)}
    resp = client.post(f"/webhooks/{source}", content=body, headers=headers)
    print(f"  {source:<7} HTTP {resp.status_code}  {resp.json()}")


def main():
    client = httpx.Client(base_url=BASE, timeout=10)

    print("Registered handlers:", client.get("/webhooks/health").json()["registeredHandlers"])
    print()

    send(
        client,
        "github",
        {"ref": "refs/heads/main", "commits": [{"id": "abc123"}]},
        lambda body: {
            "X-GitHub-Event": "push",
            "X-Hub-Signature-256": sign_hmac(body, "gh-secret"),
        },
    )
    send(
        client,
        "stripe",
        {"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_123", "amount": 4200}}},
        lambda body: {"Stripe-Signature": sign_stripe(body, "whsec_demo")},
    )
    send(
        client,
        "crm",
        {"event": "contact.created", "id": 7},
        lambda body: {"X-Signature": sign_hmac(body, "generic-secret")},
    )

    # Tampered body → 401
    print("\nTampered delivery:")
    good = json.dumps({"ref": "refs/heads/main"}).encode()
    resp = client.post(
        "/webhooks/github",
        content=b'{"ref": "refs/heads/evil"}',
        headers={"X-GitHub-Event": "push", "X-Hub-Signature-256": sign_hmac(good, "gh-secret")},
    )
    print(f"  github  HTTP {resp.status_code}  {resp.json()}")


if __name__ == "__main__":
    main()
