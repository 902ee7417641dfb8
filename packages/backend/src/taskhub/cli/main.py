"""TaskHub CLI — run the server, mint dev tokens, poke webhooks.

Usage:
    taskhub serve --reload                         # Run the API + WebSocket server
    taskhub token 3f0c...                          # Dev access token for a user id
    taskhub webhook send github push -p '{"ref": "refs/heads/main"}' -s SECRET
    taskhub stats --token $TOKEN                   # Connected users / channels
    taskhub health                                 # Postgres / Redis / realtime status
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("TASKHUB_API_URL", DEFAULT_API_URL).rstrip("/")


def _client(token: Optional[str] = None) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the TaskHub backend."""
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0, headers=headers)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _fail(message: str):
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


def signature_headers(source: str, body: bytes, secret: str, event: str) -> dict[str, str]:
    """Headers a real sender from `source` would attach to `body`."""
    from taskhub.webhooks.signatures import sign_hmac, sign_stripe

    if source == "github":
        return {
            "X-Hub-Signature-256": sign_hmac(body, secret),
            "X-GitHub-Event": event,
        }
    if source == "stripe":
        return {"Stripe-Signature": sign_stripe(body, secret)}
    return {"X-Signature": sign_hmac(body, secret), "X-Event-Type": event}


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="taskhub", prog_name="taskhub")
def main():
    """TaskHub — projects, tasks and notes with realtime updates."""


@main.command()
@click.option("--host", default=None, help="Bind address (default: TASKHUB_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: TASKHUB_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API and WebSocket server with uvicorn."""
    import uvicorn

    from taskhub.config import settings

    uvicorn.run(
        "taskhub.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@main.command()
@click.argument("user_id")
@click.option("--minutes", type=int, default=None, help="Lifetime (default: TASKHUB_ACCESS_TOKEN_EXPIRE_MINUTES)")
def token(user_id: str, minutes: Optional[int]):
    """Print a dev access token for USER_ID, signed with TASKHUB_JWT_SECRET."""
    from taskhub.auth.jwt import create_access_token

    click.echo(create_access_token(user_id, expires_minutes=minutes))


# ---------------------------------------------------------------------------
# taskhub webhook ...
# ---------------------------------------------------------------------------


@main.group()
def webhook():
    """Send signed test webhooks."""


@webhook.command("send")
@click.argument("source")
@click.argument("event")
@click.option("--payload", "-p", default="{}", help="JSON body")
@click.option("--secret", "-s", envvar="WEBHOOK_SECRET", help="Signing secret (or WEBHOOK_SECRET)")
def webhook_send(source: str, event: str, payload: str, secret: Optional[str]):
    """Sign PAYLOAD the way SOURCE would and POST it to /webhooks/SOURCE.

    EVENT goes in the source's event header; for stripe it is written into
    the payload's `type` field instead.
    """
    try:
        body_obj = json.loads(payload)
    except ValueError:
        _fail("--payload is not valid JSON")
    if source == "stripe" and isinstance(body_obj, dict):
        body_obj.setdefault("type", event)
    body = json.dumps(body_obj).encode()

    headers = {"Content-Type": "application/json"}
    if secret:
        headers.update(signature_headers(source, body, secret, event))
    elif source != "stripe":
        headers["X-GitHub-Event" if source == "github" else "X-Event-Type"] = event

    _run(_webhook_send_impl(source, body, headers))


async def _webhook_send_impl(source: str, body: bytes, headers: dict):
    async with _client() as c:
        r = await c.post(f"/api/v1/webhooks/{source}", content=body, headers=headers)
    color = "green" if r.is_success else "red"
    click.secho(f"HTTP {r.status_code}", fg=color)
    click.echo(_pretty_json(r.json()))
    if not r.is_success:
        sys.exit(1)


# ---------------------------------------------------------------------------
# taskhub stats / health
# ---------------------------------------------------------------------------


@main.command()
@click.option("--token", "access_token", envvar="TASKHUB_TOKEN", required=True, help="Access token (or TASKHUB_TOKEN)")
def stats(access_token: str):
    """Show connected users and open channels."""
    _run(_stats_impl(access_token))


async def _stats_impl(access_token: str):
    async with _client(access_token) as c:
        r = await c.get("/api/v1/realtime/stats")
    if not r.is_success:
        _fail(f"HTTP {r.status_code}: {r.text}")
    data = r.json()
    click.secho("Realtime", bold=True)
    click.echo(f"  Connected users: {data['connectedUsers']}")
    click.echo(f"  Open channels:   {data['totalChannels']}")
    click.echo(f"  Rooms:           {data['rooms']}")


@main.command()
def health():
    """Show server and dependency health."""
    _run(_health_impl())


async def _health_impl():
    async with _client() as c:
        r = await c.get("/api/v1/health")
    data = r.json()
    color = "green" if data.get("status") == "healthy" else "yellow"
    click.secho(f"Status: {data.get('status')}", fg=color, bold=True)
    for key in ("server", "postgres", "redis"):
        value = data.get(key, "—")
        click.echo(f"  {key:<9} {click.style(str(value), fg='green' if value == 'ok' else 'red')}")


if __name__ == "__main__":
    main()
