"""
Shared helpers for TaskHub examples.

Token issuance lives outside TaskHub, so examples expect an access token in
TASKHUB_TOKEN. For a local server, mint one with:

    taskhub token <user-uuid>

The user id must exist in the `users` table.

"""

import os
import sys

import httpx

BASE = os.environ.get("TASKHUB_API_URL", "http://localhost:8000").rstrip("/") + "/api/v1"


def check_backend() -> None:
    """Verify the backend is reachable and healthy."""
    try:
        resp = httpx.get(f"{BASE}/health", timeout=5)
    except httpx.ConnectError:
        print(f"ERROR: Backend not reachable at {BASE}")
        print("Start it with:  taskhub serve --reload")
        sys.exit(1)

    health = resp.json()
    print("Backend health:")
    print(f"  Postgres: {'✓' if health.get('postgres') == 'ok' else '✗'}")
    print(f"  Redis:    {'✓' if health.get('redis') == 'ok' else '✗'}")

    if health.get("postgres") != "ok":
        print("\nERROR: Postgres is not connected.")
        sys.exit(1)


def create_client() -> httpx.Client:
    """Check backend and return an httpx Client with auth headers."""
    check_backend()
    token = os.environ.get("TASKHUB_TOKEN")
    if not token:
        print("ERROR: set TASKHUB_TOKEN (try: taskhub token <user-uuid>)")
        sys.exit(1)
    return httpx.Client(
        base_url=BASE,
        timeout=10,
        headers={"Authorization": f"Bearer {token}"},
    )
