#!/usr/bin/env python3
"""
TaskHub Quickstart — project → task → note lifecycle in one script.

Open a WebSocket as a second project member while this runs to watch
task:created / task:updated / note:created arrive in real time.

Run with: TASKHUB_TOKEN=... python examples/quickstart.py
"""

import uuid

from _common import create_client


def main():
    run_id = uuid.uuid4().hex[:6]
    client = create_client()

    # ── Create project (caller becomes admin) ─────────────────────
    print("\n1. Creating project...")
    resp = client.post("/projects", json={"name": f"Demo {run_id}", "description": "Quickstart"})
    assert resp.status_code == 201, f"Failed: {resp.text}"
    project = resp.json()
    pid = project["id"]
    print(f"   Project: {project['name']} ({pid[:8]}...)")

    # ── Create task ───────────────────────────────────────────────
    print("\n2. Creating task...")
    resp = client.post(f"/projects/{pid}/tasks", json={"title": "Write the README"})
    assert resp.status_code == 201, f"Failed: {resp.text}"
    task = resp.json()
    print(f"   Task: {task['title']} [{task['status']}]")

    # ── Move it along ─────────────────────────────────────────────
    print("\n3. Updating task status...")
    for status in ("in_progress", "done"):
        resp = client.patch(f"/projects/{pid}/tasks/{task['id']}", json={"status": status})
        assert resp.status_code == 200, f"Failed: {resp.text}"
        print(f"   → {resp.json()['status']}")

    # ── Leave a note ──────────────────────────────────────────────
    print("\n4. Adding a note...")
    resp = client.post(f"/projects/{pid}/notes", json={"content": "Shipped in the first sprint."})
    assert resp.status_code == 201, f"Failed: {resp.text}"
    print(f"   Note: {resp.json()['content']}")

    # ── Who is connected? ─────────────────────────────────────────
    stats = client.get("/realtime/stats").json()
    print(f"\nRealtime: {stats['connectedUsers']} user(s), {stats['totalChannels']} channel(s)")


if __name__ == "__main__":
    main()
