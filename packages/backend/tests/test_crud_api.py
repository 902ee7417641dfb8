"""Project, task and note routes against PostgreSQL.

Learn: These use db_client, which skips the test when Postgres isn't
reachable. Every write is rolled back at the end of the test.

Realtime side-effects are checked by registering a FakeTransport channel
in the app's own registry and joining it to the project room, the same
thing a browser tab does over /ws.
"""

import pytest

from taskhub.realtime.registry import Channel, project_room

from conftest import ALICE, BOB, CAROL, FakeTransport


def auth(user_id: str) -> dict:
    from taskhub.auth.jwt import create_access_token

    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def listen(app, user_id: str, project_id: str) -> FakeTransport:
    """Open an in-process channel for `user_id` in the project's room."""
    transport = FakeTransport()
    channel = Channel(transport)
    channel.authenticate(user_id)
    app.state.registry.register(user_id, channel)
    channel.activate()
    app.state.registry.join(channel, project_room(project_id))
    return transport


async def make_project(db_client, name="Roadmap") -> str:
    r = await db_client.post("/api/v1/projects", json={"name": name}, headers=auth(ALICE))
    assert r.status_code == 201, r.text
    return r.json()["id"]


async def add_member(db_client, project_id, user_id, role="member"):
    r = await db_client.post(
        f"/api/v1/projects/{project_id}/members",
        json={"user_id": user_id, "role": role},
        headers=auth(ALICE),
    )
    assert r.status_code == 201, r.text
    return r.json()


# ─── Projects ────────────────────────────────────────────


@pytest.mark.asyncio
async def test_creator_becomes_admin(db_client):
    project_id = await make_project(db_client)

    r = await db_client.get(f"/api/v1/projects/{project_id}/members", headers=auth(ALICE))
    assert r.status_code == 200
    members = r.json()
    assert [(m["user_id"], m["role"]) for m in members] == [(ALICE, "admin")]


@pytest.mark.asyncio
async def test_duplicate_project_name_rejected(db_client):
    await make_project(db_client, name="Dup")
    r = await db_client.post("/api/v1/projects", json={"name": "Dup"}, headers=auth(ALICE))
    assert r.status_code == 400
    assert r.json() == {"success": False, "message": "Project with this name already exists"}


@pytest.mark.asyncio
async def test_list_projects_only_shows_memberships(db_client):
    project_id = await make_project(db_client)

    r = await db_client.get("/api/v1/projects", headers=auth(ALICE))
    assert [p["id"] for p in r.json()] == [project_id]

    r = await db_client.get("/api/v1/projects", headers=auth(BOB))
    assert r.json() == []


@pytest.mark.asyncio
async def test_non_member_gets_404(db_client):
    project_id = await make_project(db_client)
    r = await db_client.get(f"/api/v1/projects/{project_id}", headers=auth(BOB))
    assert r.status_code == 404
    assert r.json()["message"] == "Project not found"


@pytest.mark.asyncio
async def test_unknown_user_token_rejected(db_client):
    r = await db_client.get(
        "/api/v1/projects", headers=auth("99999999-9999-9999-9999-999999999999")
    )
    assert r.status_code == 401
    assert r.json()["message"] == "User not found"


@pytest.mark.asyncio
async def test_add_unknown_member_is_404(db_client):
    project_id = await make_project(db_client)
    r = await db_client.post(
        f"/api/v1/projects/{project_id}/members",
        json={"user_id": "99999999-9999-9999-9999-999999999999"},
        headers=auth(ALICE),
    )
    assert r.status_code == 404
    assert r.json()["message"] == "User not found"


@pytest.mark.asyncio
async def test_update_project_notifies_room(db_client, db_app):
    project_id = await make_project(db_client)
    await add_member(db_client, project_id, BOB)
    bob = listen(db_app, BOB, project_id)
    alice = listen(db_app, ALICE, project_id)

    r = await db_client.patch(
        f"/api/v1/projects/{project_id}", json={"description": "Q3"}, headers=auth(ALICE)
    )
    assert r.status_code == 200
    assert r.json()["description"] == "Q3"
    assert bob.events() == ["project:updated"]
    assert alice.sent == []


# ─── Tasks ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_task_lifecycle_and_notifications(db_client, db_app):
    project_id = await make_project(db_client)
    await add_member(db_client, project_id, BOB)
    bob = listen(db_app, BOB, project_id)
    base = f"/api/v1/projects/{project_id}/tasks"

    r = await db_client.post(base, json={"title": "Ship it", "assigned_to": BOB}, headers=auth(ALICE))
    assert r.status_code == 201, r.text
    task = r.json()
    assert task["status"] == "todo"
    assert task["assigned_by"] == ALICE

    created = bob.last()
    assert created["event"] == "task:created"
    assert created["data"]["task"]["id"] == task["id"]
    assert created["data"]["createdBy"] == ALICE

    r = await db_client.patch(f"{base}/{task['id']}", json={"status": "done"}, headers=auth(ALICE))
    assert r.status_code == 200
    assert r.json()["status"] == "done"
    assert r.json()["title"] == "Ship it"
    assert bob.last()["event"] == "task:updated"

    r = await db_client.get(base, params={"status": "done"}, headers=auth(BOB))
    assert [t["id"] for t in r.json()] == [task["id"]]
    r = await db_client.get(base, params={"status": "todo"}, headers=auth(BOB))
    assert r.json() == []

    r = await db_client.delete(f"{base}/{task['id']}", headers=auth(ALICE))
    assert r.json() == {"deleted": True}
    assert bob.last()["event"] == "task:deleted"
    assert bob.last()["data"]["taskId"] == task["id"]

    r = await db_client.get(f"{base}/{task['id']}", headers=auth(BOB))
    assert r.status_code == 404
    assert r.json()["message"] == "Task not found"


@pytest.mark.asyncio
async def test_member_cannot_write_tasks(db_client):
    project_id = await make_project(db_client)
    await add_member(db_client, project_id, BOB)

    r = await db_client.post(
        f"/api/v1/projects/{project_id}/tasks", json={"title": "Nope"}, headers=auth(BOB)
    )
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_project_admin_can_write_tasks(db_client):
    project_id = await make_project(db_client)
    await add_member(db_client, project_id, CAROL, role="project_admin")

    r = await db_client.post(
        f"/api/v1/projects/{project_id}/tasks", json={"title": "Mine"}, headers=auth(CAROL)
    )
    assert r.status_code == 201


@pytest.mark.asyncio
async def test_invalid_task_status_rejected(db_client):
    project_id = await make_project(db_client)
    r = await db_client.post(
        f"/api/v1/projects/{project_id}/tasks",
        json={"title": "Bad", "status": "blocked"},
        headers=auth(ALICE),
    )
    assert r.status_code == 422


# ─── Notes ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_note_lifecycle(db_client, db_app):
    project_id = await make_project(db_client)
    await add_member(db_client, project_id, BOB)
    bob = listen(db_app, BOB, project_id)
    base = f"/api/v1/projects/{project_id}/notes"

    r = await db_client.post(base, json={"content": "Kickoff Monday"}, headers=auth(ALICE))
    assert r.status_code == 201, r.text
    note = r.json()

    r = await db_client.patch(
        f"{base}/{note['id']}", json={"content": "Kickoff Tuesday"}, headers=auth(ALICE)
    )
    assert r.json()["content"] == "Kickoff Tuesday"

    r = await db_client.get(base, headers=auth(BOB))
    assert [n["content"] for n in r.json()] == ["Kickoff Tuesday"]

    r = await db_client.post(base, json={"content": "mine"}, headers=auth(BOB))
    assert r.status_code == 403

    r = await db_client.delete(f"{base}/{note['id']}", headers=auth(ALICE))
    assert r.status_code == 200

    assert bob.events() == ["note:created", "note:updated", "note:deleted"]
