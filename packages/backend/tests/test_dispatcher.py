"""EventDispatcher — inbound frame routing, membership gating, fan-out."""

import json
import uuid

import pytest

from taskhub.realtime.dispatcher import (
    ENTITY_EVENTS,
    DispatchOutcome,
    EventDispatcher,
    parse_frame,
)
from taskhub.realtime.registry import Channel, project_room

from conftest import ALICE, BOB, CAROL, PROJECT, FakeTransport

ROOM = project_room(PROJECT)


@pytest.fixture()
def dispatcher(registry, oracle):
    return EventDispatcher(registry, oracle)


@pytest.fixture()
def members(registry, oracle, make_channel):
    """Alice and Bob are project members already in the room; Carol is not a member."""
    oracle.grant(ALICE, PROJECT)
    oracle.grant(BOB, PROJECT)
    alice, bob, carol = make_channel(ALICE), make_channel(BOB), make_channel(CAROL)
    registry.join(alice, ROOM)
    registry.join(bob, ROOM)
    return alice, bob, carol


# ─── Framing ─────────────────────────────────────────────


def test_parse_frame():
    assert parse_frame('{"event": "ping"}') == ("ping", {})
    assert parse_frame('{"event": "x", "data": {"a": 1}}') == ("x", {"a": 1})


@pytest.mark.parametrize(
    "text",
    ["not json", "[1, 2]", '{"data": {}}', '{"event": ""}', '{"event": "x", "data": [1]}'],
)
def test_parse_frame_rejects(text):
    from taskhub.errors import ValidationError

    with pytest.raises(ValidationError):
        parse_frame(text)


@pytest.mark.asyncio
async def test_malformed_frame_sends_error_and_keeps_channel(dispatcher, make_channel):
    channel = make_channel(ALICE)
    outcome = await dispatcher.dispatch_text(channel, "{{{")
    assert outcome is DispatchOutcome.REJECTED
    assert channel.transport.last() == {"event": "error", "data": {"message": "Invalid message format"}}
    assert channel.is_active


@pytest.mark.asyncio
async def test_unknown_event_is_unhandled_and_silent(dispatcher, make_channel):
    channel = make_channel(ALICE)
    outcome = await dispatcher.dispatch(channel, "does:not:exist", {})
    assert outcome is DispatchOutcome.UNHANDLED
    assert channel.transport.sent == []


@pytest.mark.asyncio
async def test_inactive_channel_is_dropped(dispatcher, oracle):
    channel = Channel(FakeTransport())
    channel.authenticate(ALICE)  # authenticated, never activated
    outcome = await dispatcher.dispatch(channel, "ping", {})
    assert outcome is DispatchOutcome.REJECTED
    assert channel.transport.sent == []


# ─── join / leave ────────────────────────────────────────


@pytest.mark.asyncio
async def test_join_project_success(dispatcher, registry, oracle, make_channel):
    oracle.grant(ALICE, PROJECT)
    oracle.grant(BOB, PROJECT)
    bob = make_channel(BOB)
    registry.join(bob, ROOM)
    alice = make_channel(ALICE)

    outcome = await dispatcher.dispatch(alice, "join:project", {"projectId": PROJECT})

    assert outcome is DispatchOutcome.HANDLED
    assert ROOM in alice.rooms
    assert alice.transport.sent == [
        {
            "event": "joined:project",
            "data": {"projectId": PROJECT, "message": "Successfully joined project room"},
        }
    ]
    joined = bob.transport.last()
    assert joined["event"] == "user:joined"
    assert joined["data"]["userId"] == ALICE
    assert joined["data"]["projectId"] == PROJECT


@pytest.mark.asyncio
async def test_join_project_denied(dispatcher, registry, make_channel):
    carol = make_channel(CAROL)
    outcome = await dispatcher.dispatch(carol, "join:project", {"projectId": PROJECT})
    assert outcome is DispatchOutcome.REJECTED
    assert ROOM not in carol.rooms
    assert registry.room_members(ROOM) == []
    assert carol.transport.last() == {
        "event": "error",
        "data": {"message": "You do not have access to this project"},
    }


@pytest.mark.asyncio
async def test_join_project_requires_project_id(dispatcher, oracle, make_channel):
    alice = make_channel(ALICE)
    await dispatcher.dispatch(alice, "join:project", {})
    assert alice.transport.last()["data"]["message"] == "Project ID is required"
    assert oracle.calls == 0


@pytest.mark.asyncio
async def test_leave_project_needs_no_membership(dispatcher, registry, oracle, members):
    alice, bob, _ = members
    oracle.revoke(ALICE, PROJECT)

    outcome = await dispatcher.dispatch(alice, "leave:project", {"projectId": PROJECT})

    assert outcome is DispatchOutcome.HANDLED
    assert ROOM not in alice.rooms
    assert alice.transport.last() == {"event": "left:project", "data": {"projectId": PROJECT}}
    assert bob.transport.last()["event"] == "user:left"
    assert oracle.calls == 0


# ─── Entity changes ──────────────────────────────────────


@pytest.mark.asyncio
@pytest.mark.parametrize("event", sorted(ENTITY_EVENTS))
async def test_entity_change_fans_out_without_echo(dispatcher, members, event):
    alice, bob, carol = members
    spec = ENTITY_EVENTS[event]
    value = "t-1" if spec.field == "taskId" else {"id": "x", "title": "hello"}

    outcome = await dispatcher.dispatch(alice, event, {"projectId": PROJECT, spec.field: value})

    assert outcome is DispatchOutcome.HANDLED
    frame = bob.transport.last()
    assert frame["event"] == event
    assert frame["data"]["projectId"] == PROJECT
    assert frame["data"][spec.field] == value
    assert frame["data"][spec.actor_key] == ALICE
    assert "timestamp" in frame["data"]
    assert alice.transport.sent == []
    assert carol.transport.sent == []


@pytest.mark.asyncio
async def test_entity_change_rechecks_membership(dispatcher, oracle, members):
    alice, bob, _ = members
    oracle.revoke(ALICE, PROJECT)  # revoked after joining

    outcome = await dispatcher.dispatch(alice, "task:updated", {"projectId": PROJECT, "task": {"id": 1}})

    assert outcome is DispatchOutcome.REJECTED
    assert alice.transport.last() == {"event": "error", "data": {"message": "Access denied"}}
    assert bob.transport.sent == []


@pytest.mark.asyncio
async def test_entity_change_missing_fields(dispatcher, oracle, members):
    alice, bob, _ = members
    await dispatcher.dispatch(alice, "task:deleted", {"projectId": PROJECT})
    assert alice.transport.last()["data"]["message"] == "Invalid task data"
    await dispatcher.dispatch(alice, "note:created", {"note": {"content": "x"}})
    assert alice.transport.last()["data"]["message"] == "Invalid note data"
    assert bob.transport.sent == []
    assert oracle.calls == 0


@pytest.mark.asyncio
async def test_project_created_echoes_to_own_channels(dispatcher, make_channel):
    first, second = make_channel(ALICE), make_channel(ALICE)
    other = make_channel(BOB)

    await dispatcher.dispatch(first, "project:created", {"project": {"name": "New"}})

    for channel in (first, second):
        frame = channel.transport.last()
        assert frame["event"] == "project:created"
        assert frame["data"]["project"] == {"name": "New"}
    assert other.transport.sent == []


# ─── Typing / ping ───────────────────────────────────────


@pytest.mark.asyncio
async def test_typing_relayed_without_membership_check(dispatcher, oracle, members):
    alice, bob, _ = members
    calls_before = oracle.calls
    await dispatcher.dispatch(alice, "typing:start", {"projectId": PROJECT})
    await dispatcher.dispatch(alice, "typing:stop", {"projectId": PROJECT})

    assert bob.transport.events() == ["typing:start", "typing:stop"]
    assert bob.transport.last()["data"]["userId"] == ALICE
    assert alice.transport.sent == []
    assert oracle.calls == calls_before


@pytest.mark.asyncio
async def test_ping_pong(dispatcher, make_channel):
    channel = make_channel(ALICE)
    await dispatcher.dispatch_text(channel, json.dumps({"event": "ping"}))
    frame = channel.transport.last()
    assert frame["event"] == "pong"
    assert isinstance(frame["data"]["timestamp"], int)


# ─── Failure isolation ───────────────────────────────────


@pytest.mark.asyncio
async def test_handler_crash_reports_generic_error(registry, make_channel):
    class BrokenOracle:
        async def is_member(self, user_id, project_id):
            raise ConnectionError("db down")

        async def role_of(self, user_id, project_id):
            raise ConnectionError("db down")

    dispatcher = EventDispatcher(registry, BrokenOracle())
    channel = make_channel(ALICE)
    outcome = await dispatcher.dispatch(channel, "join:project", {"projectId": PROJECT})

    assert outcome is DispatchOutcome.FAILED
    assert channel.transport.last() == {
        "event": "error",
        "data": {"message": "Failed to process join:project"},
    }
    assert channel.is_active


def test_event_table(dispatcher):
    assert set(ENTITY_EVENTS) <= set(dispatcher.events)
    assert {"join:project", "leave:project", "typing:start", "typing:stop", "ping"} <= set(
        dispatcher.events
    )


# ─── Project id canonicalisation ─────────────────────────


@pytest.mark.asyncio
async def test_join_with_upper_case_id_still_receives_crud_notifications(
    dispatcher, registry, oracle, make_channel
):
    from taskhub.realtime.notifier import RealtimeNotifier

    oracle.grant(BOB, PROJECT)
    bob = make_channel(BOB)

    outcome = await dispatcher.dispatch(bob, "join:project", {"projectId": PROJECT.upper()})
    assert outcome is DispatchOutcome.HANDLED
    assert ROOM in bob.rooms
    assert bob.transport.last()["data"]["projectId"] == PROJECT

    delivered = await RealtimeNotifier(registry).project_event(
        uuid.UUID(PROJECT), "task:created", {"projectId": PROJECT}
    )
    assert delivered == 1
    assert bob.transport.last()["event"] == "task:created"


@pytest.mark.asyncio
async def test_entity_event_with_hyphenless_id_reaches_room(dispatcher, members):
    alice, bob, carol = members
    outcome = await dispatcher.dispatch(
        alice, "task:deleted", {"projectId": uuid.UUID(PROJECT).hex, "taskId": "t1"}
    )
    assert outcome is DispatchOutcome.HANDLED
    assert bob.transport.last()["data"]["projectId"] == PROJECT


@pytest.mark.asyncio
async def test_malformed_project_id_rejected(dispatcher, make_channel):
    channel = make_channel(ALICE)
    outcome = await dispatcher.dispatch(channel, "join:project", {"projectId": "not-a-uuid"})
    assert outcome is DispatchOutcome.REJECTED
    assert channel.transport.last() == {"event": "error", "data": {"message": "Invalid project ID"}}
    assert channel.rooms == {"user:" + ALICE}
