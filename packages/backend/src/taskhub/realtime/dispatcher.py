"""Event dispatcher — inbound realtime frames → handlers → room fan-out.

Learn: Clients send JSON frames shaped `{"event": "...", "data": {...}}`.
Each event name maps to one handler method. Handlers raise ValidationError
or AuthorizationError for bad input; the dispatch boundary turns those
into an `error` frame back to the sender. A bad frame never closes the
connection.

Entity-changed events (task/project/note) are re-checked against the
membership oracle on every message, not just at join time: membership can
be revoked while a socket stays open. Typing indicators skip the check —
they are ephemeral and carry no data.
"""

import json
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, NamedTuple, Optional

import structlog

from taskhub.errors import AuthorizationError, TaskhubError, ValidationError
from taskhub.realtime.registry import Channel, ConnectionRegistry, project_room
from taskhub.services.membership import MembershipOracle

logger = structlog.get_logger()


class DispatchOutcome(str, Enum):
    HANDLED = "handled"
    UNHANDLED = "unhandled"  # no handler for this event name
    REJECTED = "rejected"    # validation/permission failure, or channel not active
    FAILED = "failed"        # handler raised unexpectedly


class EntityEvent(NamedTuple):
    """How to validate and mirror one entity-changed event."""

    entity: str     # "task", "project", "note", used in error messages
    field: str      # payload key that must be present
    actor_key: str  # key the sender's user id is stored under


ENTITY_EVENTS: dict[str, EntityEvent] = {
    "task:created": EntityEvent("task", "task", "createdBy"),
    "task:updated": EntityEvent("task", "task", "updatedBy"),
    "task:deleted": EntityEvent("task", "taskId", "deletedBy"),
    "project:updated": EntityEvent("project", "project", "updatedBy"),
    "note:created": EntityEvent("note", "note", "createdBy"),
}

Handler = Callable[[Channel, str, dict], Awaitable[None]]


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_frame(text: str) -> tuple[str, dict]:
    """Decode one client frame into (event, data)."""
    try:
        message = json.loads(text)
    except (TypeError, ValueError):
        raise ValidationError("Invalid message format")
    if not isinstance(message, dict):
        raise ValidationError("Invalid message format")

    event = message.get("event")
    if not isinstance(event, str) or not event:
        raise ValidationError("Invalid message format")

    data = message.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid message format")
    return event, data


class EventDispatcher:
    """Routes inbound frames for ACTIVE channels to their handlers."""

    def __init__(self, registry: ConnectionRegistry, oracle: MembershipOracle):
        self.registry = registry
        self.oracle = oracle
        self._handlers: dict[str, Handler] = {
            "join:project": self.handle_join_project,
            "leave:project": self.handle_leave_project,
            "project:created": self.handle_project_created,
            "typing:start": self.handle_typing,
            "typing:stop": self.handle_typing,
            "ping": self.handle_ping,
        }
        for event in ENTITY_EVENTS:
            self._handlers[event] = self.handle_entity_changed

    @property
    def events(self) -> list[str]:
        return sorted(self._handlers)

    # ─── Entry points ────────────────────────────────────

    async def dispatch_text(self, channel: Channel, text: str) -> DispatchOutcome:
        """Parse a raw frame and dispatch it."""
        try:
            event, data = parse_frame(text)
        except ValidationError as e:
            await self._send_error(channel, e.message)
            return DispatchOutcome.REJECTED
        return await self.dispatch(channel, event, data)

    async def dispatch(
        self, channel: Channel, event: str, data: Optional[dict] = None
    ) -> DispatchOutcome:
        if not channel.is_active:
            logger.debug(
                "realtime.message_dropped",
                channel_id=channel.channel_id,
                event=event,
                state=channel.state.value,
            )
            return DispatchOutcome.REJECTED

        handler = self._handlers.get(event)
        if handler is None:
            logger.info(
                "realtime.unhandled_event",
                channel_id=channel.channel_id,
                user_id=channel.user_id,
                event=event,
            )
            return DispatchOutcome.UNHANDLED

        log = logger.bind(
            channel_id=channel.channel_id, user_id=channel.user_id, event=event
        )
        try:
            await handler(channel, event, data or {})
        except TaskhubError as e:
            log.info("realtime.message_rejected", reason=e.message)
            await self._send_error(channel, e.message)
            return DispatchOutcome.REJECTED
        except Exception:
            log.exception("realtime.handler_failed")
            await self._send_error(channel, f"Failed to process {event}")
            return DispatchOutcome.FAILED
        return DispatchOutcome.HANDLED

    # ─── Rooms ───────────────────────────────────────────

    async def handle_join_project(self, channel: Channel, event: str, data: dict) -> None:
        project_id = _project_id(_require(data, "projectId", "Project ID is required"))

        if not await self.oracle.is_member(channel.user_id, project_id):
            raise AuthorizationError("You do not have access to this project")

        room = project_room(project_id)
        self.registry.join(channel, room)
        logger.info(
            "realtime.joined_project",
            channel_id=channel.channel_id,
            user_id=channel.user_id,
            project_id=project_id,
        )

        await self.registry.send_to_channel(
            channel,
            "joined:project",
            {"projectId": project_id, "message": "Successfully joined project room"},
        )
        await self.registry.send_to_room(
            room,
            "user:joined",
            {"userId": channel.user_id, "projectId": project_id, "timestamp": utc_timestamp()},
            exclude_user_id=channel.user_id,
        )

    async def handle_leave_project(self, channel: Channel, event: str, data: dict) -> None:
        # Leaving only narrows access, so no membership check.
        project_id = _project_id(_require(data, "projectId", "Project ID is required"))
        room = project_room(project_id)
        self.registry.leave(channel, room)
        logger.info(
            "realtime.left_project",
            channel_id=channel.channel_id,
            user_id=channel.user_id,
            project_id=project_id,
        )

        await self.registry.send_to_channel(channel, "left:project", {"projectId": project_id})
        await self.registry.send_to_room(
            room,
            "user:left",
            {"userId": channel.user_id, "projectId": project_id, "timestamp": utc_timestamp()},
            exclude_user_id=channel.user_id,
        )

    # ─── Entity changes ──────────────────────────────────

    async def handle_entity_changed(self, channel: Channel, event: str, data: dict) -> None:
        spec = ENTITY_EVENTS[event]
        project_id = data.get("projectId")
        value = data.get(spec.field)
        if not project_id or value is None or value == "":
            raise ValidationError(f"Invalid {spec.entity} data")
        project_id = _project_id(project_id)

        if not await self.oracle.is_member(channel.user_id, project_id):
            raise AuthorizationError("Access denied")

        delivered = await self.registry.send_to_room(
            project_room(project_id),
            event,
            {
                "projectId": project_id,
                spec.field: value,
                spec.actor_key: channel.user_id,
                "timestamp": utc_timestamp(),
            },
            exclude_user_id=channel.user_id,
        )
        logger.debug(
            "realtime.entity_broadcast",
            user_id=channel.user_id,
            project_id=project_id,
            event=event,
            delivered=delivered,
        )

    async def handle_project_created(self, channel: Channel, event: str, data: dict) -> None:
        # A brand-new project has no room yet; echo to the creator's own channels.
        project = data.get("project")
        if not project:
            raise ValidationError("Invalid project data")
        await self.registry.send_to_user(
            channel.user_id,
            "project:created",
            {"project": project, "timestamp": utc_timestamp()},
        )

    # ─── Presence / liveness ─────────────────────────────

    async def handle_typing(self, channel: Channel, event: str, data: dict) -> None:
        project_id = _project_id(_require(data, "projectId", "Project ID is required"))
        await self.registry.send_to_room(
            project_room(project_id),
            event,
            {"userId": channel.user_id, "projectId": project_id, "timestamp": utc_timestamp()},
            exclude_user_id=channel.user_id,
        )

    async def handle_ping(self, channel: Channel, event: str, data: dict) -> None:
        await self.registry.send_to_channel(
            channel, "pong", {"timestamp": int(time.time() * 1000)}
        )

    # ─── Helpers ─────────────────────────────────────────

    async def _send_error(self, channel: Channel, message: str) -> None:
        await self.registry.send_to_channel(channel, "error", {"message": message})


def _project_id(value: Any) -> str:
    """Canonical lower-case hyphenated form, the same key CRUD notifications use."""
    try:
        return str(uuid.UUID(str(value)))
    except ValueError:
        raise ValidationError("Invalid project ID")


def _require(data: dict, key: str, message: str) -> Any:
    value = data.get(key)
    if value is None or value == "":
        raise ValidationError(message)
    return value
