"""Connection registry — live channels per user and per room.

Learn: One Channel per WebSocket. The registry keeps three maps:
- channel_id → Channel
- user_id → set of channel_ids (one user, many tabs/devices)
- room → set of channel_ids

All mutation happens synchronously on the event loop (no awaits inside
register/unregister/join/leave), so concurrent connects and disconnects
can't interleave halfway through an update. Fan-out snapshots its targets
before the first await, and one failing socket never stops delivery to
the rest of the room.
"""

import asyncio
import json
import uuid
from enum import Enum
from typing import Any, Iterable, Optional

import structlog

logger = structlog.get_logger()


def project_room(project_id: Any) -> str:
    return f"project:{project_id}"


def user_room(user_id: Any) -> str:
    return f"user:{user_id}"


class ChannelState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    ACTIVE = "active"
    CLOSED = "closed"


class ChannelClosedError(Exception):
    """Raised when sending on a channel that has already closed."""


class Channel:
    """One live WebSocket connection, bound to one user for its lifetime.

    `transport` is anything with async `send_text(str)` and
    `close(code, reason)` — a Starlette WebSocket in production.
    """

    def __init__(self, transport, channel_id: Optional[str] = None):
        self.transport = transport
        self.channel_id = channel_id or uuid.uuid4().hex
        self.user_id: Optional[str] = None
        self.state = ChannelState.CONNECTING
        self.rooms: set[str] = set()

    def __repr__(self) -> str:
        return (
            f"<Channel {self.channel_id} user={self.user_id} "
            f"state={self.state.value}>"
        )

    @property
    def is_active(self) -> bool:
        return self.state is ChannelState.ACTIVE

    @property
    def is_closed(self) -> bool:
        return self.state is ChannelState.CLOSED

    def authenticate(self, user_id: str) -> None:
        if self.state is not ChannelState.CONNECTING:
            raise RuntimeError(f"cannot authenticate channel in state {self.state.value}")
        self.user_id = user_id
        self.state = ChannelState.AUTHENTICATED

    def activate(self) -> None:
        if self.state is not ChannelState.AUTHENTICATED:
            raise RuntimeError(f"cannot activate channel in state {self.state.value}")
        self.state = ChannelState.ACTIVE

    def mark_closed(self) -> None:
        self.state = ChannelState.CLOSED

    async def send(self, event: str, data: Any) -> None:
        if self.is_closed:
            raise ChannelClosedError(self.channel_id)
        frame = json.dumps({"event": event, "data": data}, default=str)
        await self.transport.send_text(frame)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.is_closed:
            return
        self.mark_closed()
        await self.transport.close(code=code, reason=reason)


class ConnectionRegistry:
    """Tracks live channels and fans events out to users, rooms, or everyone."""

    def __init__(self):
        self._channels: dict[str, Channel] = {}
        self._user_channels: dict[str, set[str]] = {}
        self._rooms: dict[str, set[str]] = {}

    # ─── Registration ────────────────────────────────────

    def register(self, user_id: str, channel: Channel) -> None:
        """Add a channel under a user. Registering the same channel twice is a no-op."""
        if channel.channel_id in self._channels:
            return
        if channel.user_id is None:
            channel.user_id = user_id

        self._channels[channel.channel_id] = channel
        self._user_channels.setdefault(user_id, set()).add(channel.channel_id)
        self.join(channel, user_room(user_id))

        logger.info(
            "realtime.channel_registered",
            channel_id=channel.channel_id,
            user_id=user_id,
            total_channels=len(self._channels),
        )

    def unregister(self, channel: Channel) -> bool:
        """Remove a channel from the registry and every room it joined.

        Returns False (and does nothing) for channels that were never registered.
        """
        existing = self._channels.pop(channel.channel_id, None)
        if existing is None:
            return False

        for room in list(existing.rooms):
            self._discard_from_room(room, existing.channel_id)
        existing.rooms.clear()

        user_id = existing.user_id
        user_channels = self._user_channels.get(user_id)
        if user_channels is not None:
            user_channels.discard(existing.channel_id)
            if not user_channels:
                del self._user_channels[user_id]

        logger.info(
            "realtime.channel_unregistered",
            channel_id=existing.channel_id,
            user_id=user_id,
            total_channels=len(self._channels),
        )
        return True

    # ─── Rooms ───────────────────────────────────────────

    def join(self, channel: Channel, room: str) -> bool:
        if channel.channel_id not in self._channels:
            return False
        self._rooms.setdefault(room, set()).add(channel.channel_id)
        channel.rooms.add(room)
        return True

    def leave(self, channel: Channel, room: str) -> bool:
        if room not in channel.rooms:
            return False
        channel.rooms.discard(room)
        self._discard_from_room(room, channel.channel_id)
        return True

    def _discard_from_room(self, room: str, channel_id: str) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(channel_id)
        if not members:
            del self._rooms[room]

    def room_members(self, room: str) -> list[Channel]:
        return [self._channels[cid] for cid in self._rooms.get(room, ())]

    def channels_for_user(self, user_id: str) -> list[Channel]:
        return [self._channels[cid] for cid in self._user_channels.get(user_id, ())]

    # ─── Fan-out ─────────────────────────────────────────

    async def send_to_channel(self, channel: Channel, event: str, data: Any) -> bool:
        return await self._send_one(channel, event, data)

    async def send_to_user(self, user_id: str, event: str, data: Any) -> bool:
        """Deliver to every channel of a user. False if the user has none."""
        targets = self.channels_for_user(str(user_id))
        if not targets:
            return False
        await self._deliver(targets, event, data)
        return True

    async def send_to_room(
        self,
        room: str,
        event: str,
        data: Any,
        exclude_user_id: Optional[str] = None,
    ) -> int:
        """Deliver to every channel in a room, optionally skipping one user's channels.

        Returns the number of channels that accepted the frame.
        """
        targets = self.room_members(room)
        if exclude_user_id is not None:
            excluded = str(exclude_user_id)
            targets = [ch for ch in targets if ch.user_id != excluded]
        return await self._deliver(targets, event, data)

    async def broadcast_all(self, event: str, data: Any) -> int:
        return await self._deliver(list(self._channels.values()), event, data)

    async def _deliver(self, targets: Iterable[Channel], event: str, data: Any) -> int:
        targets = list(targets)
        if not targets:
            return 0
        results = await asyncio.gather(
            *(self._send_one(ch, event, data) for ch in targets)
        )
        return sum(1 for ok in results if ok)

    async def _send_one(self, channel: Channel, event: str, data: Any) -> bool:
        try:
            await channel.send(event, data)
            return True
        except Exception as e:
            # One dead socket must not abort the rest of the fan-out.
            logger.warning(
                "realtime.send_failed",
                channel_id=channel.channel_id,
                user_id=channel.user_id,
                event=event,
                error=str(e) or type(e).__name__,
            )
            return False

    # ─── Queries ─────────────────────────────────────────

    def connected_users_count(self) -> int:
        return len(self._user_channels)

    def total_channels(self) -> int:
        return len(self._channels)

    def is_user_connected(self, user_id: str) -> bool:
        return str(user_id) in self._user_channels

    def connected_user_ids(self) -> list[str]:
        return list(self._user_channels)

    def stats(self) -> dict:
        return {
            "connected_users": self.connected_users_count(),
            "total_channels": self.total_channels(),
            "rooms": len(self._rooms),
        }

    # ─── Shutdown ────────────────────────────────────────

    async def close_all(self, code: int = 1001, reason: str = "Server shutting down") -> None:
        """Close and unregister every channel (server shutdown)."""
        channels = list(self._channels.values())
        logger.info("realtime.closing_all", total_channels=len(channels))
        for channel in channels:
            try:
                await channel.close(code=code, reason=reason)
            except Exception as e:
                logger.warning(
                    "realtime.close_failed",
                    channel_id=channel.channel_id,
                    error=str(e) or type(e).__name__,
                )
            self.unregister(channel)
