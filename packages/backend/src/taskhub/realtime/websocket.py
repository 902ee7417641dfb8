"""WebSocket endpoint — authenticated realtime channel per browser tab.

Learn: Each client connects to /ws. The handler walks one Channel through
CONNECTING → AUTHENTICATED → ACTIVE → CLOSED:
1. Accept, then find a token: ?token= query param, Authorization header,
   or a first `{"event": "auth", "data": {"token": ...}}` frame that must
   arrive within ws_auth_timeout_seconds.
2. Verify it. Any failure closes with 4001 before the channel is
   registered, so a rejected socket never receives a broadcast.
3. Register, activate, send `connected {channelId, userId, timestamp}`.
4. Hand every text frame to the EventDispatcher, in receipt order.
5. On disconnect (any reason) unregister — which also drops every room.

Frames are processed one at a time per connection; a slow handler only
delays that connection's own later frames.
"""

import asyncio

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from taskhub.auth.verifier import extract_bearer
from taskhub.errors import AuthenticationError, ValidationError
from taskhub.realtime.dispatcher import parse_frame, utc_timestamp
from taskhub.realtime.registry import Channel

logger = structlog.get_logger()
router = APIRouter()

AUTH_FAILED_CODE = 4001


async def _await_auth_frame(websocket: WebSocket) -> str:
    """Read the first frame and pull a token out of it."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000))
    text = message.get("text")
    if text is None:
        raise AuthenticationError("Authentication token required")
    try:
        event, data = parse_frame(text)
    except ValidationError:
        raise AuthenticationError("Authentication token required")
    token = data.get("token")
    if event != "auth" or not isinstance(token, str) or not token:
        raise AuthenticationError("Authentication token required")
    return token


@router.websocket("/ws")
async def realtime_websocket(websocket: WebSocket):
    state = websocket.app.state
    registry = state.registry
    dispatcher = state.dispatcher
    verifier = state.credential_verifier

    await websocket.accept()
    channel = Channel(websocket)
    log = logger.bind(channel_id=channel.channel_id)

    # ── Authentication ──────────────────────────────────────
    token = websocket.query_params.get("token") or extract_bearer(
        websocket.headers.get("authorization")
    )
    try:
        if not token:
            token = await asyncio.wait_for(
                _await_auth_frame(websocket), timeout=state.ws_auth_timeout
            )
        identity = await verifier.verify(token)
    except WebSocketDisconnect:
        channel.mark_closed()
        return
    except asyncio.TimeoutError:
        log.info("realtime.auth_timeout")
        await channel.close(code=AUTH_FAILED_CODE, reason="Authentication timeout")
        return
    except AuthenticationError as e:
        log.info("realtime.auth_rejected", reason=e.message)
        await channel.close(code=AUTH_FAILED_CODE, reason=e.message)
        return

    channel.authenticate(identity.user_id)
    registry.register(identity.user_id, channel)
    channel.activate()
    log = log.bind(user_id=identity.user_id)

    # ── Receive loop ────────────────────────────────────────
    try:
        await registry.send_to_channel(
            channel,
            "connected",
            {
                "channelId": channel.channel_id,
                "userId": identity.user_id,
                "timestamp": utc_timestamp(),
            },
        )
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                log.info("realtime.disconnected", code=message.get("code"))
                break
            text = message.get("text")
            if text is None:
                await registry.send_to_channel(
                    channel, "error", {"message": "Invalid message format"}
                )
                continue
            await dispatcher.dispatch_text(channel, text)
    except WebSocketDisconnect:
        log.info("realtime.disconnected")
    finally:
        registry.unregister(channel)
        channel.mark_closed()
        if websocket.client_state == WebSocketState.CONNECTED:
            try:
                await websocket.close()
            except RuntimeError:
                pass
