"""Realtime introspection — who is connected right now."""

from fastapi import APIRouter, Request

router = APIRouter(prefix="/realtime")


@router.get("/stats")
async def realtime_stats(request: Request):
    registry = request.app.state.registry
    stats = registry.stats()
    return {
        "connectedUsers": stats["connected_users"],
        "totalChannels": stats["total_channels"],
        "rooms": stats["rooms"],
    }
