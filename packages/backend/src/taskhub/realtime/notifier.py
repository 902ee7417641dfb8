"""Realtime notify port — how CRUD services announce successful writes.

Learn: Services call `await notifier.project_event(...)` after commit.
The notifier owns failure isolation: a broken socket, a missing registry,
or a serialization problem is logged and swallowed here, so service code
never wraps notifications in try/except of its own. Notifications are
best-effort — the HTTP response never depends on them.
"""

from typing import Any, Optional

import structlog

from taskhub.realtime.registry import ConnectionRegistry, project_room

logger = structlog.get_logger()


class RealtimeNotifier:
    def __init__(self, registry: Optional[ConnectionRegistry] = None):
        self.registry = registry

    async def project_event(
        self,
        project_id: Any,
        event: str,
        data: dict,
        exclude_user_id: Optional[Any] = None,
    ) -> int:
        """Fan an event out to `project:<id>`. Returns channels reached."""
        if self.registry is None:
            return 0
        try:
            return await self.registry.send_to_room(
                project_room(project_id),
                event,
                data,
                exclude_user_id=str(exclude_user_id) if exclude_user_id is not None else None,
            )
        except Exception as e:
            logger.warning(
                "realtime.notify_failed",
                project_id=str(project_id),
                event=event,
                error=str(e) or type(e).__name__,
            )
            return 0

    async def user_event(self, user_id: Any, event: str, data: dict) -> bool:
        """Deliver an event to every channel of one user."""
        if self.registry is None:
            return False
        try:
            return await self.registry.send_to_user(str(user_id), event, data)
        except Exception as e:
            logger.warning(
                "realtime.notify_failed",
                user_id=str(user_id),
                event=event,
                error=str(e) or type(e).__name__,
            )
            return False
