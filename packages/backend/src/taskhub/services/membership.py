"""Room membership oracle and user directory.

Learn: The realtime layer asks exactly two questions of the database:
- does this user still exist? (handshake / HTTP auth)
- is this user a member of this project? (room join, every entity event)

WebSocket connections live for hours, so these checks can't borrow a
request-scoped session. Each call opens a short session from the factory
and closes it immediately.
"""

import uuid
from typing import Any, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskhub.db.models import ProjectMember, User


class MembershipOracle(Protocol):
    async def is_member(self, user_id: Any, project_id: Any) -> bool: ...

    async def role_of(self, user_id: Any, project_id: Any) -> Optional[str]: ...


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


class SqlMembershipOracle:
    """Membership checks against the project_members table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def role_of(self, user_id: Any, project_id: Any) -> Optional[str]:
        uid, pid = _as_uuid(user_id), _as_uuid(project_id)
        if uid is None or pid is None:
            return None
        async with self.session_factory() as db:
            result = await db.execute(
                select(ProjectMember.role).where(
                    ProjectMember.project_id == pid,
                    ProjectMember.user_id == uid,
                )
            )
            return result.scalars().first()

    async def is_member(self, user_id: Any, project_id: Any) -> bool:
        return await self.role_of(user_id, project_id) is not None


class SqlUserDirectory:
    """User existence lookups, used as the credential verifier's user_lookup."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def exists(self, user_id: Any) -> bool:
        uid = _as_uuid(user_id)
        if uid is None:
            return False
        async with self.session_factory() as db:
            result = await db.execute(select(User.id).where(User.id == uid))
            return result.scalars().first() is not None
