"""Async SQLAlchemy engine and session factory.

Learn: Two kinds of callers:
- HTTP routes get a session per request via the get_db dependency.
- Long-lived WebSocket connections can't hold a request session open for
  hours, so the membership oracle opens a short session per check from
  async_session_factory instead. Those checks are why the pool is sized
  from settings rather than fixed: every join:project and every mirrored
  entity event borrows a connection briefly.
"""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from taskhub.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

# expire_on_commit=False: services refresh explicitly and then serialise
# the row for realtime payloads after commit.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one session per request, rolled back on error."""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
