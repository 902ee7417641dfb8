"""Test fixtures.

Learn: Most of the suite runs without any infrastructure:
- the membership oracle is an in-memory dict (FakeOracle)
- the credential verifier checks signatures only (no user lookup)
- channels wrap a FakeTransport that records frames instead of a socket

Tests that need PostgreSQL use the db_session fixture, which skips when the
database is unreachable. When it is reachable, each test gets its own
connection + transaction, every service commit() becomes a SAVEPOINT
(join_transaction_mode="create_savepoint"), and the outer transaction is
rolled back afterwards — all test data vanishes.
"""

import json
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from taskhub.auth.jwt import create_access_token
from taskhub.auth.verifier import CredentialVerifier
from taskhub.config import settings
from taskhub.main import create_app
from taskhub.realtime.registry import Channel, ConnectionRegistry

ALICE = "00000000-0000-0000-0000-00000000000a"
BOB = "00000000-0000-0000-0000-00000000000b"
CAROL = "00000000-0000-0000-0000-00000000000c"
PROJECT = "11111111-1111-1111-1111-111111111111"


# ─── Fakes ───────────────────────────────────────────────


class FakeOracle:
    """In-memory membership store: (user_id, project_id) → role."""

    def __init__(self):
        self.roles: dict[tuple[str, str], str] = {}
        self.calls = 0

    def grant(self, user_id, project_id, role="member"):
        self.roles[(str(user_id), str(project_id))] = role

    def revoke(self, user_id, project_id):
        self.roles.pop((str(user_id), str(project_id)), None)

    async def role_of(self, user_id, project_id):
        self.calls += 1
        return self.roles.get((str(user_id), str(project_id)))

    async def is_member(self, user_id, project_id):
        return await self.role_of(user_id, project_id) is not None


class FakeTransport:
    """Stands in for a WebSocket: records decoded frames, can be told to fail."""

    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self.closed = None
        self.fail = fail

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise ConnectionError("socket gone")
        self.sent.append(json.loads(text))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = (code, reason)

    def events(self) -> list[str]:
        return [frame["event"] for frame in self.sent]

    def last(self) -> dict:
        return self.sent[-1]


# ─── Realtime fixtures ───────────────────────────────────


@pytest.fixture()
def oracle():
    return FakeOracle()


@pytest.fixture()
def registry():
    return ConnectionRegistry()


@pytest.fixture()
def make_channel(registry):
    """Factory: an ACTIVE channel for `user_id`, registered in `registry`."""

    def _make(user_id: str, fail: bool = False) -> Channel:
        channel = Channel(FakeTransport(fail=fail))
        channel.authenticate(user_id)
        registry.register(user_id, channel)
        channel.activate()
        return channel

    return _make


# ─── App fixtures ────────────────────────────────────────


@pytest.fixture()
def token_for():
    def _token(user_id: str, **kwargs) -> str:
        return create_access_token(user_id, **kwargs)

    return _token


@pytest.fixture()
def app(oracle):
    """App wired to the fake oracle and a lookup-free verifier."""
    return create_app(
        membership_oracle=oracle,
        credential_verifier=CredentialVerifier(),
    )


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ─── Database fixtures ───────────────────────────────────


class SharedSessionFactory:
    """Session factory that always hands out the test's session, never closing it.

    Lets SqlMembershipOracle see rows written inside the test transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def __call__(self):
        return self

    async def __aenter__(self) -> AsyncSession:
        return self.session

    async def __aexit__(self, *exc) -> bool:
        return False


@pytest_asyncio.fixture()
async def db_session():
    """Per-test session with automatic rollback via savepoints."""
    from taskhub.db.models import Base

    engine = create_async_engine(settings.database_url, echo=False)
    try:
        conn = await engine.connect()
    except Exception as e:
        await engine.dispose()
        pytest.skip(f"PostgreSQL not reachable: {e}")

    trans = await conn.begin()
    await conn.run_sync(Base.metadata.create_all)
    session = AsyncSession(
        bind=conn,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )
    try:
        yield session
    finally:
        await session.close()
        await trans.rollback()
        await conn.close()
        await engine.dispose()


@pytest_asyncio.fixture()
async def users(db_session):
    """Alice, Bob and Carol as rows in `users`."""
    from taskhub.db.models import User

    rows = {}
    for name, user_id in (("alice", ALICE), ("bob", BOB), ("carol", CAROL)):
        suffix = uuid.uuid4().hex[:6]
        user = User(
            id=uuid.UUID(user_id),
            email=f"{name}-{suffix}@example.com",
            username=f"{name}-{suffix}",
            full_name=name.title(),
        )
        db_session.add(user)
        rows[name] = user
    await db_session.commit()
    return rows


@pytest_asyncio.fixture()
async def db_app(db_session, users):
    """App backed by the test transaction: real oracle, real user lookup."""
    from taskhub.db.engine import get_db
    from taskhub.services.membership import SqlMembershipOracle, SqlUserDirectory

    factory = SharedSessionFactory(db_session)
    app = create_app(
        membership_oracle=SqlMembershipOracle(factory),
        credential_verifier=CredentialVerifier(SqlUserDirectory(factory).exists),
    )

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def db_client(db_app):
    transport = ASGITransport(app=db_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
