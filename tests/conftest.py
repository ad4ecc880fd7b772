from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from showclock.models.base import Base
from showclock.models import event, timer, timer_action  # noqa: F401
from showclock.config import settings
from showclock.database import get_db
from showclock.engine import clock, event_builder, repository
from showclock.engine.errors import TransportError
from showclock.main import create_app
from showclock.ws.notifier import Notifier

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingTransport:
    """Transport that keeps every published message; can be told to fail."""

    def __init__(self):
        self.messages: list[tuple[str, str, dict]] = []
        self.fail = False

    async def publish(self, channel, event_name, payload):
        if self.fail:
            raise TransportError("transport down")
        self.messages.append((channel, event_name, payload))

    def names(self) -> list[str]:
        return [name for _, name, _ in self.messages]

    def payloads(self, event_name: str) -> list[dict]:
        return [p for _, name, p in self.messages if name == event_name]


class FrozenClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def set(self, value: datetime):
        self.current = value

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


@pytest.fixture
def frozen_clock(monkeypatch):
    fake = FrozenClock(datetime(2025, 1, 1, 10, 0, 0))
    monkeypatch.setattr(clock, "_read_wall_clock", fake)
    return fake


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def notifier(transport):
    return Notifier(transport, channel_prefix="SHOW_TIMERS")


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def build_event(db_session):
    """Seed an event from a definition; returns (event, timers by ordinal)."""

    async def _build(timers: list[dict], name: str = "Gala"):
        ev = await event_builder.create_event(db_session, name, timers)
        await db_session.commit()
        return ev, await repository.find_timers_by_event(db_session, ev.id)

    return _build


@pytest_asyncio.fixture
async def client(session_factory, notifier):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_db] = override_get_db
    app.state.notifier = notifier
    app.state.session_factory = session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def operator_headers(client):
    resp = await client.post("/api/auth/token", json={"operator_key": settings.OPERATOR_KEY})
    token = resp.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}
