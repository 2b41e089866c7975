"""Pytest configuration and fixtures."""

import os

# Settings are read at import time, so the environment must be set BEFORE any app imports
os.environ["DEBUG"] = "true"
os.environ["OTEL_ENABLED"] = "false"
os.environ.setdefault("SECRET_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_CELERY_BROKER_URL", "memory://")
os.environ.setdefault("SECRET_CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("SECRET_PII_HASH", "test-pii-hash-secret-0123456789abcdef")
os.environ.setdefault("SECRET_LINE_CHANNEL_ACCESS_TOKEN", "test-channel-access-token")
os.environ.setdefault("SECRET_LINE_CHANNEL_SECRET", "test-channel-secret")

from collections.abc import AsyncGenerator

import httpx
import pytest
from app.core.clients import AppClients
from app.main import app
from app.models import Base
from app.network.topology import NetworkTopology, get_topology
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tests.helpers.fakes import (
    LINE_BASE_URL,
    FakeNotifier,
    RecordingLineTransport,
    TramFeedTransport,
    make_position,
)


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine]:
    """
    In-memory SQLite engine with every table created.

    StaticPool keeps one connection so the in-memory database survives
    across sessions within a test.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def topology() -> NetworkTopology:
    return get_topology()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def line_transport() -> RecordingLineTransport:
    return RecordingLineTransport()


@pytest.fixture
def position_factory():  # noqa: ANN201
    """Factory for feed position reports (see tests.helpers.fakes.make_position)."""
    return make_position


@pytest.fixture
def tram_feed() -> TramFeedTransport:
    return TramFeedTransport()


@pytest.fixture
def app_clients(
    tram_feed: TramFeedTransport,
    line_transport: RecordingLineTransport,
    topology: NetworkTopology,
    session_factory: async_sessionmaker[AsyncSession],
) -> AppClients:
    """Application clients backed by mock transports and the test database."""
    return AppClients(
        tram_http=tram_feed.http_client(),
        line_http=httpx.AsyncClient(base_url=LINE_BASE_URL, transport=httpx.MockTransport(line_transport.handler)),
        topology=topology,
        session_factory=session_factory,
    )


@pytest.fixture
async def async_client(app_clients: AppClients) -> AsyncGenerator[AsyncClient]:
    """
    HTTP client for the FastAPI app.

    ASGITransport does not run the lifespan, so the clients are installed on
    app.state directly. Background webhook events are drained on teardown.
    """
    app.state.clients = app_clients
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    await app_clients.runner.drain()
    await app_clients.tram_http.aclose()
    await app_clients.line_http.aclose()
