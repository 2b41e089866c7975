"""Tests for scheduled jobs against a real (SQLite) store."""

from datetime import UTC, datetime, timedelta

import pytest
from app.network.stations import Direction
from app.network.topology import NetworkTopology
from app.schemas.subscription import SubscriptionCreate
from app.services.history_service import HistoryService
from app.services.jobs import JobContext, MorningResult, run_history_cleanup, run_morning_notifications, run_poll_cycle
from app.services.subscription_service import SubscriptionService
from app.services.tram_service import TramApiError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tests.helpers.fakes import FakeNotifier, FakeTramClient, make_position

# 2025-01-06 08:00 JST
DAYTIME = datetime(2025, 1, 5, 23, 0, tzinfo=UTC)
NIGHT = datetime(2025, 1, 5, 17, 0, tzinfo=UTC)


@pytest.fixture
async def subscriber(db_session: AsyncSession):  # noqa: ANN201
    store = SubscriptionService(db_session)
    user, _ = await store.upsert_user("U-commuter")
    return await store.create_subscription(user.id, SubscriptionCreate(station_id=8, direction=Direction.DOWN))


def _context(
    tram_client: FakeTramClient,
    notifier: FakeNotifier,
    topology: NetworkTopology,
    session_factory: async_sessionmaker[AsyncSession],
) -> JobContext:
    return JobContext(tram_client=tram_client, notifier=notifier, topology=topology, session_factory=session_factory)


class TestRunPollCycle:
    async def test_notifies_once_per_vehicle(
        self,
        subscriber,  # noqa: ANN001
        notifier: FakeNotifier,
        topology: NetworkTopology,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        context = _context(FakeTramClient([make_position(18, vehicle_id=5)]), notifier, topology, session_factory)

        first = await run_poll_cycle(context, now=DAYTIME)
        second = await run_poll_cycle(context, now=DAYTIME + timedelta(seconds=30))

        assert first.notification_count == 1
        assert second.success is True
        assert second.notification_count == 0
        assert [recipient for recipient, _, _ in notifier.approach] == ["U-commuter"]

    async def test_outside_operating_hours_is_skipped(
        self,
        subscriber,  # noqa: ANN001
        notifier: FakeNotifier,
        topology: NetworkTopology,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        tram_client = FakeTramClient([make_position(18)])
        context = _context(tram_client, notifier, topology, session_factory)

        result = await run_poll_cycle(context, now=NIGHT)

        assert result.skipped is True
        assert tram_client.calls == 0

    async def test_forced_poll_ignores_operating_hours(
        self,
        subscriber,  # noqa: ANN001
        notifier: FakeNotifier,
        topology: NetworkTopology,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        tram_client = FakeTramClient([make_position(18)])
        context = _context(tram_client, notifier, topology, session_factory)

        result = await run_poll_cycle(context, respect_operating_hours=False)

        assert result.skipped is False
        assert tram_client.calls == 1

    async def test_fetch_failure(
        self,
        notifier: FakeNotifier,
        topology: NetworkTopology,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        context = _context(FakeTramClient(error="down"), notifier, topology, session_factory)

        result = await run_poll_cycle(context, now=DAYTIME)

        assert result.success is False
        assert result.error == "down"


class TestRunMorningNotifications:
    async def test_sends_summary(
        self,
        subscriber,  # noqa: ANN001
        notifier: FakeNotifier,
        topology: NetworkTopology,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        context = _context(FakeTramClient([make_position(18)]), notifier, topology, session_factory)

        result = await run_morning_notifications(context, now=DAYTIME)

        assert result == MorningResult(tram_count=1, notification_count=1)
        assert notifier.morning[0][1][0].station_name == "辛島町"

    async def test_fetch_failure_propagates(
        self,
        notifier: FakeNotifier,
        topology: NetworkTopology,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        context = _context(FakeTramClient(error="down"), notifier, topology, session_factory)

        with pytest.raises(TramApiError):
            await run_morning_notifications(context)


class TestRunHistoryCleanup:
    async def test_prunes_old_history(
        self,
        subscriber,  # noqa: ANN001
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        history = HistoryService(db_session)
        now = datetime.now(UTC)
        await history.record(subscriber.id, 1, notified_at=now - timedelta(days=2))
        await history.record(subscriber.id, 2, notified_at=now)

        assert await run_history_cleanup(session_factory) == 1
