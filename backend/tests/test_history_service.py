"""Tests for the notification history store."""

from datetime import UTC, datetime, timedelta

import pytest
from app.models.subscription import NotificationHistory
from app.network.stations import Direction
from app.schemas.subscription import SubscriptionCreate
from app.services.history_service import HistoryService
from app.services.polling_service import cleanup_history
from app.services.subscription_service import SubscriptionService
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

NOW = datetime(2025, 1, 6, 8, 0, tzinfo=UTC)


@pytest.fixture
async def subscription_id(db_session: AsyncSession):  # noqa: ANN201
    store = SubscriptionService(db_session)
    user, _ = await store.upsert_user("U-history")
    subscription = await store.create_subscription(user.id, SubscriptionCreate(station_id=8, direction=Direction.DOWN))
    return subscription.id


async def _count(db_session: AsyncSession) -> int:
    return (await db_session.execute(select(func.count()).select_from(NotificationHistory))).scalar_one()


class TestHistoryService:
    async def test_has_recent_within_window(self, db_session: AsyncSession, subscription_id) -> None:  # noqa: ANN001
        history = HistoryService(db_session)
        await history.record(subscription_id, 1001, notified_at=NOW)

        assert await history.has_recent(subscription_id, 1001, NOW - timedelta(minutes=30))
        assert not await history.has_recent(subscription_id, 1002, NOW - timedelta(minutes=30))
        assert not await history.has_recent(subscription_id, 1001, NOW + timedelta(minutes=1))

    async def test_prune_removes_only_old_records(self, db_session: AsyncSession, subscription_id) -> None:  # noqa: ANN001
        history = HistoryService(db_session)
        await history.record(subscription_id, 1, notified_at=NOW - timedelta(hours=25))
        await history.record(subscription_id, 2, notified_at=NOW - timedelta(hours=1))

        deleted = await history.prune(NOW - timedelta(hours=24))

        assert deleted == 1
        assert await _count(db_session) == 1

    async def test_cleanup_uses_retention_window(self, db_session: AsyncSession, subscription_id) -> None:  # noqa: ANN001
        history = HistoryService(db_session)
        now = datetime.now(UTC)
        await history.record(subscription_id, 1, notified_at=now - timedelta(hours=30))
        await history.record(subscription_id, 2, notified_at=now - timedelta(hours=2))

        assert await cleanup_history(history, retention=timedelta(hours=24)) == 1
        assert await _count(db_session) == 1
