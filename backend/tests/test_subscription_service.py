"""Tests for SubscriptionService against an in-memory database."""

import uuid
from datetime import time

import pytest
from app.models.subscription import Subscription
from app.models.user import User
from app.network.stations import Direction
from app.schemas.subscription import SubscriptionCreate
from app.services.subscription_service import SubscriptionService
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


@pytest.fixture
def service(db_session: AsyncSession) -> SubscriptionService:
    return SubscriptionService(db_session)


async def _user(service: SubscriptionService, line_user_id: str = "U-store-1") -> User:
    user, _ = await service.upsert_user(line_user_id, "Rider")
    return user


class TestUsers:
    async def test_upsert_creates_user(self, service: SubscriptionService) -> None:
        user, created = await service.upsert_user("U-new", "山田")

        assert created is True
        assert user.display_name == "山田"
        assert user.is_active is True

    async def test_upsert_reactivates_existing_user(self, service: SubscriptionService) -> None:
        user, _ = await service.upsert_user("U-back", "Before")
        await service.deactivate_user("U-back")

        again, created = await service.upsert_user("U-back", None)

        assert created is False
        assert again.id == user.id
        assert again.is_active is True
        assert again.display_name == "Before"

    async def test_deactivate_unknown_user(self, service: SubscriptionService) -> None:
        assert await service.deactivate_user("U-nobody") is False

    async def test_get_user_by_line_id(self, service: SubscriptionService) -> None:
        user = await _user(service)
        assert (await service.get_user_by_line_id("U-store-1")).id == user.id
        assert await service.get_user_by_line_id("U-other") is None


class TestSubscriptions:
    async def test_create_and_list_in_creation_order(self, service: SubscriptionService) -> None:
        user = await _user(service)
        first = await service.create_subscription(user.id, SubscriptionCreate(station_id=8, direction=Direction.DOWN))
        second = await service.create_subscription(
            user.id,
            SubscriptionCreate(
                station_id=12,
                direction=Direction.UP,
                trigger_stops=3,
                start_time=time(22, 0),
                end_time=time(6, 0),
                days_of_week=["mon", "tue"],
            ),
        )

        listed = await service.list_subscriptions(user.id)

        assert [subscription.id for subscription in listed] == [first.id, second.id]
        assert listed[0].trigger_stops == 2
        assert listed[1].direction == Direction.UP
        assert listed[1].days_of_week == ["MON", "TUE"]
        assert listed[1].start_time == time(22, 0)

    async def test_toggle_all(self, service: SubscriptionService) -> None:
        user = await _user(service)
        for station_id in (8, 9):
            await service.create_subscription(user.id, SubscriptionCreate(station_id=station_id, direction="down"))

        assert await service.set_all_enabled(user.id, False) == 2
        assert await service.list_subscriptions(user.id, enabled_only=True) == []

        assert await service.set_all_enabled(user.id, True) == 2
        assert len(await service.list_subscriptions(user.id, enabled_only=True)) == 2

    async def test_set_enabled_single(self, service: SubscriptionService) -> None:
        user = await _user(service)
        subscription = await service.create_subscription(user.id, SubscriptionCreate(station_id=8, direction="down"))

        assert await service.set_enabled(subscription.id, False) is True
        assert await service.set_enabled(uuid.uuid4(), False) is False

    async def test_delete_checks_owner(self, service: SubscriptionService) -> None:
        owner = await _user(service, "U-owner")
        stranger = await _user(service, "U-stranger")
        subscription = await service.create_subscription(owner.id, SubscriptionCreate(station_id=8, direction="down"))

        assert await service.delete_subscription(subscription.id, stranger.id) is False
        assert await service.delete_subscription(subscription.id, owner.id) is True
        assert await service.get_subscription(subscription.id) is None

    async def test_active_subscriptions_exclude_disabled_and_inactive_users(
        self, service: SubscriptionService, db_session: AsyncSession
    ) -> None:
        active = await _user(service, "U-active")
        gone = await _user(service, "U-gone")
        kept = await service.create_subscription(active.id, SubscriptionCreate(station_id=8, direction="down"))
        paused = await service.create_subscription(active.id, SubscriptionCreate(station_id=9, direction="down"))
        await service.set_enabled(paused.id, False)
        await service.create_subscription(gone.id, SubscriptionCreate(station_id=8, direction="down"))
        await service.deactivate_user("U-gone")

        result = await service.get_active_subscriptions()

        assert [subscription.id for subscription in result] == [kept.id]
        assert result[0].user.line_user_id == "U-active"

        # Unfollow keeps the rows
        rows = (await db_session.execute(select(Subscription).where(Subscription.user_id == gone.id))).scalars().all()
        assert len(rows) == 1


class TestSubscriptionCreateSchema:
    def test_unknown_station_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Unknown station id"):
            SubscriptionCreate(station_id=999, direction="down")

    @pytest.mark.parametrize("trigger_stops", [0, 11])
    def test_trigger_stops_bounds(self, trigger_stops: int) -> None:
        with pytest.raises(ValidationError):
            SubscriptionCreate(station_id=8, direction="down", trigger_stops=trigger_stops)

    def test_window_requires_both_ends(self) -> None:
        with pytest.raises(ValidationError, match="set together"):
            SubscriptionCreate(station_id=8, direction="down", start_time=time(7, 0))

    def test_invalid_day_code(self) -> None:
        with pytest.raises(ValidationError, match="Invalid day codes"):
            SubscriptionCreate(station_id=8, direction="down", days_of_week=["MON", "FUNDAY"])

    def test_empty_days_means_every_day(self) -> None:
        assert SubscriptionCreate(station_id=8, direction="down", days_of_week=[]).days_of_week is None
