"""User and subscription store."""

import uuid

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager

from app.models.subscription import Subscription
from app.models.user import User
from app.schemas.subscription import SubscriptionCreate
from app.utils.pii import hash_pii

logger = structlog.get_logger(__name__)


class SubscriptionService:
    """CRUD over LINE users and their notification subscriptions."""

    def __init__(self, db: AsyncSession) -> None:
        """
        Initialize the subscription service.

        Args:
            db: Database session
        """
        self.db = db

    # ==================== Users ====================

    async def get_user_by_line_id(self, line_user_id: str) -> User | None:
        result = await self.db.execute(select(User).where(User.line_user_id == line_user_id))
        return result.scalar_one_or_none()

    async def upsert_user(self, line_user_id: str, display_name: str | None = None) -> tuple[User, bool]:
        """
        Create a user on follow, or reactivate one who followed before.

        Args:
            line_user_id: LINE user id from the webhook source
            display_name: Profile name, kept as-is when None

        Returns:
            Tuple of (user, created)
        """
        if user := await self.get_user_by_line_id(line_user_id):
            user.is_active = True
            if display_name is not None:
                user.display_name = display_name
            await self.db.commit()
            await self.db.refresh(user)
            logger.info("user_reactivated", user_id=str(user.id), line_user_id_hash=hash_pii(line_user_id))
            return user, False

        user = User(line_user_id=line_user_id, display_name=display_name, is_active=True)
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        logger.info("user_created", user_id=str(user.id), line_user_id_hash=hash_pii(line_user_id))
        return user, True

    async def deactivate_user(self, line_user_id: str) -> bool:
        """
        Mark a user inactive after unfollow. Subscriptions are kept.

        Returns:
            True if the user existed
        """
        result = await self.db.execute(
            update(User).where(User.line_user_id == line_user_id).values(is_active=False)
        )
        await self.db.commit()
        found = result.rowcount > 0
        logger.info("user_deactivated", line_user_id_hash=hash_pii(line_user_id), found=found)
        return found

    # ==================== Subscriptions ====================

    async def create_subscription(self, user_id: uuid.UUID, data: SubscriptionCreate) -> Subscription:
        subscription = Subscription(
            user_id=user_id,
            station_id=data.station_id,
            direction=data.direction,
            trigger_stops=data.trigger_stops,
            start_time=data.start_time,
            end_time=data.end_time,
            days_of_week=data.days_of_week,
            is_enabled=True,
        )
        self.db.add(subscription)
        await self.db.commit()
        await self.db.refresh(subscription)
        logger.info(
            "subscription_created",
            subscription_id=str(subscription.id),
            user_id=str(user_id),
            station_id=data.station_id,
            direction=data.direction.value,
            trigger_stops=data.trigger_stops,
        )
        return subscription

    async def list_subscriptions(self, user_id: uuid.UUID, *, enabled_only: bool = False) -> list[Subscription]:
        """List a user's subscriptions, oldest first (the order numbered in chat)."""
        query = select(Subscription).where(Subscription.user_id == user_id)
        if enabled_only:
            query = query.where(Subscription.is_enabled == True)  # noqa: E712
        result = await self.db.execute(query.order_by(Subscription.created_at, Subscription.id))
        return list(result.scalars().all())

    async def get_subscription(
        self,
        subscription_id: uuid.UUID,
        user_id: uuid.UUID | None = None,
    ) -> Subscription | None:
        """Get a subscription, optionally checking it belongs to the user."""
        query = select(Subscription).where(Subscription.id == subscription_id)
        if user_id is not None:
            query = query.where(Subscription.user_id == user_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def set_enabled(self, subscription_id: uuid.UUID, enabled: bool) -> bool:
        result = await self.db.execute(
            update(Subscription).where(Subscription.id == subscription_id).values(is_enabled=enabled)
        )
        await self.db.commit()
        return result.rowcount > 0

    async def set_all_enabled(self, user_id: uuid.UUID, enabled: bool) -> int:
        """
        Turn every subscription of a user on or off.

        Returns:
            Number of subscriptions updated
        """
        result = await self.db.execute(
            update(Subscription).where(Subscription.user_id == user_id).values(is_enabled=enabled)
        )
        await self.db.commit()
        logger.info("subscriptions_toggled", user_id=str(user_id), enabled=enabled, count=result.rowcount)
        return result.rowcount

    async def delete_subscription(self, subscription_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        """
        Delete a subscription owned by the user.

        Returns:
            True if something was deleted
        """
        if not (subscription := await self.get_subscription(subscription_id, user_id)):
            return False
        await self.db.delete(subscription)
        await self.db.commit()
        logger.info("subscription_deleted", subscription_id=str(subscription_id), user_id=str(user_id))
        return True

    async def get_active_subscriptions(self) -> list[Subscription]:
        """
        Enabled subscriptions whose user is still active, with the user loaded.

        Returns:
            Subscriptions ordered by user, then creation time
        """
        result = await self.db.execute(
            select(Subscription)
            .join(Subscription.user)
            .where(
                Subscription.is_enabled == True,  # noqa: E712
                User.is_active == True,  # noqa: E712
            )
            .options(contains_eager(Subscription.user))
            .order_by(User.id, Subscription.created_at, Subscription.id)
        )
        return list(result.scalars().all())
