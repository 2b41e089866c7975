"""Notification history store used for dedup and retention."""

import uuid
from datetime import UTC, datetime

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.subscription import NotificationHistory

logger = structlog.get_logger(__name__)


class HistoryService:
    """Append-only record of dispatched approach notifications."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def record(
        self,
        subscription_id: uuid.UUID,
        vehicle_id: int,
        notified_at: datetime | None = None,
    ) -> NotificationHistory:
        """Record a successful dispatch for a (subscription, vehicle) pair."""
        entry = NotificationHistory(
            subscription_id=subscription_id,
            vehicle_id=vehicle_id,
            notified_at=notified_at or datetime.now(UTC),
        )
        self.db.add(entry)
        await self.db.commit()
        return entry

    async def has_recent(self, subscription_id: uuid.UUID, vehicle_id: int, since: datetime) -> bool:
        """Check whether the pair was notified after ``since``."""
        result = await self.db.execute(
            select(NotificationHistory.id)
            .where(
                NotificationHistory.subscription_id == subscription_id,
                NotificationHistory.vehicle_id == vehicle_id,
                NotificationHistory.notified_at > since,
            )
            .limit(1)
        )
        return result.first() is not None

    async def prune(self, older_than: datetime) -> int:
        """
        Delete history recorded before ``older_than``.

        Returns:
            Number of rows deleted
        """
        result = await self.db.execute(delete(NotificationHistory).where(NotificationHistory.notified_at < older_than))
        await self.db.commit()
        deleted = result.rowcount or 0
        logger.info("notification_history_pruned", deleted=deleted, older_than=older_than.isoformat())
        return deleted
