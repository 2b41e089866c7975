"""Notification subscription and history models."""

import uuid
from datetime import UTC, datetime, time
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Time,
    Uuid,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, BaseModel
from app.network.stations import Direction

if TYPE_CHECKING:
    from app.models.user import User

DEFAULT_TRIGGER_STOPS = 2
MIN_TRIGGER_STOPS = 1
MAX_TRIGGER_STOPS = 10


class Subscription(BaseModel):
    """A user's request to be told when a tram is N stops from a station."""

    __tablename__ = "notification_subscriptions"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    station_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    direction: Mapped[Direction] = mapped_column(
        Enum(
            Direction,
            name="tram_direction",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    trigger_stops: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_TRIGGER_STOPS,
        server_default=str(DEFAULT_TRIGGER_STOPS),
    )
    # Local time-of-day window; both NULL means any time
    start_time: Mapped[time | None] = mapped_column(
        Time,
        nullable=True,
    )
    end_time: Mapped[time | None] = mapped_column(
        Time,
        nullable=True,
    )
    # Day codes as JSON array e.g. ["MON", "TUE"]; NULL means every day
    days_of_week: Mapped[list[str] | None] = mapped_column(
        JSON,
        nullable=True,
    )
    is_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=true(),
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="subscriptions")

    __table_args__ = (
        CheckConstraint(
            f"trigger_stops BETWEEN {MIN_TRIGGER_STOPS} AND {MAX_TRIGGER_STOPS}",
            name="ck_notification_subscriptions_trigger_stops",
        ),
        Index("ix_notification_subscriptions_enabled", "is_enabled"),
    )

    def __repr__(self) -> str:
        """String representation of the subscription."""
        return (
            f"<Subscription(id={self.id}, station={self.station_id}, "
            f"direction={self.direction}, trigger_stops={self.trigger_stops})>"
        )


class NotificationHistory(Base):
    """A dispatched approach notification, kept only for dedup."""

    __tablename__ = "notification_history"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("notification_subscriptions.id", ondelete="CASCADE"),
        nullable=False,
    )
    vehicle_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    notified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        index=True,  # For retention pruning
    )

    __table_args__ = (
        Index(
            "ix_notification_history_subscription_vehicle",
            "subscription_id",
            "vehicle_id",
            "notified_at",
        ),
    )

    def __repr__(self) -> str:
        """String representation of the history record."""
        return (
            f"<NotificationHistory(subscription={self.subscription_id}, "
            f"vehicle={self.vehicle_id}, notified_at={self.notified_at})>"
        )
