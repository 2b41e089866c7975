"""create_tram_notification_tables

Revision ID: 3b8f41c2a9d0
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b8f41c2a9d0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

tram_direction = sa.Enum("up", "down", name="tram_direction", create_constraint=True)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("line_user_id", sa.String(length=64), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_line_user_id"), "users", ["line_user_id"], unique=True)

    op.create_table(
        "notification_subscriptions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("direction", tram_direction, nullable=False),
        sa.Column("trigger_stops", sa.Integer(), server_default="2", nullable=False),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("days_of_week", sa.JSON(), nullable=True),
        sa.Column("is_enabled", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "trigger_stops BETWEEN 1 AND 10",
            name="ck_notification_subscriptions_trigger_stops",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_notification_subscriptions_user_id"),
        "notification_subscriptions",
        ["user_id"],
        unique=False,
    )
    op.create_index(
        "ix_notification_subscriptions_enabled",
        "notification_subscriptions",
        ["is_enabled"],
        unique=False,
    )

    op.create_table(
        "notification_history",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("subscription_id", sa.Uuid(), nullable=False),
        sa.Column("vehicle_id", sa.Integer(), nullable=False),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["subscription_id"],
            ["notification_subscriptions.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_notification_history_notified_at"),
        "notification_history",
        ["notified_at"],
        unique=False,
    )
    op.create_index(
        "ix_notification_history_subscription_vehicle",
        "notification_history",
        ["subscription_id", "vehicle_id", "notified_at"],
        unique=False,
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_notification_history_subscription_vehicle", table_name="notification_history")
    op.drop_index(op.f("ix_notification_history_notified_at"), table_name="notification_history")
    op.drop_table("notification_history")
    op.drop_index("ix_notification_subscriptions_enabled", table_name="notification_subscriptions")
    op.drop_index(op.f("ix_notification_subscriptions_user_id"), table_name="notification_subscriptions")
    op.drop_table("notification_subscriptions")
    op.drop_index(op.f("ix_users_line_user_id"), table_name="users")
    op.drop_table("users")
    tram_direction.drop(op.get_bind(), checkfirst=True)
