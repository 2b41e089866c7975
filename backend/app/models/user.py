"""LINE user model."""

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String, true
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel
from app.utils.pii import hash_pii

if TYPE_CHECKING:
    from app.models.subscription import Subscription


class User(BaseModel):
    """A LINE user who has added the bot as a friend."""

    __tablename__ = "users"

    line_user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        index=True,
    )
    display_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    # False after unfollow; subscriptions are kept for a later re-follow
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=true(),
    )

    # Relationships
    subscriptions: Mapped[list["Subscription"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        """String representation of the user (LINE id hashed)."""
        return f"<User(id={self.id}, line_user_id_hash={hash_pii(self.line_user_id)[:12]}, active={self.is_active})>"
