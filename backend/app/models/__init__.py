"""Database models for TramNotify."""

# Import all models to register them with SQLAlchemy metadata
from app.models.base import Base, BaseModel
from app.models.subscription import NotificationHistory, Subscription
from app.models.user import User

__all__ = [
    # Base
    "Base",
    "BaseModel",
    # User models
    "User",
    # Notification models
    "Subscription",
    "NotificationHistory",
]
