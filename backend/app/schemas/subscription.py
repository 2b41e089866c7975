"""Pydantic schemas for notification subscriptions."""

from datetime import time

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.subscription import DEFAULT_TRIGGER_STOPS, MAX_TRIGGER_STOPS, MIN_TRIGGER_STOPS
from app.network.stations import Direction, get_station

VALID_DAY_CODES = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")


def _validate_day_codes(days: list[str]) -> list[str]:
    """
    Validate day codes.

    Raises:
        ValueError: If any day code is invalid or duplicates exist
    """
    if invalid_days := set(days) - set(VALID_DAY_CODES):
        msg = f"Invalid day codes: {sorted(invalid_days)}. Valid codes: {list(VALID_DAY_CODES)}"
        raise ValueError(msg)

    if len(days) != len(set(days)):
        msg = "Duplicate day codes are not allowed"
        raise ValueError(msg)

    return days


class SubscriptionCreate(BaseModel):
    """Input for a new subscription."""

    station_id: int
    direction: Direction
    trigger_stops: int = Field(default=DEFAULT_TRIGGER_STOPS, ge=MIN_TRIGGER_STOPS, le=MAX_TRIGGER_STOPS)
    start_time: time | None = None
    end_time: time | None = None
    days_of_week: list[str] | None = None

    @field_validator("station_id")
    @classmethod
    def validate_station(cls, v: int) -> int:
        if get_station(v) is None:
            msg = f"Unknown station id: {v}"
            raise ValueError(msg)
        return v

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, v: list[str] | None) -> list[str] | None:
        """Upper-case and validate day codes; an empty list means every day."""
        if v is None:
            return None
        days = [day.upper() for day in v]
        return _validate_day_codes(days) or None

    @model_validator(mode="after")
    def validate_window(self) -> "SubscriptionCreate":
        """
        Require both ends of the time window or neither.

        start_time > end_time is allowed and means the window wraps past
        midnight.
        """
        if (self.start_time is None) != (self.end_time is None):
            msg = "start_time and end_time must be set together"
            raise ValueError(msg)
        return self

