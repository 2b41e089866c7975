"""Pydantic schemas for tram positions and distance results."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.network.stations import Direction, Line

SUPER_LOW_FLOOR_VEHICLE_TYPE = 2


class TramPosition(BaseModel):
    """
    One vehicle from the position feed (web01List).

    Field names follow the feed: ``rosen`` is the line, ``us`` the direction
    flag (0 = up, 1 = down).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    interval_id: int
    rosen: Line
    us: int = Field(ge=0, le=1)
    vehicle_type: int = 0
    vehicle_id: int

    @field_validator("rosen", mode="before")
    @classmethod
    def normalise_line(cls, value: object) -> object:
        """Accept lower-case or padded line codes."""
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @property
    def line(self) -> Line:
        return self.rosen

    @property
    def direction(self) -> Direction:
        return Direction.from_flag(self.us)

    @property
    def is_super_low_floor(self) -> bool:
        return self.vehicle_type == SUPER_LOW_FLOOR_VEHICLE_TYPE

    @property
    def vehicle_type_label(self) -> str:
        """Japanese vehicle category label shown in notifications."""
        return "超低床車" if self.is_super_low_floor else "一般車"


class DistanceResult(BaseModel):
    """Signed distance from a tram to a target station."""

    model_config = ConfigDict(frozen=True)

    stops_away: int
    estimated_minutes: int
    current_station_id: int
    is_at_station: bool


class ApproachingTram(BaseModel):
    """A tram heading toward a station, with its distance."""

    model_config = ConfigDict(frozen=True)

    vehicle_id: int
    line: Line
    direction: Direction
    stops_away: int
    estimated_minutes: int
    current_station_id: int
    is_at_station: bool
    is_super_low_floor: bool

    @property
    def vehicle_type_label(self) -> str:
        return "超低床車" if self.is_super_low_floor else "一般車"


class StationArrivals(BaseModel):
    """Trams approaching one (station, direction), nearest first."""

    station_id: int
    station_name: str
    direction: Direction
    direction_label: str
    trams: list[ApproachingTram]


class StationResponse(BaseModel):
    """API representation of a station."""

    id: int
    name: str
    name_kana: str
    lines: list[Line]
