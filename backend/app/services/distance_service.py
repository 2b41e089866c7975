"""Distance resolution between live tram positions and target stations.

Everything here is pure: inputs are immutable topology tables and position
snapshots, so the functions are safe to call from overlapping poll cycles.
"""

from collections.abc import Iterable

import structlog

from app.network.stations import Direction, Line
from app.network.topology import NetworkTopology
from app.schemas.tram import ApproachingTram, DistanceResult, TramPosition

logger = structlog.get_logger(__name__)

# Calibrated average run time between adjacent stops
MINUTES_PER_STOP = 2


def estimate_minutes(stops_away: int) -> int:
    """
    Estimate minutes to arrival with the fixed per-stop model.

    Example:
        >>> estimate_minutes(2)
        4
        >>> estimate_minutes(0)
        1
    """
    return max(1, round(stops_away * MINUTES_PER_STOP))


def stops_between(
    topology: NetworkTopology,
    line: Line,
    current_station_id: int,
    target_station_id: int,
    direction: Direction,
) -> int | None:
    """
    Signed stop count from the current station to the target along a line.

    Positive means the target is still ahead in the given direction; zero or
    negative means the tram is at or past it.

    Returns:
        Stop count, or None if either station is not on the line
    """
    current_index = topology.station_index(line, current_station_id)
    target_index = topology.station_index(line, target_station_id)
    if current_index is None or target_index is None:
        return None
    if direction == Direction.DOWN:
        return target_index - current_index
    return current_index - target_index


def resolve_distance(
    topology: NetworkTopology,
    position: TramPosition,
    target_station_id: int,
    target_direction: Direction,
) -> DistanceResult | None:
    """
    Work out how far a tram is from a target station.

    The raw signed value is returned; deciding which distances count as
    "approaching" is left to the caller.

    Args:
        topology: Resolution tables
        position: Position report from the feed
        target_station_id: Station the rider waits at
        target_direction: Direction the rider travels

    Returns:
        DistanceResult, or None when the report travels the other way, its
        interval code is unknown, or either station is not on its line
    """
    if position.direction != target_direction:
        return None

    resolution = topology.resolve(position.line, position.direction, position.interval_id)
    if resolution is None:
        logger.debug(
            "interval_code_unresolved",
            line=position.line.value,
            direction=position.direction.value,
            interval_id=position.interval_id,
            vehicle_id=position.vehicle_id,
        )
        return None

    stops_away = stops_between(
        topology,
        position.line,
        resolution.station_id,
        target_station_id,
        target_direction,
    )
    if stops_away is None:
        return None

    return DistanceResult(
        stops_away=stops_away,
        estimated_minutes=estimate_minutes(stops_away),
        current_station_id=resolution.station_id,
        is_at_station=resolution.is_at_station,
    )


def find_approaching_trams(
    topology: NetworkTopology,
    positions: Iterable[TramPosition],
    station_id: int,
    direction: Direction,
    *,
    min_stops: int = 1,
    max_stops: int = 15,
    limit: int | None = None,
) -> list[ApproachingTram]:
    """
    Trams heading to a station within an inclusive stop range, nearest first.

    Ties keep the feed's order.
    """
    approaching: list[ApproachingTram] = []
    for position in positions:
        result = resolve_distance(topology, position, station_id, direction)
        if result is None or not min_stops <= result.stops_away <= max_stops:
            continue
        approaching.append(
            ApproachingTram(
                vehicle_id=position.vehicle_id,
                line=position.line,
                direction=position.direction,
                stops_away=result.stops_away,
                estimated_minutes=result.estimated_minutes,
                current_station_id=result.current_station_id,
                is_at_station=result.is_at_station,
                is_super_low_floor=position.is_super_low_floor,
            )
        )

    approaching.sort(key=lambda tram: tram.stops_away)
    if limit is not None:
        return approaching[:limit]
    return approaching
