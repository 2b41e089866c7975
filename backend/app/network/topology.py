"""Network topology: station orderings and interval-code resolution."""

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType

import structlog

from app.network.segments import SEGMENT_TABLES, IntervalGroups
from app.network.stations import STATION_ORDERS, Direction, Line

logger = structlog.get_logger(__name__)


class TopologyError(ValueError):
    """Raised when an authored segment table is inconsistent."""


class GroupKind(str, enum.Enum):
    """Whether a group of interval codes means "at a station" or "between two"."""

    AT_STATION = "at_station"
    BETWEEN = "between"


@dataclass(frozen=True, slots=True)
class SegmentGroup:
    """One group of interval codes from a segment table."""

    codes: frozenset[int]
    kind: GroupKind


@dataclass(frozen=True, slots=True)
class Resolution:
    """Where a tram is: the station it is at, or the station it is approaching."""

    station_id: int
    is_at_station: bool


def _build_groups(table: IntervalGroups) -> tuple[SegmentGroup, ...]:
    # At-station groups sit at even positions by construction
    return tuple(
        SegmentGroup(
            codes=frozenset(codes),
            kind=GroupKind.AT_STATION if position % 2 == 0 else GroupKind.BETWEEN,
        )
        for position, codes in enumerate(table)
    )


def _validate_table(line: Line, direction: Direction, table: IntervalGroups, station_count: int) -> None:
    """
    Check an authored table before it is turned into a lookup.

    Raises:
        TopologyError: On duplicate codes, missing stations, or a table that
            does not start and end on an at-station group
    """
    label = f"{line.value}/{direction.value}"
    if not table or len(table) % 2 == 0:
        msg = f"Segment table {label} must start and end with an at-station group"
        raise TopologyError(msg)

    seen: set[int] = set()
    for codes in table:
        if not codes:
            msg = f"Segment table {label} contains an empty group"
            raise TopologyError(msg)
        for code in codes:
            if code in seen:
                msg = f"Segment table {label} lists interval code {code} more than once"
                raise TopologyError(msg)
            seen.add(code)

    at_station_groups = (len(table) + 1) // 2
    if at_station_groups < station_count:
        msg = (
            f"Segment table {label} has {at_station_groups} at-station groups "
            f"but line {line.value} has {station_count} stations"
        )
        raise TopologyError(msg)


def _build_lookup(
    order: tuple[int, ...],
    direction: Direction,
    groups: tuple[SegmentGroup, ...],
) -> dict[int, Resolution]:
    """
    Replay the groups in order, advancing a station cursor on at-station groups.

    A between group belongs to the station being approached: the next one in
    the order when travelling down, the one just passed (cursor - 1) when
    travelling up. Groups whose station index falls outside the order are
    left unmapped.
    """
    lookup: dict[int, Resolution] = {}
    cursor = 0
    for group in groups:
        if group.kind is GroupKind.AT_STATION:
            index = cursor
            cursor += 1
        elif direction is Direction.DOWN:
            index = cursor
        else:
            index = cursor - 1

        if not 0 <= index < len(order):
            continue

        resolution = Resolution(
            station_id=order[index],
            is_at_station=group.kind is GroupKind.AT_STATION,
        )
        for code in group.codes:
            lookup[code] = resolution
    return lookup


class NetworkTopology:
    """
    Immutable resolution tables for both lines and both directions.

    Built once from station orders and segment tables; every lookup afterwards
    is a read from a read-only mapping, so one instance can be shared by any
    number of concurrent poll cycles.
    """

    def __init__(
        self,
        station_orders: Mapping[Line, tuple[int, ...]] | None = None,
        segment_tables: Mapping[tuple[Line, Direction], IntervalGroups] | None = None,
    ) -> None:
        orders = station_orders if station_orders is not None else STATION_ORDERS
        tables = segment_tables if segment_tables is not None else SEGMENT_TABLES

        self._orders: Mapping[Line, tuple[int, ...]] = MappingProxyType({line: tuple(orders[line]) for line in Line})
        self._indexes: Mapping[Line, Mapping[int, int]] = MappingProxyType(
            {
                line: MappingProxyType({station_id: index for index, station_id in enumerate(order)})
                for line, order in self._orders.items()
            }
        )

        groups_by_key: dict[tuple[Line, Direction], tuple[SegmentGroup, ...]] = {}
        lookups: dict[tuple[Line, Direction], Mapping[int, Resolution]] = {}
        for line in Line:
            for direction in Direction:
                table = tables[(line, direction)]
                _validate_table(line, direction, table, len(self._orders[line]))
                groups = _build_groups(table)
                groups_by_key[(line, direction)] = groups
                lookups[(line, direction)] = MappingProxyType(_build_lookup(self._orders[line], direction, groups))

        self._groups: Mapping[tuple[Line, Direction], tuple[SegmentGroup, ...]] = MappingProxyType(groups_by_key)
        self._lookups: Mapping[tuple[Line, Direction], Mapping[int, Resolution]] = MappingProxyType(lookups)

        logger.debug(
            "network_topology_built",
            codes_per_table={f"{line.value}/{direction.value}": len(lookup) for (line, direction), lookup in lookups.items()},
        )

    def station_order(self, line: Line) -> tuple[int, ...]:
        """Station ids of a line, terminus to 健軍町."""
        return self._orders[line]

    def segment_groups(self, line: Line, direction: Direction) -> tuple[SegmentGroup, ...]:
        """Ordered interval-code groups for one (line, direction) table."""
        return self._groups[(line, direction)]

    def station_index(self, line: Line, station_id: int) -> int | None:
        """Position of a station in a line's order, or None if the line doesn't serve it."""
        return self._indexes[line].get(station_id)

    def resolve(self, line: Line, direction: Direction, interval_code: int) -> Resolution | None:
        """
        Resolve a raw interval code under the table for (line, direction).

        Returns:
            Resolution, or None when the code is not part of that table
        """
        return self._lookups[(line, direction)].get(interval_code)

    def interval_codes(self, line: Line, direction: Direction) -> frozenset[int]:
        """Every interval code listed in one table, mapped or not."""
        return frozenset(code for group in self._groups[(line, direction)] for code in group.codes)


@lru_cache(maxsize=1)
def get_topology() -> NetworkTopology:
    """Process-wide topology built from the shipped tables."""
    return NetworkTopology()
