"""Tests for distance resolution and approaching-tram search."""

import pytest
from app.network.stations import Direction, Line
from app.network.topology import NetworkTopology
from app.services.distance_service import (
    MINUTES_PER_STOP,
    estimate_minutes,
    find_approaching_trams,
    resolve_distance,
    stops_between,
)

from tests.helpers.fakes import make_position

KAWARAMACHI = 6
KARASHIMACHO = 8
SUIDOCHO = 12
KENGUNMACHI = 34


class TestEstimateMinutes:
    @pytest.mark.parametrize(("stops", "minutes"), [(0, 1), (1, 2), (2, 4), (5, 10)])
    def test_fixed_per_stop_model(self, stops: int, minutes: int) -> None:
        assert estimate_minutes(stops) == minutes

    def test_per_stop_constant(self) -> None:
        assert MINUTES_PER_STOP == 2


class TestStopsBetween:
    def test_down_counts_forward(self, topology: NetworkTopology) -> None:
        assert stops_between(topology, Line.A, KAWARAMACHI, KARASHIMACHO, Direction.DOWN) == 2

    def test_up_is_negation_of_down(self, topology: NetworkTopology) -> None:
        for line in Line:
            order = topology.station_order(line)
            for current in order[::5]:
                for target in order[::4]:
                    down = stops_between(topology, line, current, target, Direction.DOWN)
                    up = stops_between(topology, line, current, target, Direction.UP)
                    assert down == -up

    def test_station_not_on_line_returns_none(self, topology: NetworkTopology) -> None:
        assert stops_between(topology, Line.B, KAWARAMACHI, KARASHIMACHO, Direction.DOWN) is None


class TestResolveDistance:
    def test_worked_example_down(self, topology: NetworkTopology) -> None:
        """Line A down code 18 approaches 河原町; 辛島町 is two stops further."""
        result = resolve_distance(topology, make_position(18), KARASHIMACHO, Direction.DOWN)

        assert result is not None
        assert result.stops_away == 2
        assert result.estimated_minutes == 4
        assert result.current_station_id == KAWARAMACHI
        assert result.is_at_station is False

    def test_target_behind_going_up_is_negative(self, topology: NetworkTopology) -> None:
        """Same report read as up: 祇園橋 (index 3) is ahead of 呉服町, 辛島町 is behind."""
        position = make_position(18, direction=Direction.UP)
        assert resolve_distance(topology, position, 4, Direction.UP).stops_away == 1
        assert resolve_distance(topology, position, KARASHIMACHO, Direction.UP).stops_away == -3

    def test_direction_mismatch_returns_none(self, topology: NetworkTopology) -> None:
        assert resolve_distance(topology, make_position(18), 4, Direction.UP) is None

    def test_unknown_code_returns_none(self, topology: NetworkTopology) -> None:
        assert resolve_distance(topology, make_position(999), KARASHIMACHO, Direction.DOWN) is None

    def test_target_on_other_line_returns_none(self, topology: NetworkTopology) -> None:
        """A line-A tram is never "approaching" a line-B-only stop."""
        assert resolve_distance(topology, make_position(18), 25, Direction.DOWN) is None

    def test_at_station_is_zero_stops(self, topology: NetworkTopology) -> None:
        result = resolve_distance(topology, make_position(30), KARASHIMACHO, Direction.DOWN)
        assert result.stops_away == 0
        assert result.is_at_station is True

    def test_line_b_tram_on_shared_corridor(self, topology: NetworkTopology) -> None:
        """B down code 28 approaches 辛島町; 水道町 is four stops after it."""
        result = resolve_distance(topology, make_position(28, line=Line.B), SUIDOCHO, Direction.DOWN)
        assert result.stops_away == 4
        assert result.current_station_id == KARASHIMACHO

    def test_pure_and_idempotent(self, topology: NetworkTopology) -> None:
        position = make_position(42)
        first = resolve_distance(topology, position, KENGUNMACHI, Direction.DOWN)
        second = resolve_distance(topology, position, KENGUNMACHI, Direction.DOWN)
        assert first == second


class TestFindApproachingTrams:
    def test_filters_range_and_sorts_nearest_first(self, topology: NetworkTopology) -> None:
        positions = [
            make_position(18, vehicle_id=1),  # 2 stops from 辛島町
            make_position(24, vehicle_id=2),  # at 慶徳校前: 1 stop
            make_position(4, vehicle_id=3),  # at 二本木口: 6 stops
            make_position(42, vehicle_id=4),  # past 辛島町
            make_position(18, direction=Direction.UP, vehicle_id=5),  # wrong direction
        ]

        trams = find_approaching_trams(topology, positions, KARASHIMACHO, Direction.DOWN, max_stops=5)

        assert [tram.vehicle_id for tram in trams] == [2, 1]
        assert [tram.stops_away for tram in trams] == [1, 2]

    def test_limit(self, topology: NetworkTopology) -> None:
        positions = [make_position(code, vehicle_id=code) for code in (4, 8, 12, 20, 24)]
        trams = find_approaching_trams(topology, positions, KARASHIMACHO, Direction.DOWN, limit=2)
        assert [tram.stops_away for tram in trams] == [1, 2]

    def test_min_stops_zero_includes_tram_at_station(self, topology: NetworkTopology) -> None:
        positions = [make_position(30, vehicle_id=7)]
        assert find_approaching_trams(topology, positions, KARASHIMACHO, Direction.DOWN) == []
        trams = find_approaching_trams(topology, positions, KARASHIMACHO, Direction.DOWN, min_stops=0)
        assert trams[0].stops_away == 0

    def test_ties_keep_feed_order(self, topology: NetworkTopology) -> None:
        positions = [make_position(18, vehicle_id=11), make_position(19, vehicle_id=12)]
        trams = find_approaching_trams(topology, positions, KARASHIMACHO, Direction.DOWN)
        assert [tram.vehicle_id for tram in trams] == [11, 12]

    def test_super_low_floor_flag(self, topology: NetworkTopology) -> None:
        positions = [make_position(18, vehicle_type=2)]
        (tram,) = find_approaching_trams(topology, positions, KARASHIMACHO, Direction.DOWN)
        assert tram.is_super_low_floor is True
        assert tram.vehicle_type_label == "超低床車"
