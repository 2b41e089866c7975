"""Tests for the alert evaluator and its pure helpers."""

from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo

import pytest
from app.network.stations import Direction, Line
from app.network.topology import NetworkTopology
from app.services.alert_service import (
    TramAlertService,
    collect_station_arrivals,
    get_day_code,
    init_alert_processing_stats,
    is_day_allowed,
    is_subscription_scheduled,
    is_time_in_window,
)
from freezegun import freeze_time

from tests.helpers.fakes import FakeHistoryStore, FakeNotifier, FakeSubscriptionStore, make_position, make_subscription

JST = ZoneInfo("Asia/Tokyo")
# Monday 2025-01-06 08:00 JST
MONDAY_MORNING = datetime(2025, 1, 5, 23, 0, tzinfo=UTC)


def _service(
    subscriptions: list,
    notifier: FakeNotifier,
    topology: NetworkTopology,
    history: FakeHistoryStore | None = None,
) -> TramAlertService:
    return TramAlertService(
        subscriptions=FakeSubscriptionStore(subscriptions),
        history=history or FakeHistoryStore(),
        notifier=notifier,
        topology=topology,
        dedup_window=timedelta(minutes=30),
        timezone=JST,
        morning_max_stops=15,
        morning_trams_per_station=2,
    )


# ==================== Pure Helper Tests ====================


class TestScheduleHelpers:
    @pytest.mark.parametrize(
        ("current", "expected"),
        [(time(23, 30), True), (time(5, 0), True), (time(22, 0), True), (time(6, 0), True), (time(12, 0), False)],
    )
    def test_overnight_window(self, current: time, expected: bool) -> None:
        assert is_time_in_window(current, time(22, 0), time(6, 0)) is expected

    def test_same_day_window_is_inclusive(self) -> None:
        assert is_time_in_window(time(7, 0), time(7, 0), time(9, 0))
        assert is_time_in_window(time(9, 0), time(7, 0), time(9, 0))
        assert not is_time_in_window(time(9, 1), time(7, 0), time(9, 0))

    def test_missing_bound_means_always(self) -> None:
        assert is_time_in_window(time(3, 0), None, None)

    def test_day_codes(self) -> None:
        assert get_day_code(0) == "MON"
        assert get_day_code(5) == "SAT"

    def test_day_allowed(self) -> None:
        assert is_day_allowed("MON", ["MON", "FRI"])
        assert not is_day_allowed("SUN", ["MON", "FRI"])
        assert is_day_allowed("SUN", None)
        assert is_day_allowed("SUN", [])

    def test_subscription_schedule_uses_local_time(self) -> None:
        subscription = make_subscription(start_time=time(7, 0), end_time=time(9, 0), days_of_week=["MON"])
        assert is_subscription_scheduled(subscription, MONDAY_MORNING.astimezone(JST))
        # Same instant read as UTC is Sunday 23:00
        assert not is_subscription_scheduled(subscription, MONDAY_MORNING)

    def test_end_minute_is_inside_window(self) -> None:
        subscription = make_subscription(8, start_time=time(22, 0), end_time=time(6, 0))

        assert is_subscription_scheduled(subscription, datetime(2025, 1, 6, 6, 0, 30, tzinfo=JST))
        assert not is_subscription_scheduled(subscription, datetime(2025, 1, 6, 6, 1, tzinfo=JST))

    def test_init_stats(self) -> None:
        stats = init_alert_processing_stats()
        assert set(stats) == {
            "subscriptions_checked",
            "schedule_skipped",
            "matches_found",
            "duplicates_skipped",
            "notifications_sent",
            "errors",
        }
        assert all(value == 0 for value in stats.values())


class TestCollectStationArrivals:
    def test_one_entry_per_subscription_with_labels(self, topology: NetworkTopology) -> None:
        subscriptions = [make_subscription(8, Direction.DOWN), make_subscription(6, Direction.UP)]
        positions = [make_position(18, vehicle_id=1), make_position(4, vehicle_id=2)]

        arrivals = collect_station_arrivals(topology, positions, subscriptions, min_stops=1, max_stops=15, limit=2)

        assert [entry.station_name for entry in arrivals] == ["辛島町", "河原町"]
        assert arrivals[0].direction_label == "健軍町方面"
        assert arrivals[1].direction_label == "田崎橋方面"
        assert [tram.vehicle_id for tram in arrivals[0].trams] == [1, 2]
        assert arrivals[1].trams == []

    def test_unknown_station_is_left_out(self, topology: NetworkTopology) -> None:
        arrivals = collect_station_arrivals(
            topology, [], [make_subscription(999)], min_stops=1, max_stops=15, limit=2
        )
        assert arrivals == []


# ==================== Approach Mode ====================


class TestProcessPositions:
    async def test_fires_at_exact_trigger_distance(self, topology: NetworkTopology, notifier: FakeNotifier) -> None:
        subscription = make_subscription(8, Direction.DOWN, trigger_stops=2)
        history = FakeHistoryStore()
        service = _service([subscription], notifier, topology, history)
        positions = [
            make_position(18, vehicle_id=1),  # 2 stops: fires
            make_position(24, vehicle_id=2),  # 1 stop: not the trigger distance
        ]

        stats = await service.process_positions(positions, now=MONDAY_MORNING)

        assert stats["subscriptions_checked"] == 1
        assert stats["matches_found"] == 1
        assert stats["notifications_sent"] == 1
        (line_user_id, station, tram) = notifier.approach[0]
        assert line_user_id == "U-rider-1"
        assert station.name == "辛島町"
        assert tram.vehicle_id == 1
        assert tram.stops_away == 2
        assert tram.estimated_minutes == 4
        assert tram.line == Line.A
        assert history.records == [(subscription.id, 1, MONDAY_MORNING)]

    async def test_dedup_window(self, topology: NetworkTopology, notifier: FakeNotifier) -> None:
        """At most one dispatch per (subscription, vehicle) within 30 minutes."""
        subscription = make_subscription(8, Direction.DOWN, trigger_stops=2)
        service = _service([subscription], notifier, topology)
        positions = [make_position(18, vehicle_id=1)]

        await service.process_positions(positions, now=MONDAY_MORNING)
        stats = await service.process_positions(positions, now=MONDAY_MORNING + timedelta(minutes=29))
        assert stats["duplicates_skipped"] == 1
        assert stats["notifications_sent"] == 0

        stats = await service.process_positions(positions, now=MONDAY_MORNING + timedelta(minutes=31))
        assert stats["notifications_sent"] == 1
        assert len(notifier.approach) == 2

    async def test_other_vehicle_is_not_a_duplicate(self, topology: NetworkTopology, notifier: FakeNotifier) -> None:
        service = _service([make_subscription(8, Direction.DOWN)], notifier, topology)

        await service.process_positions([make_position(18, vehicle_id=1)], now=MONDAY_MORNING)
        stats = await service.process_positions([make_position(19, vehicle_id=2)], now=MONDAY_MORNING)

        assert stats["notifications_sent"] == 1

    async def test_schedule_gate(self, topology: NetworkTopology, notifier: FakeNotifier) -> None:
        """Overnight-only subscription is skipped at 08:00 local."""
        subscription = make_subscription(8, Direction.DOWN, start_time=time(22, 0), end_time=time(6, 0))
        service = _service([subscription], notifier, topology)

        stats = await service.process_positions([make_position(18)], now=MONDAY_MORNING)

        assert stats["schedule_skipped"] == 1
        assert notifier.approach == []

    async def test_day_gate(self, topology: NetworkTopology, notifier: FakeNotifier) -> None:
        subscription = make_subscription(8, Direction.DOWN, days_of_week=["SAT", "SUN"])
        service = _service([subscription], notifier, topology)

        stats = await service.process_positions([make_position(18)], now=MONDAY_MORNING)

        assert stats["schedule_skipped"] == 1

    async def test_dispatch_failure_leaves_no_history(self, topology: NetworkTopology) -> None:
        notifier = FakeNotifier(failing_users={"U-rider-1"})
        history = FakeHistoryStore()
        service = _service([make_subscription(8, Direction.DOWN)], notifier, topology, history)

        stats = await service.process_positions([make_position(18)], now=MONDAY_MORNING)

        assert stats["errors"] == 1
        assert stats["notifications_sent"] == 0
        assert history.records == []

    async def test_dispatch_failure_does_not_block_other_users(self, topology: NetworkTopology) -> None:
        notifier = FakeNotifier(failing_users={"U-broken"})
        subscriptions = [
            make_subscription(8, Direction.DOWN, line_user_id="U-broken"),
            make_subscription(8, Direction.DOWN, line_user_id="U-fine"),
        ]
        service = _service(subscriptions, notifier, topology)

        stats = await service.process_positions([make_position(18)], now=MONDAY_MORNING)

        assert stats["errors"] == 1
        assert [recipient for recipient, _, _ in notifier.approach] == ["U-fine"]

    async def test_wrong_direction_and_unknown_codes_are_ignored(
        self, topology: NetworkTopology, notifier: FakeNotifier
    ) -> None:
        service = _service([make_subscription(8, Direction.DOWN)], notifier, topology)
        positions = [make_position(18, direction=Direction.UP), make_position(999)]

        stats = await service.process_positions(positions, now=MONDAY_MORNING)

        assert stats["matches_found"] == 0

    async def test_unknown_station_subscription_is_skipped(
        self, topology: NetworkTopology, notifier: FakeNotifier
    ) -> None:
        service = _service([make_subscription(999)], notifier, topology)
        stats = await service.process_positions([make_position(18)], now=MONDAY_MORNING)
        assert stats["notifications_sent"] == 0

    @freeze_time("2025-01-06 00:00:00")
    async def test_defaults_to_current_time(self, topology: NetworkTopology, notifier: FakeNotifier) -> None:
        history = FakeHistoryStore()
        service = _service([make_subscription(8, Direction.DOWN)], notifier, topology, history)

        await service.process_positions([make_position(18)])

        assert history.records[0][2] == datetime(2025, 1, 6, tzinfo=UTC)


# ==================== Morning Mode ====================


class TestMorningNotifications:
    async def test_one_summary_per_user(self, topology: NetworkTopology, notifier: FakeNotifier) -> None:
        first = make_subscription(8, Direction.DOWN, line_user_id="U-a")
        second = make_subscription(6, Direction.DOWN, user=first.user)
        other = make_subscription(12, Direction.DOWN, line_user_id="U-b")
        service = _service([first, other, second], notifier, topology)
        positions = [
            make_position(4, vehicle_id=1),
            make_position(18, vehicle_id=2),
            make_position(12, vehicle_id=3),
            make_position(8, vehicle_id=4),
        ]

        count = await service.send_morning_notifications(positions, now=MONDAY_MORNING)

        assert count == 2
        by_user = {recipient: arrivals for recipient, arrivals, _ in notifier.morning}
        assert [entry.station_id for entry in by_user["U-a"]] == [8, 6]
        # At most two trams per station, nearest first
        assert [tram.stops_away for tram in by_user["U-a"][0].trams] == [2, 4]
        assert notifier.morning[0][2] == MONDAY_MORNING.astimezone(JST)

    async def test_ignores_schedule_and_dedup(self, topology: NetworkTopology, notifier: FakeNotifier) -> None:
        subscription = make_subscription(8, Direction.DOWN, start_time=time(22, 0), end_time=time(23, 0))
        history = FakeHistoryStore()
        await history.record(subscription.id, 2, notified_at=MONDAY_MORNING)
        service = _service([subscription], notifier, topology, history)

        count = await service.send_morning_notifications([make_position(18, vehicle_id=2)], now=MONDAY_MORNING)

        assert count == 1
        assert notifier.morning[0][1][0].trams[0].vehicle_id == 2

    async def test_failed_user_is_not_counted(self, topology: NetworkTopology) -> None:
        notifier = FakeNotifier(failing_users={"U-a"})
        subscriptions = [
            make_subscription(8, Direction.DOWN, line_user_id="U-a"),
            make_subscription(8, Direction.DOWN, line_user_id="U-b"),
        ]
        service = _service(subscriptions, notifier, topology)

        count = await service.send_morning_notifications([], now=MONDAY_MORNING)

        assert count == 1
        assert notifier.morning[0][0] == "U-b"
        assert notifier.morning[0][1][0].trams == []
