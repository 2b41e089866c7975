"""Alert evaluation: decide which subscriptions fire for a batch of tram positions."""

import uuid
from collections.abc import Sequence
from datetime import UTC, datetime, time, timedelta, tzinfo
from itertools import groupby
from typing import TYPE_CHECKING, Protocol
from zoneinfo import ZoneInfo

import structlog

if TYPE_CHECKING:
    from opentelemetry.trace import Span

from app.core.config import settings
from app.core.telemetry import service_span
from app.models.subscription import Subscription
from app.network.stations import Station, direction_label, get_station
from app.network.topology import NetworkTopology
from app.schemas.tram import ApproachingTram, StationArrivals, TramPosition
from app.services.distance_service import find_approaching_trams, resolve_distance
from app.services.line_service import LineApiError
from app.utils.pii import hash_pii

logger = structlog.get_logger(__name__)


# ==================== Collaborator Protocols ====================


class SubscriptionStore(Protocol):
    """Read side of the subscription store used by the evaluator."""

    async def get_active_subscriptions(self) -> list[Subscription]:
        """Enabled subscriptions of active users, with ``user`` loaded."""
        ...


class HistoryStore(Protocol):
    """Dedup history used by the evaluator."""

    async def has_recent(self, subscription_id: uuid.UUID, vehicle_id: int, since: datetime) -> bool:
        """Check for a record of the pair newer than ``since``."""
        ...

    async def record(self, subscription_id: uuid.UUID, vehicle_id: int, notified_at: datetime | None = None) -> object:
        """Record a dispatched notification."""
        ...


class Notifier(Protocol):
    """Message dispatch used by the evaluator."""

    async def send_approach_notification(self, line_user_id: str, station: Station, tram: ApproachingTram) -> None:
        """Push one approach notification."""
        ...

    async def send_morning_notification(
        self,
        line_user_id: str,
        arrivals: Sequence[StationArrivals],
        now: datetime,
    ) -> None:
        """Push one combined morning summary."""
        ...


# ==================== Pure Helper Functions ====================
# Pure functions with no side effects for easy testing


def get_day_code(weekday: int) -> str:
    """
    Convert Python weekday integer to day code string.

    Example:
        >>> get_day_code(0)
        'MON'
        >>> get_day_code(6)
        'SUN'
    """
    return ["MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN"][weekday]


def is_time_in_window(current_time: time, start_time: time | None, end_time: time | None) -> bool:
    """
    Check if a local time falls within a subscription's time window.

    Both ends are inclusive. When start_time is later than end_time the window
    wraps past midnight. A missing bound means no restriction.

    Example:
        >>> is_time_in_window(time(23, 30), time(22, 0), time(6, 0))
        True
        >>> is_time_in_window(time(12, 0), time(22, 0), time(6, 0))
        False
        >>> is_time_in_window(time(8, 0), time(7, 0), time(9, 0))
        True
    """
    if start_time is None or end_time is None:
        return True
    if start_time <= end_time:
        return start_time <= current_time <= end_time
    return current_time >= start_time or current_time <= end_time


def is_day_allowed(current_day: str, days_of_week: Sequence[str] | None) -> bool:
    """
    Check a day code against a subscription's weekday list.

    Example:
        >>> is_day_allowed("SAT", ["MON", "TUE"])
        False
        >>> is_day_allowed("SAT", None)
        True
    """
    if not days_of_week:
        return True
    return current_day in days_of_week


def is_subscription_scheduled(subscription: Subscription, local_now: datetime) -> bool:
    """Apply the weekday and time-of-day gates at a local time."""
    if not is_day_allowed(get_day_code(local_now.weekday()), subscription.days_of_week):
        return False
    # Whole minutes, so the end minute itself is inside the window
    current_minute = local_now.time().replace(second=0, microsecond=0)
    return is_time_in_window(current_minute, subscription.start_time, subscription.end_time)


def init_alert_processing_stats() -> dict[str, int]:
    """
    Initialize alert processing statistics dictionary.

    Example:
        >>> init_alert_processing_stats()["notifications_sent"]
        0
    """
    return {
        "subscriptions_checked": 0,
        "schedule_skipped": 0,
        "matches_found": 0,
        "duplicates_skipped": 0,
        "notifications_sent": 0,
        "errors": 0,
    }


def collect_station_arrivals(
    topology: NetworkTopology,
    positions: Sequence[TramPosition],
    subscriptions: Sequence[Subscription],
    *,
    min_stops: int,
    max_stops: int,
    limit: int,
) -> list[StationArrivals]:
    """
    Nearest trams for each subscription's (station, direction).

    Subscriptions pointing at unknown stations are left out.
    """
    arrivals: list[StationArrivals] = []
    for subscription in subscriptions:
        if not (station := get_station(subscription.station_id)):
            logger.warning(
                "subscription_station_not_found",
                subscription_id=str(subscription.id),
                station_id=subscription.station_id,
            )
            continue
        arrivals.append(
            StationArrivals(
                station_id=station.id,
                station_name=station.name,
                direction=subscription.direction,
                direction_label=direction_label(station, subscription.direction),
                trams=find_approaching_trams(
                    topology,
                    positions,
                    station.id,
                    subscription.direction,
                    min_stops=min_stops,
                    max_stops=max_stops,
                    limit=limit,
                ),
            )
        )
    return arrivals


# ==================== Evaluator ====================


class TramAlertService:
    """
    Evaluates tram positions against subscriptions and dispatches notifications.

    Approach mode runs every poll: a subscription fires for a vehicle when the
    vehicle is exactly ``trigger_stops`` away, the schedule allows it, and the
    pair was not notified within the dedup window. Morning mode sends every
    user a summary of the next trams at each of their stations.

    Store errors propagate and abort the cycle. Dispatch errors are logged per
    item and leave no history, so the pair can fire again on a later poll.
    """

    def __init__(
        self,
        subscriptions: SubscriptionStore,
        history: HistoryStore,
        notifier: Notifier,
        topology: NetworkTopology,
        *,
        dedup_window: timedelta | None = None,
        timezone: tzinfo | None = None,
        morning_max_stops: int | None = None,
        morning_trams_per_station: int | None = None,
    ) -> None:
        """
        Initialize the alert service.

        Args:
            subscriptions: Subscription store
            history: Notification history store
            notifier: Message dispatcher
            topology: Resolution tables
            dedup_window: Look-back for duplicate suppression (default from settings)
            timezone: Zone schedules are evaluated in (default from settings)
            morning_max_stops: Horizon for morning summaries (default from settings)
            morning_trams_per_station: Trams listed per station in the morning
        """
        self.subscriptions = subscriptions
        self.history = history
        self.notifier = notifier
        self.topology = topology
        self.dedup_window = dedup_window or timedelta(minutes=settings.DEDUP_WINDOW_MINUTES)
        self.timezone = timezone or ZoneInfo(settings.TIMEZONE)
        self.morning_max_stops = morning_max_stops or settings.MORNING_MAX_STOPS
        self.morning_trams_per_station = morning_trams_per_station or settings.MORNING_TRAMS_PER_STATION

    def _set_span_stats_attributes(self, span: "Span", stats: dict[str, int]) -> None:
        for key, value in stats.items():
            span.set_attribute(f"alert.{key}", value)

    async def process_positions(
        self,
        positions: Sequence[TramPosition],
        now: datetime | None = None,
    ) -> dict[str, int]:
        """
        Run one approach-notification cycle.

        Args:
            positions: Snapshot from the position feed
            now: Evaluation instant (UTC), defaults to the current time

        Returns:
            Statistics dictionary (see init_alert_processing_stats)
        """
        now = now or datetime.now(UTC)
        local_now = now.astimezone(self.timezone)

        with service_span("alert.process_positions", "alert-service") as span:
            span.set_attribute("alert.tram_count", len(positions))
            stats = init_alert_processing_stats()
            try:
                subscriptions = await self.subscriptions.get_active_subscriptions()
                logger.debug("active_subscriptions_fetched", count=len(subscriptions))

                for subscription in subscriptions:
                    stats["subscriptions_checked"] += 1
                    await self._process_subscription(subscription, positions, now, local_now, stats)

                logger.info("alert_processing_completed", tram_count=len(positions), **stats)
            finally:
                self._set_span_stats_attributes(span, stats)
            return stats

    async def _process_subscription(
        self,
        subscription: Subscription,
        positions: Sequence[TramPosition],
        now: datetime,
        local_now: datetime,
        stats: dict[str, int],
    ) -> None:
        if not is_subscription_scheduled(subscription, local_now):
            stats["schedule_skipped"] += 1
            return

        if not (station := get_station(subscription.station_id)):
            logger.warning(
                "subscription_station_not_found",
                subscription_id=str(subscription.id),
                station_id=subscription.station_id,
            )
            return

        since = now - self.dedup_window
        for position in positions:
            result = resolve_distance(self.topology, position, subscription.station_id, subscription.direction)
            if result is None or result.stops_away != subscription.trigger_stops:
                continue
            stats["matches_found"] += 1

            if await self.history.has_recent(subscription.id, position.vehicle_id, since):
                stats["duplicates_skipped"] += 1
                logger.debug(
                    "notification_duplicate_skipped",
                    subscription_id=str(subscription.id),
                    vehicle_id=position.vehicle_id,
                )
                continue

            tram = ApproachingTram(
                vehicle_id=position.vehicle_id,
                line=position.line,
                direction=position.direction,
                stops_away=result.stops_away,
                estimated_minutes=result.estimated_minutes,
                current_station_id=result.current_station_id,
                is_at_station=result.is_at_station,
                is_super_low_floor=position.is_super_low_floor,
            )
            line_user_id = subscription.user.line_user_id
            try:
                await self.notifier.send_approach_notification(line_user_id, station, tram)
            except LineApiError as e:
                stats["errors"] += 1
                logger.error(
                    "approach_notification_failed",
                    subscription_id=str(subscription.id),
                    vehicle_id=position.vehicle_id,
                    recipient_hash=hash_pii(line_user_id),
                    error=str(e),
                    exc_info=e,
                )
                continue

            await self.history.record(subscription.id, position.vehicle_id, notified_at=now)
            stats["notifications_sent"] += 1
            logger.info(
                "approach_notification_sent",
                subscription_id=str(subscription.id),
                station_id=station.id,
                vehicle_id=position.vehicle_id,
                stops_away=result.stops_away,
                recipient_hash=hash_pii(line_user_id),
            )

    async def send_morning_notifications(
        self,
        positions: Sequence[TramPosition],
        now: datetime | None = None,
    ) -> int:
        """
        Send each user one summary of the next trams at all their stations.

        Distance and dedup gates do not apply. Users whose push fails are
        logged and skipped.

        Returns:
            Number of users notified
        """
        now = now or datetime.now(UTC)
        local_now = now.astimezone(self.timezone)

        with service_span("alert.send_morning_notifications", "alert-service") as span:
            subscriptions = await self.subscriptions.get_active_subscriptions()
            ordered = sorted(subscriptions, key=lambda s: s.user.line_user_id)

            users_notified = 0
            errors = 0
            for line_user_id, group in groupby(ordered, key=lambda s: s.user.line_user_id):
                arrivals = collect_station_arrivals(
                    self.topology,
                    positions,
                    list(group),
                    min_stops=1,
                    max_stops=self.morning_max_stops,
                    limit=self.morning_trams_per_station,
                )
                if not arrivals:
                    continue
                try:
                    await self.notifier.send_morning_notification(line_user_id, arrivals, local_now)
                except LineApiError as e:
                    errors += 1
                    logger.error(
                        "morning_notification_failed",
                        recipient_hash=hash_pii(line_user_id),
                        error=str(e),
                        exc_info=e,
                    )
                    continue
                users_notified += 1

            span.set_attribute("alert.users_notified", users_notified)
            span.set_attribute("alert.errors", errors)
            logger.info("morning_notifications_completed", users_notified=users_notified, errors=errors)
            return users_notified
