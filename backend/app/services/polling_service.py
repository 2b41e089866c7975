"""Polling driver: fetch positions, evaluate alerts, on a fixed period."""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.telemetry import service_span
from app.schemas.tram import TramPosition
from app.services.history_service import HistoryService
from app.services.tram_service import TramApiError

logger = structlog.get_logger(__name__)

FetchPositions = Callable[[], Awaitable[list[TramPosition]]]
EvaluatePositions = Callable[[Sequence[TramPosition]], Awaitable[dict[str, int]]]


@dataclass(frozen=True, slots=True)
class PollResult:
    """Outcome of one poll cycle."""

    success: bool
    skipped: bool = False
    tram_count: int = 0
    notification_count: int = 0
    error: str | None = None

    def as_dict(self) -> dict[str, object]:
        result: dict[str, object] = {
            "success": self.success,
            "skipped": self.skipped,
            "tram_count": self.tram_count,
            "notification_count": self.notification_count,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


def is_within_operating_hours(
    now: datetime | None = None,
    start_hour: int | None = None,
    end_hour: int | None = None,
) -> bool:
    """
    Check the local clock against the daily service window [start, end).

    Args:
        now: Instant to check (aware, any zone), defaults to now
        start_hour: First operating hour (default OPERATING_HOURS_START)
        end_hour: First hour after service (default OPERATING_HOURS_END)

    Example:
        >>> from datetime import datetime
        >>> from zoneinfo import ZoneInfo
        >>> jst = ZoneInfo("Asia/Tokyo")
        >>> is_within_operating_hours(datetime(2025, 1, 6, 6, 0, tzinfo=jst), 6, 23)
        True
        >>> is_within_operating_hours(datetime(2025, 1, 6, 23, 0, tzinfo=jst), 6, 23)
        False
    """
    start = settings.OPERATING_HOURS_START if start_hour is None else start_hour
    end = settings.OPERATING_HOURS_END if end_hour is None else end_hour
    local_now = (now or datetime.now(UTC)).astimezone(ZoneInfo(settings.TIMEZONE))
    return start <= local_now.hour < end


async def poll_once(fetch: FetchPositions, evaluate: EvaluatePositions) -> PollResult:
    """
    Fetch positions and evaluate them once.

    A failed fetch aborts the cycle; no partial tram list is evaluated.
    Store errors from evaluation also abort the cycle.

    Returns:
        PollResult with success False and the error message on failure
    """
    with service_span("poll.cycle", "tram-poller") as span:
        try:
            positions = await fetch()
        except TramApiError as e:
            logger.error("poll_fetch_failed", error=str(e))
            span.set_attribute("poll.success", False)
            return PollResult(success=False, error=str(e))

        try:
            stats = await evaluate(positions)
        except SQLAlchemyError as e:
            logger.error("poll_evaluate_failed", error=str(e), exc_info=e)
            span.set_attribute("poll.success", False)
            return PollResult(success=False, tram_count=len(positions), error=str(e))

        notification_count = stats.get("notifications_sent", 0)
        span.set_attribute("poll.success", True)
        span.set_attribute("poll.tram_count", len(positions))
        span.set_attribute("poll.notification_count", notification_count)
        logger.info("poll_completed", tram_count=len(positions), notification_count=notification_count)
        return PollResult(success=True, tram_count=len(positions), notification_count=notification_count)


async def smart_poll(
    fetch: FetchPositions,
    evaluate: EvaluatePositions,
    now: datetime | None = None,
) -> PollResult:
    """Poll only during operating hours; outside them report a skipped success."""
    if not is_within_operating_hours(now):
        logger.debug("poll_skipped_outside_operating_hours")
        return PollResult(success=True, skipped=True)
    return await poll_once(fetch, evaluate)


async def cleanup_history(history: HistoryService, retention: timedelta | None = None) -> int:
    """
    Delete dedup history older than the retention window.

    Returns:
        Number of records deleted
    """
    retention = retention or timedelta(hours=settings.HISTORY_RETENTION_HOURS)
    with service_span("poll.cleanup_history", "tram-poller") as span:
        deleted = await history.prune(datetime.now(UTC) - retention)
        span.set_attribute("cleanup.deleted", deleted)
        return deleted


class TramPoller:
    """
    Long-running poll loop for a single process.

    Every ``interval`` seconds a new cycle task is spawned; a slow cycle does
    not delay the next tick, so cycles may overlap. ``stop()`` cancels the
    timer and waits for in-flight cycles to finish.
    """

    def __init__(
        self,
        cycle: Callable[[], Awaitable[PollResult]],
        interval: float | None = None,
    ) -> None:
        """
        Initialize the poller.

        Args:
            cycle: Coroutine function running one poll (e.g. a bound smart_poll)
            interval: Seconds between ticks (default POLL_INTERVAL_SECONDS)
        """
        self.cycle = cycle
        self.interval = interval if interval is not None else settings.POLL_INTERVAL_SECONDS
        self._timer: asyncio.Task[None] | None = None
        self._in_flight: set[asyncio.Task[PollResult]] = set()

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(self) -> None:
        """Start ticking. The first cycle runs immediately."""
        if self.is_running:
            logger.warning("poller_already_running")
            return
        logger.info("poller_started", interval_seconds=self.interval)
        self._timer = asyncio.create_task(self._run(), name="tram-poller-timer")

    async def stop(self) -> None:
        """Stop the timer and let running cycles complete."""
        if self._timer is not None:
            self._timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer
            self._timer = None
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        logger.info("poller_stopped")

    async def _run(self) -> None:
        while True:
            task = asyncio.create_task(self.cycle(), name="tram-poll-cycle")
            self._in_flight.add(task)
            task.add_done_callback(self._on_cycle_done)
            await asyncio.sleep(self.interval)

    def _on_cycle_done(self, task: "asyncio.Task[PollResult]") -> None:
        self._in_flight.discard(task)
        if task.cancelled():
            return
        if (exc := task.exception()) is not None:
            logger.error("poll_cycle_crashed", error=str(exc), exc_info=exc)
            return
        result = task.result()
        if not result.success:
            logger.warning("poll_cycle_failed", error=result.error)
