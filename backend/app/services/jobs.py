"""Scheduled jobs: poll cycle, morning summary and history cleanup.

Each job takes its collaborators explicitly. Database sessions are opened
per job run so overlapping poll cycles never share one.
"""

from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import session_scope
from app.network.topology import NetworkTopology, get_topology
from app.schemas.tram import TramPosition
from app.services.alert_service import TramAlertService
from app.services.history_service import HistoryService
from app.services.line_service import LineMessagingClient, build_line_http_client
from app.services.notification_service import NotificationService
from app.services.polling_service import PollResult, cleanup_history, poll_once, smart_poll
from app.services.subscription_service import SubscriptionService
from app.services.tram_service import TramPositionClient, build_tram_http_client

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class JobContext:
    """Long-lived collaborators shared by job runs in one process."""

    tram_client: TramPositionClient
    notifier: NotificationService
    topology: NetworkTopology
    session_factory: async_sessionmaker[AsyncSession] | None = None


@dataclass(frozen=True, slots=True)
class MorningResult:
    """Outcome of one morning summary run."""

    tram_count: int
    notification_count: int


@asynccontextmanager
async def open_job_context(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[JobContext]:
    """
    Build HTTP clients for the tram feed and LINE, closing them on exit.

    Raises:
        ValueError: If LINE credentials are not configured
    """
    async with build_tram_http_client() as tram_http, build_line_http_client() as line_http:
        yield JobContext(
            tram_client=TramPositionClient(tram_http),
            notifier=NotificationService(LineMessagingClient(line_http)),
            topology=get_topology(),
            session_factory=session_factory,
        )


def _alert_service(context: JobContext, session: AsyncSession) -> TramAlertService:
    return TramAlertService(
        subscriptions=SubscriptionService(session),
        history=HistoryService(session),
        notifier=context.notifier,
        topology=context.topology,
    )


async def run_poll_cycle(
    context: JobContext,
    *,
    respect_operating_hours: bool = True,
    now: datetime | None = None,
) -> PollResult:
    """Run one fetch-evaluate-dispatch cycle."""

    async def evaluate(positions: Sequence[TramPosition]) -> dict[str, int]:
        async with session_scope(context.session_factory) as session:
            return await _alert_service(context, session).process_positions(positions, now=now)

    if respect_operating_hours:
        return await smart_poll(context.tram_client.fetch_positions, evaluate, now=now)
    return await poll_once(context.tram_client.fetch_positions, evaluate)


async def run_morning_notifications(context: JobContext, now: datetime | None = None) -> MorningResult:
    """
    Fetch positions and send every user their morning summary.

    Raises:
        TramApiError: If positions cannot be fetched
        SQLAlchemyError: If subscriptions cannot be read
    """
    positions = await context.tram_client.fetch_positions()
    async with session_scope(context.session_factory) as session:
        notified = await _alert_service(context, session).send_morning_notifications(positions, now=now)
    return MorningResult(tram_count=len(positions), notification_count=notified)


async def run_history_cleanup(session_factory: async_sessionmaker[AsyncSession] | None = None) -> int:
    """Prune dedup history past the retention window."""
    async with session_scope(session_factory) as session:
        return await cleanup_history(HistoryService(session))
