"""Process-wide clients for the HTTP app, created in the lifespan and injected per request."""

from dataclasses import dataclass, field

import httpx
import structlog
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.network.topology import NetworkTopology, get_topology
from app.services.jobs import JobContext
from app.services.line_service import LineMessagingClient, build_line_http_client
from app.services.notification_service import NotificationService
from app.services.tram_service import TramPositionClient, build_tram_http_client
from app.services.webhook_service import BackgroundEventRunner

logger = structlog.get_logger(__name__)


@dataclass
class AppClients:
    """Clients owned by one application instance."""

    tram_http: httpx.AsyncClient
    line_http: httpx.AsyncClient | None
    topology: NetworkTopology
    runner: BackgroundEventRunner = field(default_factory=BackgroundEventRunner)
    session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def tram_client(self) -> TramPositionClient:
        return TramPositionClient(self.tram_http)

    @property
    def line_client(self) -> LineMessagingClient | None:
        if self.line_http is None:
            return None
        return LineMessagingClient(self.line_http)


def create_app_clients() -> AppClients:
    """
    Build clients at startup.

    The LINE client is left out when no access token is configured; endpoints
    that need it answer 500 instead of the whole app failing to boot.
    """
    line_http = None
    if settings.LINE_CHANNEL_ACCESS_TOKEN:
        line_http = build_line_http_client()
    else:
        logger.warning("line_client_not_configured", missing="LINE_CHANNEL_ACCESS_TOKEN")
    return AppClients(tram_http=build_tram_http_client(), line_http=line_http, topology=get_topology())


async def close_app_clients(clients: AppClients, drain_timeout: float = 10.0) -> None:
    """Wait for background webhook events, then close HTTP clients."""
    await clients.runner.drain(timeout=drain_timeout)
    await clients.tram_http.aclose()
    if clients.line_http is not None:
        await clients.line_http.aclose()


def get_app_clients(request: Request) -> AppClients:
    return request.app.state.clients


def get_tram_client(clients: AppClients = Depends(get_app_clients)) -> TramPositionClient:
    return clients.tram_client


def get_line_client(clients: AppClients = Depends(get_app_clients)) -> LineMessagingClient:
    """
    LINE client dependency.

    Raises:
        HTTPException: 500 if LINE credentials are not configured
    """
    if (client := clients.line_client) is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="LINE channel is not configured.",
        )
    return client


def get_network_topology(clients: AppClients = Depends(get_app_clients)) -> NetworkTopology:
    return clients.topology


def get_event_runner(clients: AppClients = Depends(get_app_clients)) -> BackgroundEventRunner:
    return clients.runner


def get_job_context(
    clients: AppClients = Depends(get_app_clients),
    line_client: LineMessagingClient = Depends(get_line_client),
) -> JobContext:
    return JobContext(
        tram_client=clients.tram_client,
        notifier=NotificationService(line_client),
        topology=clients.topology,
        session_factory=clients.session_factory,
    )
