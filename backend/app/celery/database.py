"""Per-worker resources for Celery: event loop, database engine, HTTP clients.

Workers need their own engine and HTTP clients separate from the FastAPI
application. A persistent event loop is created when the worker process
initializes (after fork) and lives as long as the worker, so pooled
database connections and HTTP connections are reused across tasks.
"""

import asyncio
import contextlib
import threading

import httpx
import structlog
from celery.signals import worker_process_init, worker_process_shutdown
from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.network.topology import get_topology
from app.services.jobs import JobContext
from app.services.line_service import LineMessagingClient, build_line_http_client
from app.services.notification_service import NotificationService
from app.services.tram_service import TramPositionClient, build_tram_http_client

_worker_loop: asyncio.AbstractEventLoop | None = None
_worker_engine: AsyncEngine | None = None
_worker_session_factory: async_sessionmaker[AsyncSession] | None = None
_worker_http_clients: list[httpx.AsyncClient] = []
_worker_job_context: JobContext | None = None

# RLock: get_worker_job_context calls get_worker_session_factory under the lock
_init_lock = threading.RLock()

logger = structlog.get_logger(__name__)


@worker_process_init.connect
def init_worker_resources(
    **kwargs: object,
) -> None:
    """
    Create the persistent event loop after the worker process forks.

    Engine and clients are created lazily on first use, bound to this loop.
    """
    global _worker_loop  # noqa: PLW0603

    if _worker_loop is not None and not _worker_loop.is_closed():
        logger.debug("worker_process_init_loop_already_exists")
        return

    logger.info("worker_process_init_creating_persistent_loop")
    _worker_loop = asyncio.new_event_loop()
    asyncio.set_event_loop(_worker_loop)

    if settings.OTEL_ENABLED:
        from app.core.telemetry import get_tracer_provider  # noqa: PLC0415  # Lazy import for fork-safety

        if provider := get_tracer_provider():
            trace.set_tracer_provider(provider)
            logger.info("worker_otel_tracer_provider_initialized")

    logger.info("worker_process_init_completed")


async def _close_worker_resources(engine: AsyncEngine | None, http_clients: list[httpx.AsyncClient]) -> None:
    for client in http_clients:
        await client.aclose()
    if engine is not None:
        await engine.dispose()


@worker_process_shutdown.connect
def cleanup_worker_resources(
    **kwargs: object,
) -> None:
    """Close HTTP clients, dispose the engine, then close the event loop."""
    global _worker_loop, _worker_engine, _worker_session_factory, _worker_http_clients, _worker_job_context  # noqa: PLW0603
    logger.info("worker_process_shutdown_cleaning_up")

    if _worker_loop is None:
        return

    with _init_lock:
        loop = _worker_loop
        engine = _worker_engine
        http_clients = _worker_http_clients

        _worker_loop = None
        _worker_engine = None
        _worker_session_factory = None
        _worker_http_clients = []
        _worker_job_context = None

        try:
            loop.run_until_complete(_close_worker_resources(engine, http_clients))
            if settings.OTEL_ENABLED:
                from app.core.telemetry import shutdown_tracer_provider  # noqa: PLC0415  # Lazy import for fork-safety

                shutdown_tracer_provider()
        except (OSError, RuntimeError, httpx.HTTPError) as exc:
            # Shutting down; nothing left to propagate to
            logger.warning("worker_shutdown_cleanup_error", error=str(exc), error_type=type(exc).__name__)
        finally:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                with contextlib.suppress(asyncio.CancelledError):
                    loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.close()
            asyncio.set_event_loop(None)

    logger.info("worker_process_shutdown_completed")


def get_worker_loop() -> asyncio.AbstractEventLoop:
    """
    Get the worker's persistent event loop.

    Raises:
        RuntimeError: If init_worker_resources was not called or the loop is closed
    """
    if _worker_loop is None:
        msg = (
            "Worker event loop not initialized. "
            "Ensure init_worker_resources was called (via worker_process_init signal)."
        )
        raise RuntimeError(msg)
    if _worker_loop.is_closed():
        msg = "Worker event loop has been closed. Cannot run tasks after cleanup_worker_resources has been called."
        raise RuntimeError(msg)
    return _worker_loop


def get_worker_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory bound to this worker's pooled engine."""
    global _worker_engine, _worker_session_factory  # noqa: PLW0603
    if _worker_session_factory is None:
        with _init_lock:
            if _worker_session_factory is None:
                _worker_engine = create_async_engine(
                    settings.DATABASE_URL,
                    echo=settings.DATABASE_ECHO,
                    pool_size=settings.DATABASE_POOL_SIZE,
                    max_overflow=settings.DATABASE_MAX_OVERFLOW,
                )
                _worker_session_factory = async_sessionmaker(
                    _worker_engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False,
                )
    return _worker_session_factory


def get_worker_job_context() -> JobContext:
    """
    Job collaborators shared by every task in this worker.

    Raises:
        ValueError: If LINE credentials are not configured
    """
    global _worker_job_context  # noqa: PLW0603
    if _worker_job_context is None:
        with _init_lock:
            if _worker_job_context is None:
                tram_http = build_tram_http_client()
                line_http = build_line_http_client()
                _worker_http_clients.extend((tram_http, line_http))
                _worker_job_context = JobContext(
                    tram_client=TramPositionClient(tram_http),
                    notifier=NotificationService(LineMessagingClient(line_http)),
                    topology=get_topology(),
                    session_factory=get_worker_session_factory(),
                )
    return _worker_job_context
