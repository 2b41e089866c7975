"""Celery tasks for the scheduled jobs.

Each task runs its async job in the worker's persistent event loop with the
worker-wide JobContext.
"""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypedDict, TypeVar

import structlog
from sqlalchemy.exc import SQLAlchemyError

from app.celery.app import celery_app
from app.celery.database import get_worker_job_context, get_worker_loop, get_worker_session_factory
from app.services.jobs import run_history_cleanup, run_morning_notifications, run_poll_cycle
from app.services.tram_service import TramApiError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def run_in_worker_loop(
    coro_func: Callable[..., Awaitable[T]],
    *args: Any,  # noqa: ANN401 - Pass-through args to async function
    **kwargs: Any,  # noqa: ANN401 - Pass-through kwargs to async function
) -> T:
    """
    Run an async function in the worker's persistent event loop.

    Raises:
        RuntimeError: If worker not initialized or event loop is closed
    """
    loop = get_worker_loop()
    return loop.run_until_complete(coro_func(*args, **kwargs))


class TaskRequest(Protocol):
    """Protocol for Celery task request object."""

    @property
    def retries(self) -> int:
        """Number of times task has been retried."""
        ...


class BoundTask(Protocol):
    """Protocol for Celery bound task self parameter."""

    @property
    def request(self) -> TaskRequest:
        """Task request object."""
        ...

    def retry(self, exc: Exception | None = None, countdown: int | None = None) -> Exception:
        """Retry the task (raises)."""
        ...


class PollTaskResult(TypedDict):
    """Result from poll_trams task."""

    success: bool
    skipped: bool
    tram_count: int
    notification_count: int
    error: str | None


class MorningTaskResult(TypedDict):
    status: str
    tram_count: int
    notification_count: int


class CleanupTaskResult(TypedDict):
    status: str
    deleted: int


@celery_app.task(name="app.celery.tasks.poll_trams")
def poll_trams() -> PollTaskResult:
    """
    Run one poll cycle (skipped outside operating hours).

    A failed cycle is not retried; the next scheduled tick polls again.
    """
    result = run_in_worker_loop(run_poll_cycle, get_worker_job_context())
    logger.info(
        "poll_trams_task_completed",
        success=result.success,
        skipped=result.skipped,
        tram_count=result.tram_count,
        notification_count=result.notification_count,
    )
    return PollTaskResult(
        success=result.success,
        skipped=result.skipped,
        tram_count=result.tram_count,
        notification_count=result.notification_count,
        error=result.error,
    )


@celery_app.task(  # type: ignore[arg-type]
    bind=True,
    max_retries=3,
    name="app.celery.tasks.send_morning_notifications",
)
def send_morning_notifications(self: BoundTask) -> MorningTaskResult:
    """
    Send every user a summary of the trams nearest their stations.

    Raises:
        Retry: On feed or database failure (30s countdown)
    """
    try:
        result = run_in_worker_loop(run_morning_notifications, get_worker_job_context())
    except (TramApiError, SQLAlchemyError) as exc:
        logger.error(
            "morning_notifications_task_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            retry_count=self.request.retries,
        )
        raise self.retry(exc=exc, countdown=30) from exc

    logger.info(
        "morning_notifications_task_completed",
        tram_count=result.tram_count,
        notification_count=result.notification_count,
    )
    return MorningTaskResult(
        status="success",
        tram_count=result.tram_count,
        notification_count=result.notification_count,
    )


@celery_app.task(  # type: ignore[arg-type]
    bind=True,
    max_retries=3,
    name="app.celery.tasks.cleanup_notification_history",
)
def cleanup_notification_history(self: BoundTask) -> CleanupTaskResult:
    """Delete notification history older than the retention window."""
    try:
        deleted = run_in_worker_loop(run_history_cleanup, get_worker_session_factory())
    except SQLAlchemyError as exc:
        logger.error(
            "cleanup_history_task_failed",
            error=str(exc),
            retry_count=self.request.retries,
        )
        raise self.retry(exc=exc, countdown=60) from exc

    logger.info("cleanup_history_task_completed", deleted=deleted)
    return CleanupTaskResult(status="success", deleted=deleted)
