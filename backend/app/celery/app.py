"""Celery application instance and configuration."""

import structlog
from celery.signals import beat_init
from opentelemetry import trace

from app.core.config import require_config, settings
from app.core.logging import configure_logging
from celery import Celery

logger = structlog.get_logger(__name__)

# Configure logging for Celery workers so structlog output goes through Celery's handlers
configure_logging(log_level=settings.LOG_LEVEL)

require_config("CELERY_BROKER_URL", "CELERY_RESULT_BACKEND")

celery_app = Celery("tram_notifier")

celery_app.conf.update(
    broker_url=settings.CELERY_BROKER_URL,
    result_backend=settings.CELERY_RESULT_BACKEND,
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # crontab entries (morning summary) are evaluated in local time
    timezone=settings.TIMEZONE,
    enable_utc=True,
    task_track_started=True,
    # A poll cycle must finish well inside a few intervals
    task_time_limit=120,
    task_soft_time_limit=90,
    # Don't hijack root logger - let structlog handle it
    worker_hijack_root_logger=False,
)

# CeleryInstrumentor wraps task execution in spans. The TracerProvider is set
# in worker_process_init (database.py) after fork.
if settings.OTEL_ENABLED:
    from opentelemetry.instrumentation.celery import CeleryInstrumentor

    CeleryInstrumentor().instrument()
    logger.info("celery_otel_instrumentation_enabled")


@beat_init.connect
def init_beat_otel(
    **kwargs: object,
) -> None:
    """Give the Beat scheduler process its own TracerProvider."""
    if not settings.OTEL_ENABLED:
        return
    from app.core.telemetry import get_tracer_provider  # noqa: PLC0415  # Lazy import for fork-safety

    if provider := get_tracer_provider():
        trace.set_tracer_provider(provider)
        logger.info("beat_otel_tracer_provider_initialized")


# Import tasks and schedules to register them with celery_app.
# The schedules import populates celery_app.conf.beat_schedule and must remain.
from app.celery import (  # noqa: E402
    schedules,  # noqa: F401
    tasks,  # noqa: F401
)
