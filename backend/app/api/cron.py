"""HTTP triggers for scheduled jobs (for hosts without Celery Beat)."""

import hmac

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.core.clients import AppClients, get_app_clients, get_job_context
from app.core.config import settings
from app.services.jobs import JobContext, run_history_cleanup, run_morning_notifications, run_poll_cycle
from app.services.tram_service import TramApiError

logger = structlog.get_logger(__name__)


def verify_cron_secret(authorization: str | None = Header(None)) -> None:
    """
    Require ``Authorization: Bearer {CRON_SECRET}`` when a secret is configured.

    Raises:
        HTTPException: 401 if the header does not match
    """
    if not settings.CRON_SECRET:
        return
    expected = f"Bearer {settings.CRON_SECRET}"
    if authorization is None or not hmac.compare_digest(authorization, expected):
        logger.warning("cron_unauthorized")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(verify_cron_secret)])


def _error_response(error: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"status": "error", "error": str(error)},
    )


@router.post("/poll", response_model=None)
async def trigger_poll(
    force: bool = False,
    context: JobContext = Depends(get_job_context),
) -> dict[str, object] | JSONResponse:
    """
    Run one poll cycle.

    Outside operating hours the cycle is skipped unless ``force`` is set.
    """
    result = await run_poll_cycle(context, respect_operating_hours=not force)
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "error": result.error},
        )
    return {"status": "success", **result.as_dict()}


@router.post("/morning", response_model=None)
async def trigger_morning(context: JobContext = Depends(get_job_context)) -> dict[str, object] | JSONResponse:
    """Send the morning summary to every user with enabled subscriptions."""
    try:
        result = await run_morning_notifications(context)
    except (TramApiError, SQLAlchemyError) as e:
        logger.error("morning_job_failed", error=str(e))
        return _error_response(e)
    return {"status": "success", "tram_count": result.tram_count, "notification_count": result.notification_count}


@router.post("/cleanup", response_model=None)
async def trigger_cleanup(clients: AppClients = Depends(get_app_clients)) -> dict[str, object] | JSONResponse:
    """Delete expired notification history."""
    try:
        deleted = await run_history_cleanup(clients.session_factory)
    except SQLAlchemyError as e:
        logger.error("cleanup_job_failed", error=str(e))
        return _error_response(e)
    return {"status": "success", "deleted": deleted}
