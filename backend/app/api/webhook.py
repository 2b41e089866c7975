"""LINE Messaging API webhook endpoint."""

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import ValidationError

from app.core.clients import AppClients, get_app_clients, get_event_runner, get_line_client
from app.core.config import settings
from app.schemas.line import WebhookRequest, WebhookResponse
from app.services.line_service import LineMessagingClient, verify_signature
from app.services.webhook_service import BackgroundEventRunner, process_webhook_event

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["webhook"])


@router.post("/webhook", response_model=WebhookResponse)
async def receive_webhook(
    request: Request,
    x_line_signature: str | None = Header(None),
    clients: AppClients = Depends(get_app_clients),
    line_client: LineMessagingClient = Depends(get_line_client),
    runner: BackgroundEventRunner = Depends(get_event_runner),
) -> WebhookResponse:
    """
    Accept a batch of LINE events.

    The signature is checked against the raw body before anything is parsed.
    Events are handed to the background runner and the response is returned
    without waiting for them.

    Raises:
        HTTPException: 401 on a missing or invalid signature, 400 on a
            malformed body, 500 if the channel secret is not configured
    """
    if not settings.LINE_CHANNEL_SECRET:
        logger.error("line_channel_secret_not_configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="LINE channel is not configured.",
        )

    body = await request.body()
    if not x_line_signature:
        logger.warning("webhook_signature_missing")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing signature")
    if not verify_signature(body, x_line_signature, settings.LINE_CHANNEL_SECRET):
        logger.warning("webhook_signature_invalid")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        payload = WebhookRequest.model_validate_json(body)
    except ValidationError as e:
        logger.warning("webhook_body_invalid", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid request body") from e

    for event in payload.events:
        runner.submit(
            process_webhook_event(
                event,
                line_client=line_client,
                tram_client=clients.tram_client,
                topology=clients.topology,
                session_factory=clients.session_factory,
            ),
            name=f"webhook-{event.type}",
        )
    logger.info("webhook_events_accepted", event_count=len(payload.events))
    return WebhookResponse(status="ok")
