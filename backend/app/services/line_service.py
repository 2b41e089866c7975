"""LINE Messaging API transport."""

import base64
import hashlib
import hmac
from typing import Any

import httpx
import structlog
from opentelemetry.trace import SpanKind

from app.core.config import require_config, settings
from app.core.telemetry import service_span
from app.schemas.line import LineProfile
from app.utils.pii import hash_pii

logger = structlog.get_logger(__name__)

# LINE accepts at most five message objects per reply/push request
MAX_MESSAGES_PER_REQUEST = 5

Message = dict[str, Any]


class LineApiError(Exception):
    """A LINE Messaging API call failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def verify_signature(body: bytes, signature: str | None, channel_secret: str) -> bool:
    """
    Check an X-Line-Signature header against the raw request body.

    The signature is base64(HMAC-SHA256(channel_secret, body)).

    Args:
        body: Raw request body, exactly as received
        signature: Header value, None if absent
        channel_secret: LINE channel secret

    Returns:
        True if the signature matches
    """
    if not signature:
        return False
    digest = hmac.new(channel_secret.encode(), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode()
    return hmac.compare_digest(expected, signature)


def build_line_http_client() -> httpx.AsyncClient:
    """
    Create the HTTP client for the Messaging API.

    Raises:
        ValueError: If LINE_CHANNEL_ACCESS_TOKEN is not configured
    """
    require_config("LINE_CHANNEL_ACCESS_TOKEN")
    return httpx.AsyncClient(
        base_url=settings.LINE_API_BASE_URL,
        timeout=settings.LINE_API_TIMEOUT,
        headers={"Authorization": f"Bearer {settings.LINE_CHANNEL_ACCESS_TOKEN}"},
    )


class LineMessagingClient:
    """Reply, push and profile calls over an injected httpx client."""

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        """
        Initialize the LINE client.

        Args:
            http_client: Client with base URL and bearer token set
                (see build_line_http_client)
        """
        self.http_client = http_client

    async def _request(self, method: str, path: str, operation: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.http_client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("line_api_request_failed", operation=operation, error=str(e))
            msg = f"LINE {operation} failed: {e}"
            raise LineApiError(msg) from e

        if response.is_error:
            logger.error(
                "line_api_http_error",
                operation=operation,
                status_code=response.status_code,
                body=response.text[:500],
            )
            msg = f"LINE {operation} failed: HTTP {response.status_code}"
            raise LineApiError(msg, status_code=response.status_code)
        return response

    async def reply_message(self, reply_token: str, messages: list[Message]) -> None:
        """
        Reply to a webhook event.

        Raises:
            LineApiError: If the request fails
        """
        with service_span("line.reply_message", "line", kind=SpanKind.CLIENT) as span:
            span.set_attribute("line.message_count", len(messages))
            await self._request(
                "POST",
                "/v2/bot/message/reply",
                "reply",
                json={"replyToken": reply_token, "messages": messages[:MAX_MESSAGES_PER_REQUEST]},
            )

    async def push_message(self, to: str, messages: list[Message]) -> None:
        """
        Push messages to a user outside a reply.

        Raises:
            LineApiError: If the request fails
        """
        recipient_hash = hash_pii(to)
        with service_span("line.push_message", "line", kind=SpanKind.CLIENT) as span:
            span.set_attribute("line.recipient_hash", recipient_hash)
            span.set_attribute("line.message_count", len(messages))
            await self._request(
                "POST",
                "/v2/bot/message/push",
                "push",
                json={"to": to, "messages": messages[:MAX_MESSAGES_PER_REQUEST]},
            )
            logger.info("line_push_sent", recipient_hash=recipient_hash, message_count=len(messages))

    async def get_profile(self, user_id: str) -> LineProfile:
        """
        Fetch a user's display name.

        Raises:
            LineApiError: If the request fails
        """
        with service_span("line.get_profile", "line", kind=SpanKind.CLIENT):
            response = await self._request("GET", f"/v2/bot/profile/{user_id}", "get_profile")
            return LineProfile.model_validate(response.json())
