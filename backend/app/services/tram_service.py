"""Client for the Kumamoto City tram position feed."""

from typing import Any

import httpx
import structlog
from opentelemetry.trace import SpanKind
from pydantic import ValidationError

from app.core.config import settings
from app.core.telemetry import service_span
from app.network.stations import Direction, Line
from app.schemas.tram import TramPosition

logger = structlog.get_logger(__name__)

POSITIONS_PATH = "/web01List"


class TramApiError(Exception):
    """The position feed could not be fetched or understood."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def build_tram_http_client() -> httpx.AsyncClient:
    """
    Create the HTTP client used for the position feed.

    The caller owns the client and must close it.
    """
    return httpx.AsyncClient(
        base_url=settings.TRAM_API_BASE_URL,
        timeout=settings.TRAM_API_TIMEOUT,
        headers={
            "User-Agent": settings.TRAM_API_USER_AGENT,
            "Accept": "application/json",
        },
    )


def parse_positions(payload: Any) -> list[TramPosition]:
    """
    Turn a decoded web01List body into positions.

    Items that fail validation are skipped; a body that is not a list fails
    the whole fetch.

    Raises:
        TramApiError: If the payload is not a JSON list
    """
    if not isinstance(payload, list):
        msg = f"Unexpected tram API payload type: {type(payload).__name__}"
        raise TramApiError(msg)

    positions: list[TramPosition] = []
    for item in payload:
        try:
            positions.append(TramPosition.model_validate(item))
        except ValidationError as e:
            logger.warning("tram_position_invalid", item=item, error=str(e))
    return positions


class TramPositionClient:
    """Fetches live tram positions over an injected httpx client."""

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        """
        Initialize the position client.

        Args:
            http_client: Client configured with the feed's base URL
                (see build_tram_http_client)
        """
        self.http_client = http_client

    async def fetch_positions(self) -> list[TramPosition]:
        """
        Fetch every tram currently reported by the feed.

        Returns:
            Positions in feed order

        Raises:
            TramApiError: On transport errors, non-2xx status, or a body that
                is not a JSON list
        """
        with service_span("tram_api.fetch_positions", "tram-api", kind=SpanKind.CLIENT) as span:
            try:
                response = await self.http_client.post(
                    POSITIONS_PATH,
                    content=b"",
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
            except httpx.HTTPError as e:
                logger.error("tram_api_request_failed", error=str(e))
                msg = f"Tram API request failed: {e}"
                raise TramApiError(msg) from e

            span.set_attribute("http.response.status_code", response.status_code)
            if not response.is_success:
                logger.error("tram_api_http_error", status_code=response.status_code)
                msg = f"Tram API error: HTTP {response.status_code}"
                raise TramApiError(msg, status_code=response.status_code)

            try:
                payload = response.json()
            except ValueError as e:
                logger.error("tram_api_invalid_json", error=str(e))
                msg = "Tram API returned invalid JSON"
                raise TramApiError(msg, status_code=response.status_code) from e

            positions = parse_positions(payload)
            span.set_attribute("tram.count", len(positions))
            logger.debug("tram_positions_fetched", count=len(positions))
            return positions


def filter_positions(
    positions: list[TramPosition],
    line: Line | None = None,
    direction: Direction | None = None,
) -> list[TramPosition]:
    """Filter positions by line and/or direction."""
    return [
        position
        for position in positions
        if (line is None or position.line == line) and (direction is None or position.direction == direction)
    ]
