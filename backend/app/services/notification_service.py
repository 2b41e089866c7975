"""Notification service for sending tram approach and morning messages via LINE."""

from collections.abc import Sequence
from datetime import datetime

import structlog

from app.core.telemetry import service_span
from app.network.stations import Station
from app.schemas.tram import ApproachingTram, StationArrivals
from app.services.line_service import LineMessagingClient
from app.services.messages import build_approach_message, build_morning_message
from app.utils.pii import hash_pii

logger = structlog.get_logger(__name__)


class NotificationService:
    """Composes notification messages and pushes them through LINE."""

    def __init__(self, line_client: LineMessagingClient) -> None:
        """
        Initialize the notification service.

        Args:
            line_client: LINE transport used for push messages
        """
        self.line_client = line_client

    async def send_approach_notification(
        self,
        line_user_id: str,
        station: Station,
        tram: ApproachingTram,
    ) -> None:
        """
        Tell a user that a tram is at their trigger distance.

        Raises:
            LineApiError: If the push fails
        """
        with service_span("notification.send_approach", "notification-service") as span:
            span.set_attribute("notification.type", "approach")
            span.set_attribute("notification.recipient_hash", hash_pii(line_user_id))
            span.set_attribute("notification.station_id", station.id)
            span.set_attribute("notification.stops_away", tram.stops_away)

            await self.line_client.push_message(line_user_id, [build_approach_message(station, tram)])

    async def send_morning_notification(
        self,
        line_user_id: str,
        arrivals: Sequence[StationArrivals],
        now: datetime,
    ) -> None:
        """
        Send one morning summary covering all of a user's stations.

        Args:
            line_user_id: Recipient
            arrivals: Next trams per subscribed (station, direction)
            now: Local time for the header

        Raises:
            LineApiError: If the push fails
        """
        with service_span("notification.send_morning", "notification-service") as span:
            span.set_attribute("notification.type", "morning")
            span.set_attribute("notification.recipient_hash", hash_pii(line_user_id))
            span.set_attribute("notification.station_count", len(arrivals))

            await self.line_client.push_message(line_user_id, [build_morning_message(arrivals, now)])
