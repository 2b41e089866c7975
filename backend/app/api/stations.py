"""API endpoints for stations and live tram positions."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.clients import get_network_topology, get_tram_client
from app.network.stations import STATIONS, Direction, Line, Station, direction_label, get_station, stations_for_line
from app.network.topology import NetworkTopology
from app.schemas.tram import StationArrivals, StationResponse, TramPosition
from app.services.distance_service import find_approaching_trams
from app.services.tram_service import TramApiError, TramPositionClient, filter_positions

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["stations"])


def _to_response(station: Station) -> StationResponse:
    return StationResponse(
        id=station.id,
        name=station.name,
        name_kana=station.name_kana,
        lines=sorted(station.lines),
    )


async def _fetch_positions(tram_client: TramPositionClient) -> list[TramPosition]:
    try:
        return await tram_client.fetch_positions()
    except TramApiError as e:
        logger.error("tram_api_unavailable", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tram position service is unavailable.",
        ) from e


# ==================== API Endpoints ====================


@router.get("/stations", response_model=list[StationResponse])
async def list_stations(
    line: Line | None = Query(None, description="Only stations served by this line"),
) -> list[StationResponse]:
    """
    List stations in network order.

    Without a line filter every station is returned once, single-line
    branches first.
    """
    stations = stations_for_line(line) if line is not None else list(STATIONS)
    return [_to_response(station) for station in stations]


@router.get("/stations/{station_id}/approaching", response_model=StationArrivals)
async def get_approaching_trams(
    station_id: int,
    direction: Direction = Query(..., description="Direction of travel at the station"),
    max_stops: int = Query(15, ge=0, le=30),
    limit: int | None = Query(None, ge=1),
    tram_client: TramPositionClient = Depends(get_tram_client),
    topology: NetworkTopology = Depends(get_network_topology),
) -> StationArrivals:
    """
    Trams heading to a station, nearest first.

    A tram standing at the station counts as 0 stops away.

    Raises:
        HTTPException: 404 if the station does not exist, 503 if the feed fails
    """
    if not (station := get_station(station_id)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Station not found.")

    positions = await _fetch_positions(tram_client)
    return StationArrivals(
        station_id=station.id,
        station_name=station.name,
        direction=direction,
        direction_label=direction_label(station, direction),
        trams=find_approaching_trams(
            topology,
            positions,
            station.id,
            direction,
            min_stops=0,
            max_stops=max_stops,
            limit=limit,
        ),
    )


@router.get("/trams", response_model=list[TramPosition])
async def list_trams(
    line: Line | None = Query(None),
    direction: Direction | None = Query(None),
    tram_client: TramPositionClient = Depends(get_tram_client),
) -> list[TramPosition]:
    """Raw positions from the feed, optionally filtered."""
    return filter_positions(await _fetch_positions(tram_client), line=line, direction=direction)
