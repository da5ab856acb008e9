"""
Flight Search & Status Endpoints
"""
from fastapi import APIRouter, Depends, Query
from typing import Optional
import logging

from flybook.config import settings
from flybook.schemas.common import ok
from flybook.services.amadeus import AmadeusClient, get_amadeus_client
from flybook.services.errors import ValidationError
from flybook.services.flight_search import (
    FlightSearchService,
    build_search_query,
    get_flight_search_service,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/search")
async def search_flights(
    dep_iata: Optional[str] = Query(None, alias="depIata", description="Origin airport code (IATA)"),
    arr_iata: Optional[str] = Query(None, alias="arrIata", description="Destination airport code (IATA)"),
    departure_date: Optional[str] = Query(None, alias="date", description="Departure date (YYYY-MM-DD)"),
    adults: int = Query(1, description="Number of adult passengers"),
    travel_class: str = Query("ECONOMY", alias="travelClass", description="ECONOMY, PREMIUM_ECONOMY, BUSINESS or FIRST"),
    limit: Optional[int] = Query(None, description="Maximum offers, capped at 50"),
    service: FlightSearchService = Depends(get_flight_search_service),
):
    """
    Search Amadeus flight offers between two airports.
    Results are cached for 5 minutes per distinct query.
    """
    if not dep_iata or not arr_iata:
        raise ValidationError("depIata and arrIata are required")
    if not departure_date:
        raise ValidationError("date is required (YYYY-MM-DD) for Amadeus offers")

    query = build_search_query(
        origin=dep_iata,
        destination=arr_iata,
        departure_date=departure_date[:10],
        adults=adults,
        travel_class=travel_class,
        max_results=limit or settings.SEARCH_DEFAULT_LIMIT,
        currency=settings.DEFAULT_CURRENCY,
    )

    results, from_cache = await service.search(query)
    return ok(
        {
            "fromCache": from_cache,
            "results": [r.model_dump(mode="json", by_alias=True) for r in results],
        },
        "Flights fetched (cache)" if from_cache else "Flights fetched",
    )


@router.get("/status")
async def get_flight_status(
    carrier_code: Optional[str] = Query(None, alias="carrierCode"),
    flight_number: Optional[str] = Query(None, alias="flightNumber"),
    departure_date: Optional[str] = Query(None, alias="date"),
    client: AmadeusClient = Depends(get_amadeus_client),
):
    """
    Live schedule/status lookup for a single flight, not cached.
    """
    if not carrier_code or not flight_number or not departure_date:
        raise ValidationError("carrierCode, flightNumber, date are required")

    data = await client.get_flight_status(carrier_code, flight_number, departure_date[:10])
    return ok({"results": (data or {}).get("data") or []}, "Flight status fetched")
