"""
Amadeus Offer Endpoints - uncached offers for pricing
"""
from fastapi import APIRouter, Depends, Query
from typing import Optional

from flybook.config import settings
from flybook.schemas.common import ok
from flybook.services.errors import ValidationError
from flybook.services.flight_search import (
    FlightSearchService,
    build_search_query,
    get_flight_search_service,
)

router = APIRouter()


@router.get("/offers")
async def search_offers(
    origin: Optional[str] = Query(None, description="Origin airport code (IATA)"),
    destination: Optional[str] = Query(None, description="Destination airport code (IATA)"),
    departure_date: Optional[str] = Query(None, alias="date", description="Departure date (YYYY-MM-DD)"),
    adults: int = Query(1),
    travel_class: str = Query("ECONOMY", alias="travelClass"),
    max_results: Optional[int] = Query(None, alias="max"),
    service: FlightSearchService = Depends(get_flight_search_service),
):
    """
    Fetch fresh Amadeus offers, normalized, bypassing the search cache.
    """
    if not origin or not destination:
        raise ValidationError("origin and destination are required")
    if not departure_date:
        raise ValidationError("date is required (YYYY-MM-DD)")

    query = build_search_query(
        origin=origin,
        destination=destination,
        departure_date=departure_date,
        adults=adults,
        travel_class=travel_class,
        max_results=max_results or settings.SEARCH_DEFAULT_LIMIT,
        currency=settings.DEFAULT_CURRENCY,
    )

    offers = await service.offers(query)
    return ok(
        {"offers": [o.model_dump(mode="json", by_alias=True) for o in offers]},
        "Amadeus flight offers fetched",
    )
