"""
Flight Search Service - read-through cache over Amadeus offer search
"""
from typing import Any, List, Tuple
import logging

from fastapi import Depends
from prometheus_client import Counter
from pydantic import ValidationError as PydanticValidationError

from flybook.config import settings
from flybook.schemas.flight import NormalizedFlight, SearchQuery
from flybook.services.amadeus import AmadeusClient, get_amadeus_client
from flybook.services.errors import ValidationError
from flybook.services.normalizer import normalize_offers
from flybook.services.search_cache import SearchCache, fingerprint, get_search_cache

logger = logging.getLogger(__name__)

SEARCH_CACHE_LOOKUPS = Counter(
    "flight_search_cache_lookups_total",
    "Flight search cache lookups",
    ["result"],
)


def build_search_query(**fields: Any) -> SearchQuery:
    """Build a SearchQuery, reporting the first invalid field as a ValidationError"""
    try:
        return SearchQuery(**fields)
    except PydanticValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error.get("loc", ())) or "query"
        message = error.get("msg", "is invalid").removeprefix("Value error, ")
        raise ValidationError(f"{field} {message}", detail=e.errors(include_url=False, include_context=False, include_input=False)) from e


class FlightSearchService:
    """
    Offer search with a short-lived result cache.

    A miss costs exactly one upstream call and one cache write; identical
    queries within the TTL are served from the cache.
    """

    def __init__(self, client: AmadeusClient, cache: SearchCache, ttl_seconds: float):
        self.client = client
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def search(self, query: SearchQuery) -> Tuple[List[NormalizedFlight], bool]:
        """Returns (results, from_cache)"""
        key = fingerprint(query)

        cached = await self.cache.get(key)
        if cached is not None:
            SEARCH_CACHE_LOOKUPS.labels(result="hit").inc()
            logger.info(f"Cache HIT for flight search: {query.origin} -> {query.destination}")
            return cached, True

        SEARCH_CACHE_LOOKUPS.labels(result="miss").inc()
        logger.info(f"Cache MISS - searching flights: {query.origin} -> {query.destination}")

        results = normalize_offers(await self.client.search_offers(query))
        await self.cache.put(key, results, self.ttl_seconds)
        return results, False

    async def offers(self, query: SearchQuery) -> List[NormalizedFlight]:
        """Uncached offer search"""
        return normalize_offers(await self.client.search_offers(query))


def get_flight_search_service(
    client: AmadeusClient = Depends(get_amadeus_client),
    cache: SearchCache = Depends(get_search_cache),
) -> FlightSearchService:
    """
    Dependency that provides a FlightSearchService
    Usage: service: FlightSearchService = Depends(get_flight_search_service)
    """
    return FlightSearchService(client, cache, settings.CACHE_TTL_FLIGHTS)
