"""
Flight Schemas
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, Literal, Optional
from datetime import date
import re

IATA_AIRPORT_RE = re.compile(r"^[A-Z]{3}$")

PROVIDER_LEGACY = "legacy"
PROVIDER_AMADEUS_OFFER = "amadeus-offer"

Provider = Literal["legacy", "amadeus-offer"]


class SearchQuery(BaseModel):
    """An offer search, immutable so it can be fingerprinted safely"""
    model_config = ConfigDict(frozen=True)

    origin: str
    destination: str
    departure_date: date
    adults: int = Field(1, ge=1)
    travel_class: str = "ECONOMY"
    max_results: int = Field(20, ge=1)
    currency: str = "INR"

    @field_validator("origin", "destination", mode="before")
    @classmethod
    def _iata_code(cls, value: Any) -> str:
        code = str(value or "").strip().upper()
        if not IATA_AIRPORT_RE.match(code):
            raise ValueError("must be a 3-letter IATA airport code")
        return code

    @field_validator("departure_date", mode="before")
    @classmethod
    def _iso_date(cls, value: Any) -> Any:
        if isinstance(value, str) and not re.match(r"^\d{4}-\d{2}-\d{2}$", value):
            raise ValueError("must be YYYY-MM-DD")
        return value

    @field_validator("travel_class", "currency", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> str:
        return str(value or "").strip().upper()

    @field_validator("max_results")
    @classmethod
    def _cap_results(cls, value: int) -> int:
        # The offers endpoint accepts at most 50 results per call
        return min(value, 50)

    def to_upstream_params(self) -> Dict[str, Any]:
        """Query parameters for GET /v2/shopping/flight-offers"""
        return {
            "originLocationCode": self.origin,
            "destinationLocationCode": self.destination,
            "departureDate": self.departure_date.isoformat(),
            "adults": self.adults,
            "travelClass": self.travel_class,
            "currencyCode": self.currency,
            "max": self.max_results,
        }


class Price(BaseModel):
    total: Optional[str] = None
    currency: Optional[str] = None


class NormalizedFlight(BaseModel):
    """Canonical flight record shared by search results and bookings"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    provider: Provider
    flight_iata: Optional[str] = None
    flight_icao: Optional[str] = None
    flight_number: Optional[str] = None

    airline_name: Optional[str] = None
    airline_iata: Optional[str] = None

    dep_iata: str
    arr_iata: str
    dep_airport: Optional[str] = None
    arr_airport: Optional[str] = None

    dep_scheduled: Optional[str] = None
    arr_scheduled: Optional[str] = None

    status: Optional[str] = None
    offer_id: Optional[str] = None
    price: Optional[Price] = None

    # Original upstream payload, untouched
    raw: Any = None

    @property
    def scheduled_departure_date(self) -> Optional[date]:
        """Calendar date of the scheduled departure, if it can be read"""
        if not self.dep_scheduled:
            return None
        try:
            return date.fromisoformat(self.dep_scheduled[:10])
        except ValueError:
            return None
