"""
Offer Normalizer - reconciles provider flight shapes into NormalizedFlight

Two shapes reach the booking and search paths:

- legacy flights, with nested ``flight`` / ``airline`` / ``departure`` /
  ``arrival`` records (AviationStack style)
- Amadeus flight offers, either raw or wrapped by the client with the raw
  offer under ``rawOffer`` (or ``raw``) plus optional override fields

The shape is decided once in ``classify`` and every extractor below works on
a tagged variant, never on an unclassified dict.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union
import logging

from flybook.schemas.flight import (
    PROVIDER_AMADEUS_OFFER,
    PROVIDER_LEGACY,
    NormalizedFlight,
    Price,
)
from flybook.services.errors import NormalizationError

logger = logging.getLogger(__name__)

OFFER_STATUS = "offer"
RAW_OFFER_FIELDS = ("rawOffer", "raw")
LEGACY_RECORD_FIELDS = ("flight", "departure", "arrival")


@dataclass(frozen=True)
class LegacyFlight:
    payload: Dict[str, Any]


@dataclass(frozen=True)
class AmadeusOffer:
    # ``payload`` is what the client sent, ``offer`` the raw Amadeus offer.
    # For an unwrapped offer both are the same dict.
    payload: Dict[str, Any]
    offer: Dict[str, Any]


FlightVariant = Union[LegacyFlight, AmadeusOffer]


def _get(data: Any, *path: Any) -> Any:
    """Nested lookup that returns None instead of raising"""
    for key in path:
        if isinstance(key, int):
            if not isinstance(data, list) or not -len(data) <= key < len(data):
                return None
        elif not isinstance(data, dict):
            return None
        data = data[key] if isinstance(key, int) else data.get(key)
    return data


def _first(*values: Any) -> Optional[str]:
    """First non-empty value, as a string"""
    for value in values:
        if value is None or value == "":
            continue
        return str(value)
    return None


def _raw_offer(payload: Dict[str, Any]) -> Dict[str, Any]:
    for field in RAW_OFFER_FIELDS:
        candidate = payload.get(field)
        if isinstance(candidate, dict) and candidate:
            return candidate
    return payload


def detect_provider(payload: Dict[str, Any]) -> str:
    """Structural shape detection for payloads that do not declare a provider"""
    if "itineraries" in payload or isinstance(payload.get("rawOffer"), dict):
        return PROVIDER_AMADEUS_OFFER
    if any(isinstance(payload.get(f), dict) for f in LEGACY_RECORD_FIELDS):
        return PROVIDER_LEGACY
    return PROVIDER_AMADEUS_OFFER


def classify(payload: Any, provider: Optional[str] = None) -> FlightVariant:
    """Turn a client payload into a tagged variant"""
    if isinstance(payload, (LegacyFlight, AmadeusOffer)):
        return payload
    if not isinstance(payload, dict) or not payload:
        raise NormalizationError("Invalid flight selection")

    provider = provider or detect_provider(payload)
    if provider == PROVIDER_LEGACY:
        return LegacyFlight(payload)
    if provider == PROVIDER_AMADEUS_OFFER:
        return AmadeusOffer(payload, _raw_offer(payload))
    raise NormalizationError(f"Unknown flight provider: {provider}")


def _normalize_legacy(variant: LegacyFlight) -> Dict[str, Any]:
    flight = variant.payload
    return {
        "provider": PROVIDER_LEGACY,
        "flight_iata": _first(_get(flight, "flight", "iata")),
        "flight_icao": _first(_get(flight, "flight", "icao")),
        "flight_number": _first(_get(flight, "flight", "number")),
        "airline_name": _first(_get(flight, "airline", "name")),
        "airline_iata": _first(_get(flight, "airline", "iata")),
        "dep_iata": _first(_get(flight, "departure", "iata")),
        "arr_iata": _first(_get(flight, "arrival", "iata")),
        "dep_airport": _first(_get(flight, "departure", "airport")),
        "arr_airport": _first(_get(flight, "arrival", "airport")),
        "dep_scheduled": _first(_get(flight, "departure", "scheduled")),
        "arr_scheduled": _first(_get(flight, "arrival", "scheduled")),
        "status": _first(flight.get("flight_status"), flight.get("status")),
        "raw": flight.get("raw") or flight,
    }


def _normalize_amadeus(variant: AmadeusOffer) -> Dict[str, Any]:
    wrapper, offer = variant.payload, variant.offer

    # Only the outbound itinerary's route endpoints are kept; connections stay in raw
    segments = _get(offer, "itineraries", 0, "segments")
    if not isinstance(segments, list):
        segments = []
    first = segments[0] if segments else {}
    last = segments[-1] if segments else {}

    carrier = _get(first, "carrierCode")
    number = _get(first, "number")
    dep_iata = _first(
        _get(wrapper, "departure", "iata"),
        wrapper.get("depIata"),
        _get(first, "departure", "iataCode"),
        _get(first, "departure", "iata"),
    )
    arr_iata = _first(
        _get(wrapper, "arrival", "iata"),
        wrapper.get("arrIata"),
        _get(last, "arrival", "iataCode"),
        _get(last, "arrival", "iata"),
    )
    airline_iata = _first(
        _get(wrapper, "airline", "iata"),
        wrapper.get("airlineIata"),
        _get(offer, "validatingAirlineCodes", 0),
        carrier,
    )

    price = None
    if isinstance(offer.get("price"), dict):
        price = Price(
            total=_first(_get(offer, "price", "total")),
            currency=_first(_get(offer, "price", "currency")),
        )

    return {
        "provider": PROVIDER_AMADEUS_OFFER,
        "flight_iata": _first(
            _get(wrapper, "flight", "iata"),
            wrapper.get("flightIata"),
            f"{carrier}{number}" if carrier and number else None,
        ),
        "flight_icao": None,
        "flight_number": _first(
            _get(wrapper, "flight", "number"),
            wrapper.get("flightNumber"),
            number,
        ),
        "airline_name": airline_iata or "Airline",
        "airline_iata": airline_iata,
        "dep_iata": dep_iata,
        "arr_iata": arr_iata,
        # Offers only carry airport codes
        "dep_airport": dep_iata,
        "arr_airport": arr_iata,
        "dep_scheduled": _first(
            _get(wrapper, "departure", "scheduled"),
            wrapper.get("depScheduled"),
            _get(first, "departure", "at"),
        ),
        "arr_scheduled": _first(
            _get(wrapper, "arrival", "scheduled"),
            wrapper.get("arrScheduled"),
            _get(last, "arrival", "at"),
        ),
        "status": OFFER_STATUS,
        "offer_id": _first(offer.get("id")),
        "price": price,
        "raw": offer,
    }


def normalize(flight: Any, provider: Optional[str] = None) -> NormalizedFlight:
    """
    Convert a legacy flight or an Amadeus offer into a NormalizedFlight.

    Raises NormalizationError when the payload is empty, names an unknown
    provider, or lacks a departure or arrival airport after extraction.
    """
    variant = classify(flight, provider)
    if isinstance(variant, LegacyFlight):
        fields = _normalize_legacy(variant)
    else:
        fields = _normalize_amadeus(variant)

    if not fields["dep_iata"] or not fields["arr_iata"]:
        raise NormalizationError("Invalid flight data (missing route).")

    return NormalizedFlight(**fields)


def normalize_offers(response: Any) -> List[NormalizedFlight]:
    """Normalize every offer in a Flight Offers Search response body"""
    offers = _get(response, "data")
    if not isinstance(offers, list):
        return []

    results = []
    for offer in offers:
        if not isinstance(offer, dict):
            continue
        try:
            results.append(normalize(AmadeusOffer(offer, offer)))
        except NormalizationError as e:
            logger.warning(f"Skipping Amadeus offer {offer.get('id')}: {e.message}")
    return results
