"""
Booking Schemas
"""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Literal, Optional
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from flybook.schemas.flight import Provider


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class PassengerIn(CamelModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    age: int = Field(..., ge=0, le=130)
    gender: Optional[str] = Field(None, max_length=20)


class AddOns(CamelModel):
    extra_legroom: bool = False
    extra_luggage_kg: int = Field(0, ge=0)


class BookingCreate(CamelModel):
    """
    Schema for creating a booking.

    ``flight`` is either a legacy flight or an Amadeus offer (raw or wrapped);
    ``provider`` may name the shape explicitly instead of relying on detection.
    Presence checks on flight, passengers and amount happen in BookingService
    so their messages match the rest of the booking errors.
    """
    flight: Optional[Dict[str, Any]] = None
    provider: Optional[Provider] = None
    passengers: List[PassengerIn] = []
    seats: List[str] = []
    cabin_class: Optional[str] = None
    amount: Optional[Decimal] = None
    add_ons: AddOns = Field(default_factory=AddOns)


class PaymentUpdate(CamelModel):
    status: Literal["paid", "failed"]


class BookingResponse(CamelModel):
    """Schema for booking response"""
    id: UUID
    pnr: str
    passengers: List[Dict[str, Any]]
    seats: List[str]
    cabin_class: str
    amount: float
    currency: str
    add_ons: AddOns
    payment_status: str
    booking_status: str
    flight: Dict[str, Any]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_booking(cls, booking) -> "BookingResponse":
        return cls(
            id=booking.id,
            pnr=booking.pnr,
            passengers=booking.passengers or [],
            seats=booking.seats or [],
            cabin_class=booking.cabin_class,
            amount=float(booking.amount),
            currency=booking.currency,
            add_ons=AddOns(
                extra_legroom=booking.extra_legroom,
                extra_luggage_kg=booking.extra_luggage_kg,
            ),
            payment_status=booking.payment_status,
            booking_status=booking.booking_status,
            flight=booking.flight,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )


class TrackerResponse(CamelModel):
    """Last known status of a booking's flight"""
    booking_id: UUID
    flight_iata: Optional[str]
    scheduled_departure_date: Optional[date]
    last_status: str
    last_payload: Optional[Any] = None
    last_checked_at: Optional[datetime] = None
