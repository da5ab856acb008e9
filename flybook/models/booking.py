"""
Booking & FlightStatusTracker Models
"""
from sqlalchemy import (
    Column, String, Integer, Boolean, Date, DateTime, Numeric, JSON, ForeignKey, Uuid,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import uuid

from flybook.utils.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentStatus:
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class BookingStatus:
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    pnr = Column(String(16), nullable=False, unique=True, index=True)

    passengers = Column(JSON, nullable=False)  # [{fullName, age, gender}]
    seats = Column(JSON, nullable=False, default=list)
    cabin_class = Column(String(32), nullable=False, default="economy")

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)

    extra_legroom = Column(Boolean, nullable=False, default=False)
    extra_luggage_kg = Column(Integer, nullable=False, default=0)

    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING)
    booking_status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED)

    # Embedded NormalizedFlight, stored by alias
    flight = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    user = relationship("User", back_populates="bookings")
    tracker = relationship(
        "FlightStatusTracker",
        back_populates="booking",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Booking {self.pnr} {self.booking_status}>"


class FlightStatusTracker(Base):
    __tablename__ = "flight_status_trackers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    booking_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    flight_iata = Column(String(16))
    scheduled_departure_date = Column(Date)

    last_status = Column(String(50), nullable=False, default="unknown")
    last_payload = Column(JSON)
    last_checked_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    booking = relationship("Booking", back_populates="tracker")

    def __repr__(self):
        return f"<FlightStatusTracker {self.flight_iata} {self.last_status}>"
