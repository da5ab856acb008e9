"""SQLAlchemy Models"""
from flybook.models.user import User
from flybook.models.booking import Booking, BookingStatus, FlightStatusTracker, PaymentStatus

__all__ = [
    "User", "Booking", "BookingStatus", "FlightStatusTracker", "PaymentStatus",
]
