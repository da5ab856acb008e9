"""
Booking Service - materializes bookings and their status trackers
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID
import asyncio
import logging
import secrets
import string

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt

from flybook.config import Settings, settings as default_settings
from flybook.models import Booking, BookingStatus, FlightStatusTracker, PaymentStatus, User
from flybook.services.errors import NotFoundError, PersistenceError, ValidationError
from flybook.services.normalizer import normalize
from flybook.services.notifications import Notifier, get_notifier, render_booking_email
from flybook.utils.database import get_db

logger = logging.getLogger(__name__)

PNR_ALPHABET = string.ascii_uppercase + string.digits


def generate_pnr(length: int = 6) -> str:
    return "".join(secrets.choice(PNR_ALPHABET) for _ in range(length))


class PnrCollision(Exception):
    pass


def _parse_amount(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def _parse_booking_id(booking_id: Any) -> UUID:
    if isinstance(booking_id, UUID):
        return booking_id
    try:
        return UUID(str(booking_id))
    except ValueError:
        raise NotFoundError("Booking not found")


class BookingService:
    """
    Booking lifecycle for a single request.

    Bookings and their trackers are written in one transaction; the
    confirmation email is sent afterwards and may fail without affecting
    the booking.
    """

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[Notifier] = None,
        settings: Settings = default_settings,
        pnr_generator: Callable[[int], str] = generate_pnr,
    ):
        self.db = db
        self.notifier = notifier
        self.settings = settings
        self._pnr_generator = pnr_generator

    async def create_booking(
        self,
        owner: User,
        flight: Optional[Dict[str, Any]],
        passengers: Optional[List[Dict[str, Any]]],
        seats: Optional[List[str]] = None,
        cabin_class: Optional[str] = None,
        amount: Any = None,
        add_ons: Optional[Dict[str, Any]] = None,
        provider: Optional[str] = None,
    ) -> Booking:
        if not flight:
            raise ValidationError("Invalid flight selection")
        if not passengers:
            raise ValidationError("Passengers required")
        parsed_amount = _parse_amount(amount)
        if parsed_amount is None or parsed_amount <= 0:
            raise ValidationError("Valid amount required")

        normalized = normalize(flight, provider)
        add_ons = add_ons or {}
        now = datetime.now(timezone.utc)

        pnr = await self._allocate_pnr()
        booking = Booking(
            user_id=owner.id,
            pnr=pnr,
            passengers=list(passengers),
            seats=list(seats or []),
            cabin_class=cabin_class or "economy",
            amount=parsed_amount,
            currency=self.settings.DEFAULT_CURRENCY,
            extra_legroom=bool(add_ons.get("extraLegroom")),
            extra_luggage_kg=int(add_ons.get("extraLuggageKg") or 0),
            payment_status=PaymentStatus.PENDING,
            booking_status=BookingStatus.CONFIRMED,
            flight=normalized.model_dump(mode="json", by_alias=True),
            created_at=now,
            updated_at=now,
        )
        booking.tracker = FlightStatusTracker(
            flight_iata=normalized.flight_iata or normalized.flight_number,
            scheduled_departure_date=normalized.scheduled_departure_date,
            last_status=normalized.status or "unknown",
            last_payload=booking.flight.get("raw") or {},
            last_checked_at=now,
        )

        self.db.add(booking)
        await self._commit("Booking could not be saved")

        logger.info(
            f"Booking {booking.pnr} created for user {owner.id}: "
            f"{normalized.dep_iata} -> {normalized.arr_iata}"
        )
        await self._send_confirmation(owner, booking)
        return booking

    async def list_bookings(self, owner_id: UUID) -> List[Booking]:
        result = await self._execute(
            select(Booking)
            .where(Booking.user_id == owner_id)
            .order_by(Booking.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_booking(self, owner_id: Optional[UUID], booking_id: Any) -> Booking:
        """Load a booking, scoped to its owner unless owner_id is None"""
        statement = select(Booking).where(Booking.id == _parse_booking_id(booking_id))
        if owner_id is not None:
            statement = statement.where(Booking.user_id == owner_id)
        result = await self._execute(statement)
        booking = result.scalar_one_or_none()
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    async def get_tracker(self, owner_id: UUID, booking_id: Any) -> FlightStatusTracker:
        booking = await self.get_booking(owner_id, booking_id)
        result = await self._execute(
            select(FlightStatusTracker).where(FlightStatusTracker.booking_id == booking.id)
        )
        tracker = result.scalar_one_or_none()
        if tracker is None:
            raise NotFoundError("Flight status not available for this booking")
        return tracker

    async def cancel_booking(self, owner_id: UUID, booking_id: Any) -> Tuple[Booking, bool]:
        """Cancel a booking. Returns (booking, changed); repeat calls are no-ops."""
        booking = await self.get_booking(owner_id, booking_id)
        if booking.booking_status == BookingStatus.CANCELLED:
            return booking, False

        booking.booking_status = BookingStatus.CANCELLED
        booking.updated_at = datetime.now(timezone.utc)
        await self._commit("Booking could not be cancelled")
        logger.info(f"Booking {booking.pnr} cancelled")
        return booking, True

    async def record_payment(self, booking_id: Any, status: str) -> Booking:
        """Apply a payment outcome reported by the payment provider: pending -> paid | failed"""
        if status not in (PaymentStatus.PAID, PaymentStatus.FAILED):
            raise ValidationError(f"Invalid payment status: {status}")

        booking = await self.get_booking(None, booking_id)
        if booking.payment_status == status:
            return booking
        if booking.payment_status != PaymentStatus.PENDING:
            raise ValidationError(f"Payment already {booking.payment_status}")

        booking.payment_status = status
        booking.updated_at = datetime.now(timezone.utc)
        await self._commit("Payment status could not be saved")
        logger.info(f"Booking {booking.pnr} payment {status}")
        return booking

    async def _allocate_pnr(self) -> str:
        attempts = self.settings.PNR_MAX_ATTEMPTS
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(PnrCollision),
                stop=stop_after_attempt(attempts),
            ):
                with attempt:
                    pnr = self._pnr_generator(self.settings.PNR_LENGTH)
                    result = await self._execute(select(Booking.id).where(Booking.pnr == pnr))
                    taken = result.scalar_one_or_none()
                    if taken is not None:
                        logger.warning(f"PNR collision on {pnr}")
                        raise PnrCollision(pnr)
        except RetryError as e:
            raise PersistenceError(f"Could not allocate a unique PNR after {attempts} attempts") from e
        return pnr

    async def _execute(self, statement):
        try:
            return await self.db.execute(statement)
        except SQLAlchemyError as e:
            logger.error(f"Booking query failed: {e}")
            raise PersistenceError("Bookings are temporarily unavailable") from e

    async def _commit(self, message: str):
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(f"{message}: {e.orig}")
            raise PersistenceError(message) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"{message}: {e}")
            raise PersistenceError(message) from e

    async def _send_confirmation(self, owner: User, booking: Booking):
        if self.notifier is None or not owner.email:
            return
        subject, html, text = render_booking_email(booking)
        try:
            # Publishing talks to the broker synchronously
            await asyncio.to_thread(self.notifier.send, owner.email, subject, html, text)
        except Exception as e:
            logger.warning(f"Booking email for {booking.pnr} could not be queued: {e}")


def get_booking_service(
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> BookingService:
    """
    Dependency that provides a BookingService bound to the request session
    Usage: service: BookingService = Depends(get_booking_service)
    """
    return BookingService(db, notifier)
