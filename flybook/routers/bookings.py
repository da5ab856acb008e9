"""
Booking Endpoints - create, list, inspect and cancel the current user's bookings,
plus the payment provider's outcome callback
"""
from fastapi import APIRouter, Depends, status

from flybook.models.user import User
from flybook.routers.auth import get_current_user, verify_payment_callback
from flybook.schemas.booking import BookingCreate, BookingResponse, PaymentUpdate, TrackerResponse
from flybook.schemas.common import ok
from flybook.services.bookings import BookingService, get_booking_service

router = APIRouter()


def _booking_data(booking) -> dict:
    return BookingResponse.from_booking(booking).model_dump(mode="json", by_alias=True)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """
    Book a selected flight (legacy flight or Amadeus offer).
    Payment starts as pending; a confirmation email is queued.
    """
    booking = await service.create_booking(
        owner=current_user,
        flight=booking_data.flight,
        passengers=[p.model_dump(by_alias=True) for p in booking_data.passengers],
        seats=booking_data.seats,
        cabin_class=booking_data.cabin_class,
        amount=booking_data.amount,
        add_ons=booking_data.add_ons.model_dump(by_alias=True),
        provider=booking_data.provider,
    )
    return ok({"booking": _booking_data(booking)}, "Booking created")


@router.get("/me")
async def my_bookings(
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """List the current user's bookings, newest first"""
    bookings = await service.list_bookings(current_user.id)
    return ok({"bookings": [_booking_data(b) for b in bookings]}, "My bookings")


@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.get_booking(current_user.id, booking_id)
    return ok({"booking": _booking_data(booking)}, "Booking details")


@router.get("/{booking_id}/status")
async def get_booking_flight_status(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Last flight status recorded by the refresh job"""
    tracker = await service.get_tracker(current_user.id, booking_id)
    return ok(
        {"tracker": TrackerResponse.model_validate(tracker).model_dump(mode="json", by_alias=True)},
        "Flight status",
    )


@router.patch("/{booking_id}/cancel")
async def cancel_booking(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Cancel a booking; cancelling twice is not an error"""
    booking, changed = await service.cancel_booking(current_user.id, booking_id)
    message = "Booking cancelled" if changed else "Booking already cancelled"
    return ok({"booking": _booking_data(booking)}, message)


@router.patch("/{booking_id}/payment", dependencies=[Depends(verify_payment_callback)])
async def update_payment(
    booking_id: str,
    payment: PaymentUpdate,
    service: BookingService = Depends(get_booking_service),
):
    """Record the payment outcome reported by the payment provider"""
    booking = await service.record_payment(booking_id, payment.status)
    return ok({"booking": _booking_data(booking)}, f"Payment {payment.status}")
