"""
Notifications - fire-and-forget email delivery through the worker queue
"""
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Tuple
import html
import logging

from celery import Celery

from flybook.config import settings

logger = logging.getLogger(__name__)

SEND_EMAIL_TASK = "workers.tasks.notifications.send_email"


class Notifier(ABC):
    @abstractmethod
    def send(self, to_address: str, subject: str, html_body: str, text_body: str) -> None:
        ...


class CeleryEmailNotifier(Notifier):
    """Enqueues the email for the notifications worker and returns immediately"""

    def __init__(self, broker_url: str = settings.RABBITMQ_URL):
        self._celery = Celery("flybook-api", broker=broker_url)
        self._celery.conf.broker_connection_timeout = 3

    def send(self, to_address: str, subject: str, html_body: str, text_body: str) -> None:
        self._celery.send_task(
            SEND_EMAIL_TASK,
            args=[to_address, subject, html_body, text_body],
            queue="notifications",
            retry=False,
        )
        logger.info(f"Queued email '{subject}' to {to_address}")


def render_booking_email(booking) -> Tuple[str, str, str]:
    """Subject, HTML and text bodies for a newly created booking"""
    flight = booking.flight or {}
    route = f"{flight.get('depIata')} → {flight.get('arrIata')}"
    seats = ", ".join(booking.seats or []) or "Not selected"
    legroom = "Yes" if booking.extra_legroom else "No"
    esc = html.escape

    subject = f"Booking Created (PNR: {booking.pnr})"
    body = f"""
        <div style="font-family:Arial,sans-serif;line-height:1.5">
          <h2>Booking Created</h2>
          <p><b>PNR:</b> {esc(str(booking.pnr))}</p>
          <p><b>Route:</b> {esc(route)}</p>
          <p><b>Seats:</b> {esc(seats)}</p>
          <p><b>Extra legroom:</b> {legroom}</p>
          <p><b>Extra luggage:</b> {esc(str(booking.extra_luggage_kg or 0))} kg</p>
          <p><b>Amount:</b> {esc(str(booking.currency))} {esc(str(booking.amount))}</p>
          <p>Complete your payment to confirm.</p>
        </div>
    """
    text = f"Booking created. PNR: {booking.pnr}"
    return subject, body, text


@lru_cache()
def get_notifier() -> Notifier:
    """
    Dependency that provides the email notifier
    Usage: notifier: Notifier = Depends(get_notifier)
    """
    return CeleryEmailNotifier()
