"""
Flight Status Refresh - re-fetches Amadeus status for tracked bookings
"""
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional, Tuple
import logging
import re

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from flybook.models import FlightStatusTracker
from flybook.services.amadeus import AmadeusClient

logger = logging.getLogger(__name__)

# Two-character IATA designator (may contain a digit, e.g. 6E) or a three-letter
# ICAO designator, then a 1-4 digit flight number. AI202 -> (AI, 202).
FLIGHT_IDENTIFIER_RE = re.compile(r"^([A-Z0-9]{2}[A-Z]?)(\d{1,4})$")

STATUS_UPDATED = "updated"


def split_carrier_and_number(identifier: Optional[str]) -> Optional[Tuple[str, str]]:
    """Split a flight identifier into (carrier code, flight number)"""
    clean = str(identifier or "").strip().upper().replace(" ", "")
    match = FLIGHT_IDENTIFIER_RE.match(clean)
    if not match:
        return None
    return match.group(1), match.group(2)


def summarize_status(payload: Any) -> str:
    """First departure timing qualifier in a schedule response, else 'updated'"""
    try:
        qualifier = payload["data"][0]["flightPoints"][0]["departure"]["timings"][0]["qualifier"]
    except (KeyError, IndexError, TypeError):
        return STATUS_UPDATED
    return str(qualifier) if qualifier else STATUS_UPDATED


async def _save(session_factory: async_sessionmaker, tracker_id, **values):
    async with session_factory() as session:
        await session.execute(
            update(FlightStatusTracker)
            .where(FlightStatusTracker.id == tracker_id)
            .values(**values)
        )
        await session.commit()


async def refresh_flight_statuses(
    session_factory: async_sessionmaker,
    client: AmadeusClient,
    batch_size: int = 50,
    fallback_to_today: bool = False,
    today: Optional[date] = None,
) -> Dict[str, int]:
    """
    Refresh one batch of trackers, least recently checked first.

    Every tracker in the batch gets a new last_checked_at so the next run moves
    on to the following batch; status and payload are only overwritten when
    the upstream call succeeds. A failing tracker never stops the batch.
    """
    summary = {"checked": 0, "updated": 0, "skipped": 0, "failed": 0}

    async with session_factory() as session:
        result = await session.execute(
            select(
                FlightStatusTracker.id,
                FlightStatusTracker.flight_iata,
                FlightStatusTracker.scheduled_departure_date,
            )
            .order_by(FlightStatusTracker.last_checked_at.asc())
            .limit(batch_size)
        )
        batch = result.all()

    for tracker_id, flight_iata, scheduled_date in batch:
        summary["checked"] += 1
        now = datetime.now(timezone.utc)
        try:
            parsed = split_carrier_and_number(flight_iata)
            departure_date = scheduled_date
            if departure_date is None and fallback_to_today:
                departure_date = today or now.date()

            if parsed is None or departure_date is None:
                reason = "unparsable flight identifier" if parsed is None else "no scheduled departure date"
                logger.warning(f"Skipping tracker {tracker_id} ({flight_iata}): {reason}")
                await _save(session_factory, tracker_id, last_checked_at=now)
                summary["skipped"] += 1
                continue

            carrier_code, flight_number = parsed
            try:
                payload = await client.get_flight_status(carrier_code, flight_number, departure_date)
            except Exception:
                await _save(session_factory, tracker_id, last_checked_at=now)
                raise

            await _save(
                session_factory,
                tracker_id,
                last_payload=payload,
                last_status=summarize_status(payload),
                last_checked_at=now,
            )
            summary["updated"] += 1
        except Exception as e:
            logger.warning(f"Flight status refresh failed for tracker {tracker_id} ({flight_iata}): {e}")
            summary["failed"] += 1

    logger.info(
        f"Flight status refresh: checked {summary['checked']}, updated {summary['updated']}, "
        f"skipped {summary['skipped']}, failed {summary['failed']}"
    )
    return summary
