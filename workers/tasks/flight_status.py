"""
Flight Status Tasks - periodic refresh of tracked booking flights
"""
from celery import shared_task
from sqlalchemy.pool import NullPool
import asyncio
import logging

from flybook.config import settings
from flybook.services.amadeus import build_amadeus_client
from flybook.services.status_refresh import refresh_flight_statuses
from flybook.utils.database import build_engine, build_session_factory

logger = logging.getLogger(__name__)


async def _refresh_batch():
    # Each run gets its own event loop, so no pooled connections may outlive it
    engine = build_engine(settings.DATABASE_URL, poolclass=NullPool)
    client = build_amadeus_client(settings)
    try:
        return await refresh_flight_statuses(
            build_session_factory(engine),
            client,
            batch_size=settings.FLIGHT_STATUS_BATCH_SIZE,
            fallback_to_today=settings.FLIGHT_STATUS_FALLBACK_TO_TODAY,
        )
    finally:
        await client.aclose()
        await engine.dispose()


@shared_task(name="workers.tasks.flight_status.refresh_tracked_flights")
def refresh_tracked_flights():
    """
    Refresh one batch of flight status trackers.
    Runs every FLIGHT_STATUS_INTERVAL_MINUTES.
    """
    logger.info("Starting flight status refresh...")

    if not (settings.AMADEUS_CLIENT_ID and settings.AMADEUS_CLIENT_SECRET):
        logger.warning("Amadeus credentials not configured, skipping flight status refresh")
        return {"checked": 0, "updated": 0, "skipped": 0, "failed": 0}

    try:
        return asyncio.run(_refresh_batch())
    except Exception as e:
        logger.error(f"Flight status refresh run failed: {e}")
        return {"error": str(e)}
