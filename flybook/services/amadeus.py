"""
Amadeus Client - OAuth2 credentials and authenticated reads
https://developers.amadeus.com/
"""
from datetime import date
from typing import Any, Callable, Dict, Optional, Tuple, Union
import asyncio
import logging
import time

import httpx
from fastapi import Request

from flybook.config import Settings
from flybook.schemas.flight import SearchQuery
from flybook.services.errors import UpstreamError

logger = logging.getLogger(__name__)

OFFERS_PATH = "/v2/shopping/flight-offers"
SCHEDULE_PATH = "/v2/schedule/flights"


def extract_error_detail(response: httpx.Response, default: str) -> Tuple[str, Any]:
    """
    Pull the provider's own explanation out of an error response.

    Amadeus reports API errors as {"errors": [{"detail": ...}]} and OAuth
    errors as {"error_description": ...}.
    """
    try:
        body = response.json()
    except ValueError:
        return default, response.text or None

    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            detail = errors[0].get("detail") or errors[0].get("title")
            if detail:
                return str(detail), body
        if body.get("error_description"):
            return str(body["error_description"]), body
    return default, body


class CredentialManager:
    """
    Owns the bearer token for one set of client credentials.

    Refreshes are serialised behind a lock and re-checked once the lock is
    held, so callers that race on an expiring token share a single refresh.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str,
        http: httpx.AsyncClient,
        clock: Callable[[], float] = time.monotonic,
        safety_margin: float = 10.0,
        timeout: float = 20.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.safety_margin = safety_margin
        self.timeout = timeout
        self._http = http
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _is_fresh(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at - self.safety_margin

    async def get_token(self) -> str:
        """Return a usable token, refreshing it at most once per expiry"""
        if self._is_fresh():
            return self._token

        async with self._lock:
            if not self._is_fresh():
                await self._refresh()
            return self._token

    def invalidate(self):
        """Forget the current token so the next call refreshes it"""
        self._token = None
        self._expires_at = 0.0

    async def _refresh(self):
        if not self.is_configured:
            raise UpstreamError("Amadeus API credentials not configured")

        logger.info("Refreshing Amadeus access token")
        try:
            response = await self._http.post(
                self.token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.error(f"Amadeus token request failed: {e}")
            raise UpstreamError(f"Amadeus token request failed: {e}") from e

        if response.is_error:
            message, body = extract_error_detail(response, "Amadeus authentication failed")
            logger.error(f"Amadeus token request rejected ({response.status_code}): {message}")
            raise UpstreamError(message, response.status_code, body)

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError("Amadeus token response is not JSON", response.status_code) from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise UpstreamError("Amadeus token response missing access_token", payload=data)

        self._token = token
        self._expires_at = self._clock() + float(data.get("expires_in") or 0)


class AmadeusClient:
    """Authenticated GETs against the Amadeus self-service API"""

    def __init__(
        self,
        http: httpx.AsyncClient,
        credentials: CredentialManager,
        base_url: str,
        timeout: float = 20.0,
    ):
        self.http = http
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        token = await self.credentials.get_token()

        try:
            response = await self.http.get(
                f"{self.base_url}{path}",
                params=params,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Amadeus GET {path} failed: {e}")
            raise UpstreamError(f"Amadeus request failed: {e}") from e

        if response.status_code == 401:
            self.credentials.invalidate()

        if response.is_error:
            message, body = extract_error_detail(
                response, f"Amadeus request failed (HTTP {response.status_code})"
            )
            logger.warning(f"Amadeus GET {path} returned {response.status_code}: {message}")
            raise UpstreamError(message, response.status_code, body)

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError("Amadeus returned a non-JSON response", response.status_code) from e

    async def search_offers(self, query: SearchQuery) -> Dict[str, Any]:
        """Flight Offers Search"""
        return await self.get(OFFERS_PATH, query.to_upstream_params())

    async def get_flight_status(
        self,
        carrier_code: str,
        flight_number: str,
        departure_date: Union[date, str],
    ) -> Dict[str, Any]:
        """On-Demand Flight Status for one scheduled departure"""
        if isinstance(departure_date, date):
            departure_date = departure_date.isoformat()
        return await self.get(
            SCHEDULE_PATH,
            {
                "carrierCode": carrier_code.upper(),
                "flightNumber": str(flight_number),
                "scheduledDepartureDate": str(departure_date)[:10],
            },
        )

    async def aclose(self):
        await self.http.aclose()


def build_amadeus_client(settings: Settings, http: Optional[httpx.AsyncClient] = None) -> AmadeusClient:
    """Wire a client and its credential manager from settings"""
    http = http or httpx.AsyncClient(timeout=settings.AMADEUS_TIMEOUT_SECONDS)
    credentials = CredentialManager(
        client_id=settings.AMADEUS_CLIENT_ID,
        client_secret=settings.AMADEUS_CLIENT_SECRET,
        token_url=settings.AMADEUS_TOKEN_URL,
        http=http,
        safety_margin=settings.AMADEUS_TOKEN_SAFETY_MARGIN_SECONDS,
        timeout=settings.AMADEUS_TIMEOUT_SECONDS,
    )
    return AmadeusClient(
        http=http,
        credentials=credentials,
        base_url=settings.AMADEUS_BASE_URL,
        timeout=settings.AMADEUS_TIMEOUT_SECONDS,
    )


def get_amadeus_client(request: Request) -> AmadeusClient:
    """
    Dependency that provides the shared Amadeus client
    Usage: client: AmadeusClient = Depends(get_amadeus_client)
    """
    return request.app.state.amadeus
