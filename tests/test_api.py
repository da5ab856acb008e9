import uuid

import httpx
import pytest
from prometheus_client import REGISTRY

from flybook.config import settings
from flybook.main import app
from flybook.services.notifications import get_notifier
from flybook.services.search_cache import MemoryTTLCache
from flybook.utils.database import get_db

OFFERS_RESPONSE = {
    "data": [
        {
            "id": "1",
            "validatingAirlineCodes": ["AI"],
            "price": {"total": "6120.00", "currency": "INR"},
            "itineraries": [
                {
                    "segments": [
                        {
                            "carrierCode": "AI",
                            "number": "202",
                            "departure": {"iataCode": "MAA", "at": "2026-02-11T10:00:00"},
                            "arrival": {"iataCode": "DEL", "at": "2026-02-11T12:30:00"},
                        }
                    ]
                }
            ],
        }
    ]
}

LEGACY_FLIGHT = {
    "flight": {"iata": "AI202", "number": "202"},
    "airline": {"iata": "AI", "name": "Air India"},
    "departure": {"iata": "MAA", "scheduled": "2026-02-11T10:00:00"},
    "arrival": {"iata": "DEL", "scheduled": "2026-02-11T12:30:00"},
    "flight_status": "scheduled",
}


class FakeAmadeus:
    def __init__(self):
        self.offer_calls = 0
        self.offers_status = 200

    def __call__(self, request):
        if request.url.path.endswith("/oauth2/token"):
            return httpx.Response(200, json={"access_token": "token", "expires_in": 1799})
        if request.url.path == "/v2/shopping/flight-offers":
            self.offer_calls += 1
            if self.offers_status != 200:
                return httpx.Response(
                    self.offers_status,
                    json={"errors": [{"detail": "Upstream quota exceeded"}]},
                )
            return httpx.Response(200, json=OFFERS_RESPONSE)
        if request.url.path == "/v2/schedule/flights":
            return httpx.Response(200, json={"data": [{"flightDesignator": {"carrierCode": "AI"}}]})
        return httpx.Response(404)


@pytest.fixture
def fake_amadeus():
    return FakeAmadeus()


@pytest.fixture
async def client(session_factory, notifier, fake_amadeus, amadeus_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.state.search_cache = MemoryTTLCache()
    app.state.amadeus = amadeus_factory(fake_amadeus)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app, raise_app_exceptions=False), base_url="http://test") as http:
        yield http

    app.dependency_overrides.clear()


@pytest.fixture
def auth(user):
    return {"X-User-Id": str(user.id)}


async def test_search_is_served_from_cache_on_repeat(client, fake_amadeus):
    params = {"depIata": "maa", "arrIata": "del", "date": "2026-02-11"}

    first = await client.get("/api/flights/search", params=params)
    assert first.status_code == 200
    body = first.json()
    assert body["success"] is True
    assert body["message"] == "Flights fetched"
    assert body["data"]["fromCache"] is False
    assert body["data"]["results"][0]["depIata"] == "MAA"
    assert body["data"]["results"][0]["flightIata"] == "AI202"

    second = await client.get("/api/flights/search", params=params)
    body = second.json()
    assert body["message"] == "Flights fetched (cache)"
    assert body["data"]["fromCache"] is True
    assert body["data"]["results"] == first.json()["data"]["results"]

    assert fake_amadeus.offer_calls == 1


async def test_search_requires_route(client, fake_amadeus):
    response = await client.get("/api/flights/search", params={"depIata": "MAA", "date": "2026-02-11"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "depIata and arrIata are required"}
    assert fake_amadeus.offer_calls == 0


async def test_search_requires_date(client):
    response = await client.get("/api/flights/search", params={"depIata": "MAA", "arrIata": "DEL"})

    assert response.status_code == 400
    assert response.json()["message"] == "date is required (YYYY-MM-DD) for Amadeus offers"


async def test_search_rejects_bad_airport_code(client):
    response = await client.get("/api/flights/search", params={"depIata": "12", "arrIata": "DEL", "date": "2026-02-11"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "origin must be a 3-letter IATA airport code"


async def test_request_validation_uses_envelope(client):
    response = await client.get(
        "/api/flights/search",
        params={"depIata": "MAA", "arrIata": "DEL", "date": "2026-02-11", "adults": "many"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"].startswith("adults")
    assert body["data"]["errors"][0]["loc"] == ["query", "adults"]


async def test_upstream_failure_is_502_and_not_cached(client, fake_amadeus):
    fake_amadeus.offers_status = 429
    params = {"depIata": "MAA", "arrIata": "DEL", "date": "2026-02-11"}

    response = await client.get("/api/flights/search", params=params)
    assert response.status_code == 502
    assert response.json()["message"] == "Upstream quota exceeded"

    fake_amadeus.offers_status = 200
    response = await client.get("/api/flights/search", params=params)
    assert response.json()["data"]["fromCache"] is False
    assert fake_amadeus.offer_calls == 2


async def test_amadeus_offers_bypass_cache(client, fake_amadeus):
    params = {"origin": "MAA", "destination": "DEL", "date": "2026-02-11", "max": 5}

    for _ in range(2):
        response = await client.get("/api/amadeus/offers", params=params)
        assert response.status_code == 200
        assert response.json()["data"]["offers"][0]["offerId"] == "1"

    assert fake_amadeus.offer_calls == 2


async def test_flight_status_passthrough(client):
    response = await client.get(
        "/api/flights/status",
        params={"carrierCode": "AI", "flightNumber": "202", "date": "2026-02-11"},
    )

    assert response.status_code == 200
    assert response.json()["data"]["results"] == [{"flightDesignator": {"carrierCode": "AI"}}]


async def test_flight_status_requires_all_fields(client):
    response = await client.get("/api/flights/status", params={"carrierCode": "AI"})

    assert response.status_code == 400
    assert response.json()["message"] == "carrierCode, flightNumber, date are required"


async def test_booking_lifecycle(client, auth, notifier):
    payload = {
        "flight": LEGACY_FLIGHT,
        "passengers": [{"fullName": "Asha Rao", "age": 34, "gender": "F"}],
        "seats": ["12A"],
        "cabinClass": "economy",
        "amount": 5600.5,
        "addOns": {"extraLegroom": True, "extraLuggageKg": 10},
    }

    created = await client.post("/api/bookings", json=payload, headers=auth)
    assert created.status_code == 201
    body = created.json()
    assert body["message"] == "Booking created"
    booking = body["data"]["booking"]
    assert len(booking["pnr"]) == 6
    assert booking["amount"] == 5600.5
    assert booking["currency"] == "INR"
    assert booking["paymentStatus"] == "pending"
    assert booking["addOns"] == {"extraLegroom": True, "extraLuggageKg": 10}
    assert booking["flight"]["arrIata"] == "DEL"
    assert len(notifier.sent) == 1

    mine = await client.get("/api/bookings/me", headers=auth)
    assert [b["id"] for b in mine.json()["data"]["bookings"]] == [booking["id"]]

    details = await client.get(f"/api/bookings/{booking['id']}", headers=auth)
    assert details.json()["data"]["booking"]["pnr"] == booking["pnr"]

    status = await client.get(f"/api/bookings/{booking['id']}/status", headers=auth)
    tracker = status.json()["data"]["tracker"]
    assert tracker["flightIata"] == "AI202"
    assert tracker["scheduledDepartureDate"] == "2026-02-11"
    assert tracker["lastStatus"] == "scheduled"

    cancelled = await client.patch(f"/api/bookings/{booking['id']}/cancel", headers=auth)
    assert cancelled.json()["message"] == "Booking cancelled"
    assert cancelled.json()["data"]["booking"]["bookingStatus"] == "cancelled"

    again = await client.patch(f"/api/bookings/{booking['id']}/cancel", headers=auth)
    assert again.status_code == 200
    assert again.json()["message"] == "Booking already cancelled"


async def test_booking_requires_passengers(client, auth):
    response = await client.post(
        "/api/bookings",
        json={"flight": LEGACY_FLIGHT, "passengers": [], "amount": 100},
        headers=auth,
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Passengers required"


async def test_booking_with_unroutable_flight(client, auth):
    response = await client.post(
        "/api/bookings",
        json={
            "flight": {"flight": {"iata": "AI202"}},
            "passengers": [{"fullName": "Asha Rao", "age": 34}],
            "amount": 100,
        },
        headers=auth,
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid flight data (missing route)."


async def test_unknown_booking_is_404(client, auth):
    response = await client.get(f"/api/bookings/{uuid.uuid4()}", headers=auth)

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Booking not found"}


async def test_bookings_require_user(client):
    response = await client.get("/api/bookings/me")

    assert response.status_code == 401
    assert response.json()["success"] is False

    response = await client.get("/api/bookings/me", headers={"X-User-Id": str(uuid.uuid4())})
    assert response.status_code == 401


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["success"] is True



@pytest.fixture
def payment_secret(monkeypatch):
    monkeypatch.setattr(settings, "PAYMENT_CALLBACK_SECRET", "provider-shared-secret")
    return {"X-Payment-Secret": "provider-shared-secret"}


async def create_booking(client, auth):
    created = await client.post(
        "/api/bookings",
        json={
            "flight": LEGACY_FLIGHT,
            "passengers": [{"fullName": "Asha Rao", "age": 34}],
            "amount": 100,
        },
        headers=auth,
    )
    return created.json()["data"]["booking"]["id"]


async def test_payment_outcome_is_recorded(client, auth, payment_secret):
    booking_id = await create_booking(client, auth)

    paid = await client.patch(f"/api/bookings/{booking_id}/payment", json={"status": "paid"}, headers=payment_secret)
    assert paid.status_code == 200
    assert paid.json()["data"]["booking"]["paymentStatus"] == "paid"

    rejected = await client.patch(
        f"/api/bookings/{booking_id}/payment", json={"status": "failed"}, headers=payment_secret
    )
    assert rejected.status_code == 400
    assert rejected.json()["message"] == "Payment already paid"

    invalid = await client.patch(
        f"/api/bookings/{booking_id}/payment", json={"status": "refunded"}, headers=payment_secret
    )
    assert invalid.status_code == 400
    assert invalid.json()["success"] is False


async def test_booking_owner_cannot_mark_own_booking_paid(client, auth, payment_secret):
    booking_id = await create_booking(client, auth)

    as_owner = await client.patch(f"/api/bookings/{booking_id}/payment", json={"status": "paid"}, headers=auth)
    assert as_owner.status_code == 401
    assert as_owner.json() == {"success": False, "message": "Invalid payment callback secret"}

    wrong = await client.patch(
        f"/api/bookings/{booking_id}/payment",
        json={"status": "paid"},
        headers={**auth, "X-Payment-Secret": "guess"},
    )
    assert wrong.status_code == 401

    details = await client.get(f"/api/bookings/{booking_id}", headers=auth)
    assert details.json()["data"]["booking"]["paymentStatus"] == "pending"


async def test_payment_callbacks_refused_without_configured_secret(client, auth, monkeypatch):
    monkeypatch.setattr(settings, "PAYMENT_CALLBACK_SECRET", "")
    booking_id = await create_booking(client, auth)

    response = await client.patch(
        f"/api/bookings/{booking_id}/payment",
        json={"status": "paid"},
        headers={"X-Payment-Secret": ""},
    )

    assert response.status_code == 403
    assert response.json()["message"] == "Payment callbacks are disabled"


class UnreachableCache(MemoryTTLCache):
    async def get(self, key):
        raise ConnectionError("Error 111 connecting to redis:6379. Connection refused.")


async def test_unexpected_failure_uses_envelope(client, caplog):
    app.state.search_cache = UnreachableCache()

    response = await client.get(
        "/api/flights/search",
        params={"depIata": "MAA", "arrIata": "DEL", "date": "2026-02-11"},
    )

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    assert response.json() == {"success": False, "message": "Internal server error"}
    assert "GET /api/flights/search failed unexpectedly" in caplog.text


def requests_counted(endpoint, status):
    return REGISTRY.get_sample_value(
        "http_requests_total", {"method": "GET", "endpoint": endpoint, "status": str(status)}
    ) or 0


async def test_request_metrics_are_labelled_by_route_template(client, auth):
    template = "/api/bookings/{booking_id}"
    before = requests_counted(template, 404)
    booking_ids = [str(uuid.uuid4()) for _ in range(3)]

    for booking_id in booking_ids:
        response = await client.get(f"/api/bookings/{booking_id}", headers=auth)
        assert response.status_code == 404

    assert requests_counted(template, 404) == before + 3
    for booking_id in booking_ids:
        assert REGISTRY.get_sample_value(
            "http_requests_total",
            {"method": "GET", "endpoint": f"/api/bookings/{booking_id}", "status": "404"},
        ) is None


async def test_unmatched_paths_share_one_metric_label(client):
    before = requests_counted("unmatched", 404)

    await client.get(f"/no-such-page/{uuid.uuid4()}")
    await client.get(f"/no-such-page/{uuid.uuid4()}")

    assert requests_counted("unmatched", 404) == before + 2
