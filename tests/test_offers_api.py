from datetime import datetime, timedelta, timezone

import pytest

from ridehail.domains.drivers.models import DriverLocation
from ridehail.domains.offers.models import RideOffer


def _offer_payload(ride: dict, **extra) -> dict:
    return {"ride_id": ride["id"], "pickup_lat": ride["pickup_lat"], "pickup_lon": ride["pickup_lon"], **extra}


def test_offers_go_to_available_nearby_drivers_only(client, db, register, online_driver, book):
    passenger = register("passenger")
    ride = book(passenger)["ride"]

    near = online_driver(28.601, 77.201)
    far = online_driver(28.70, 77.20)
    stale = online_driver(28.600, 77.199)

    offline = register("driver")
    client.post("/drivers/me/location", json={"lat": 28.602, "lon": 77.202}, headers=offline["headers"])

    busy = online_driver(28.599, 77.200)
    other_ride = book(register("passenger"), pickup=(28.70, 77.10))["ride"]
    assert client.post(f"/rides/{other_ride['id']}/accept", headers=busy["headers"]).status_code == 200

    loc = db.get(DriverLocation, stale["user_id"])
    loc.updated_at = datetime.now(timezone.utc) - timedelta(hours=1)
    db.commit()

    resp = client.post("/api/create-ride-offers", json=_offer_payload(ride), headers=passenger["headers"])
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["created"] == 1
    assert [o["driver_id"] for o in body["offers"]] == [near["user_id"]]
    assert body["offers"][0]["ride_id"] == ride["id"]
    assert body["offers"][0]["distance_km"] < 0.2
    assert body["offers"][0]["expires_at"] is not None

    # Already-offered drivers are not offered twice.
    again = client.post("/api/create-ride-offers", json=_offer_payload(ride), headers=passenger["headers"])
    assert again.json() == {"created": 0, "offers": []}

    for driver in (far, stale, offline, busy):
        assert client.get("/drivers/me/offers", headers=driver["headers"]).json() == []


def test_offers_sorted_by_distance(client, register, online_driver, book):
    passenger = register("passenger")
    ride = book(passenger)["ride"]
    second = online_driver(28.610, 77.200)
    first = online_driver(28.601, 77.200)

    body = client.post("/api/create-ride-offers", json=_offer_payload(ride), headers=passenger["headers"]).json()
    assert [o["driver_id"] for o in body["offers"]] == [first["user_id"], second["user_id"]]


def test_radius_is_honoured(client, register, online_driver, book):
    passenger = register("passenger")
    ride = book(passenger)["ride"]
    online_driver(28.620, 77.200)  # about 2.2 km away

    tight = client.post("/api/create-ride-offers", json=_offer_payload(ride, radius_km=1), headers=passenger["headers"])
    assert tight.json()["created"] == 0
    wide = client.post("/api/create-ride-offers", json=_offer_payload(ride, radius_km=5), headers=passenger["headers"])
    assert wide.json()["created"] == 1


def test_no_drivers_returns_empty(client, register, book):
    passenger = register("passenger")
    ride = book(passenger)["ride"]
    resp = client.post("/api/create-ride-offers", json=_offer_payload(ride), headers=passenger["headers"])
    assert resp.status_code == 200
    assert resp.json() == {"created": 0, "offers": []}


def test_invalid_payload_uses_error_envelope(client, register):
    passenger = register("passenger")
    resp = client.post(
        "/api/create-ride-offers",
        json={"ride_id": "r1", "pickup_lat": "28.6", "pickup_lon": 77.2},
        headers=passenger["headers"],
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Invalid payload"
    assert any(d["loc"][-1] == "pickup_lat" for d in body["details"])

    missing = client.post("/api/create-ride-offers", json={"pickup_lat": 28.6, "pickup_lon": 77.2}, headers=passenger["headers"])
    assert missing.status_code == 400


def test_unknown_ride(client, register):
    passenger = register("passenger")
    resp = client.post(
        "/api/create-ride-offers",
        json={"ride_id": "missing", "pickup_lat": 28.6, "pickup_lon": 77.2},
        headers=passenger["headers"],
    )
    assert resp.status_code == 404
    assert resp.json() == {"error": "Ride not found"}


def test_ride_no_longer_pending(client, register, online_driver, book):
    passenger = register("passenger")
    ride = book(passenger)["ride"]
    client.post(f"/rides/{ride['id']}/cancel", json={}, headers=passenger["headers"])

    resp = client.post("/api/create-ride-offers", json=_offer_payload(ride), headers=passenger["headers"])
    assert resp.status_code == 409
    assert resp.json()["details"]["code"] == "RIDE_NOT_PENDING"


def test_requires_bearer_token(client, register, book):
    ride = book(register("passenger"))["ride"]
    resp = client.post("/api/create-ride-offers", json=_offer_payload(ride))
    assert resp.status_code == 401
    assert "error" in resp.json()


def test_driver_sees_live_offer_with_ride(client, register, online_driver, book):
    driver = online_driver(28.601, 77.201)
    ride = book(register("passenger"))["ride"]

    offers = client.get("/drivers/me/offers", headers=driver["headers"]).json()
    assert len(offers) == 1
    assert offers[0]["offer"]["driver_id"] == driver["user_id"]
    assert offers[0]["ride"]["id"] == ride["id"]
    assert offers[0]["ride"]["otp"] is None


def test_offers_expire_after_ttl(client, db, register, online_driver, book):
    driver = online_driver(28.601, 77.201)
    ride = book(register("passenger"))["ride"]

    live = client.get("/drivers/me/offers", headers=driver["headers"]).json()
    assert len(live) == 1
    created = datetime.fromisoformat(live[0]["offer"]["created_at"])
    expires = datetime.fromisoformat(live[0]["offer"]["expires_at"])
    assert (expires - created).total_seconds() == pytest.approx(90)

    offer = db.query(RideOffer).filter(RideOffer.ride_id == ride["id"]).one()
    offer.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
    db.commit()

    assert client.get("/drivers/me/offers", headers=driver["headers"]).json() == []


def test_drivers_across_the_antimeridian_are_offered(client, register, online_driver, book):
    driver = online_driver(0.0, -179.995)
    out = book(register("passenger"), pickup=(0.0, 179.995), drop=(0.01, 179.99))
    assert out["offers_created"] == 1
    assert client.get("/drivers/me/offers", headers=driver["headers"]).json()[0]["ride"]["id"] == out["ride"]["id"]
