import os

# Configure before the app (and its settings singleton) is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENV"] = "test"
os.environ.pop("RAZORPAY_KEY_ID", None)
os.environ.pop("RAZORPAY_KEY_SECRET", None)

import pytest
from fastapi.testclient import TestClient

from ridehail.core.db import Base, SessionLocal, engine
from ridehail.main import app


PICKUP = (28.60, 77.20)
DROP = (28.55, 77.15)


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def register(client):
    """Sign up a user and return {"user_id", "token", "headers"}."""
    counter = {"n": 0}

    def _register(role: str = "passenger", email: str | None = None, password: str = "secret123") -> dict:
        counter["n"] += 1
        email = email or f"{role}{counter['n']}@example.com"
        resp = client.post("/auth/signup", json={"email": email, "password": password, "role": role})
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return {
            "user_id": body["user_id"],
            "token": body["access_token"],
            "headers": {"Authorization": f"Bearer {body['access_token']}"},
            "email": email,
        }

    return _register


@pytest.fixture
def online_driver(client, register):
    """A driver who is online at the given position."""

    def _online_driver(lat: float, lon: float) -> dict:
        driver = register("driver")
        assert client.post("/drivers/me/online", json={"is_online": True}, headers=driver["headers"]).status_code == 200
        assert client.post("/drivers/me/location", json={"lat": lat, "lon": lon}, headers=driver["headers"]).status_code == 200
        return driver

    return _online_driver


@pytest.fixture
def book(client):
    def _book(passenger: dict, pickup=PICKUP, drop=DROP) -> dict:
        resp = client.post(
            "/rides",
            json={"pickup": {"lat": pickup[0], "lon": pickup[1]}, "drop": {"lat": drop[0], "lon": drop[1]}},
            headers=passenger["headers"],
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _book


@pytest.fixture
def completed_ride(client, register, online_driver, book):
    """Runs a full trip and returns (passenger, driver, ride_json)."""

    def _completed_ride():
        passenger = register("passenger")
        driver = online_driver(28.601, 77.201)
        ride = book(passenger)["ride"]
        assert client.post(f"/rides/{ride['id']}/accept", headers=driver["headers"]).status_code == 200
        otp = client.get(f"/rides/{ride['id']}", headers=passenger["headers"]).json()["otp"]
        assert client.post(f"/rides/{ride['id']}/start", json={"otp": otp}, headers=driver["headers"]).status_code == 200
        resp = client.post(f"/rides/{ride['id']}/complete", headers=driver["headers"])
        assert resp.status_code == 200, resp.text
        return passenger, driver, resp.json()

    return _completed_ride
