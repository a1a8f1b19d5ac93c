import pytest
import requests

from ridehail.core.config import settings
from ridehail.utils import razorpay
from ridehail.utils.razorpay import payment_signature
from ridehail.utils.ride_math import round_half_up


class _FakeResponse:
    def __init__(self, status_code: int, body: dict) -> None:
        self.status_code = status_code
        self._body = body
        self.text = str(body)

    def json(self) -> dict:
        return self._body


@pytest.fixture
def razorpay_keys(monkeypatch):
    monkeypatch.setattr(settings, "razorpay_key_id", "rzp_test_key")
    monkeypatch.setattr(settings, "razorpay_key_secret", "rzp_test_secret")


@pytest.fixture
def gateway(monkeypatch):
    """Captures outbound order calls and answers with a canned response."""
    calls: list[dict] = []
    answer = {"response": _FakeResponse(200, {"id": "order_abc", "status": "created"})}

    def _post(url, **kwargs):
        calls.append({"url": url, **kwargs})
        if isinstance(answer["response"], Exception):
            raise answer["response"]
        return answer["response"]

    monkeypatch.setattr(razorpay.requests, "post", _post)
    return calls, answer


def test_missing_credentials(client):
    resp = client.post("/api/create-razorpay-order", json={"amount": 10000})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Razorpay credentials missing in server env"}


@pytest.mark.parametrize("payload", [{}, {"amount": 0}, {"amount": -5}])
def test_invalid_amount(client, razorpay_keys, gateway, payload):
    calls, _ = gateway
    resp = client.post("/api/create-razorpay-order", json=payload)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid amount"}
    assert calls == []


def test_non_numeric_amount(client, razorpay_keys, gateway):
    resp = client.post("/api/create-razorpay-order", json={"amount": "100"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid payload"


def test_create_order(client, razorpay_keys, gateway):
    calls, _ = gateway
    resp = client.post("/api/create-razorpay-order", json={"amount": 10450.6})
    assert resp.status_code == 200
    assert resp.json() == {"id": "order_abc", "status": "created"}

    assert len(calls) == 1
    call = calls[0]
    assert call["url"].endswith("/orders")
    assert call["auth"] == ("rzp_test_key", "rzp_test_secret")
    body = call["json"]
    assert body["amount"] == 10451
    assert body["currency"] == "INR"
    assert body["receipt"].startswith("order_")
    assert body["notes"] == {}


def test_create_order_passes_through_receipt_and_notes(client, razorpay_keys, gateway):
    calls, _ = gateway
    client.post(
        "/api/create-razorpay-order",
        json={"amount": 5000, "currency": "USD", "receipt": "rcpt_1", "notes": {"ride_id": "r1"}},
    )
    body = calls[0]["json"]
    assert body == {"amount": 5000, "currency": "USD", "receipt": "rcpt_1", "notes": {"ride_id": "r1"}}


def test_gateway_rejects_order(client, razorpay_keys, gateway):
    _, answer = gateway
    upstream = {"error": {"code": "BAD_REQUEST_ERROR", "description": "amount too small"}}
    answer["response"] = _FakeResponse(400, upstream)

    resp = client.post("/api/create-razorpay-order", json={"amount": 50})
    assert resp.status_code == 502
    assert resp.json() == {"error": "Razorpay create order failed", "details": upstream}


def test_gateway_unreachable(client, razorpay_keys, gateway):
    _, answer = gateway
    answer["response"] = requests.ConnectionError("connection refused")

    resp = client.post("/api/create-razorpay-order", json={"amount": 5000})
    assert resp.status_code == 500
    assert resp.json()["error"] == "Internal server error"


def test_verify_payment_records_transaction(client, razorpay_keys, completed_ride):
    passenger, driver, ride = completed_ride()
    payload = {
        "ride_id": ride["id"],
        "razorpay_order_id": "order_abc",
        "razorpay_payment_id": "pay_123",
        "razorpay_signature": payment_signature("order_abc", "pay_123"),
    }
    resp = client.post("/api/verify-razorpay-payment", json=payload, headers=passenger["headers"])
    assert resp.status_code == 200, resp.text
    txn = resp.json()["transaction"]
    assert resp.json()["verified"] is True
    assert txn["payment_method"] == "razorpay"
    assert txn["driver_id"] == driver["user_id"]
    assert txn["amount"] == pytest.approx(ride["fare_rupees"])
    assert txn["platform_fee"] == pytest.approx(round_half_up(ride["fare_rupees"] * 0.15, 2))
    assert txn["platform_fee"] + txn["driver_earnings"] == pytest.approx(ride["fare_rupees"], abs=0.01)

    # Replaying the same payment does not double-book it.
    replay = client.post("/api/verify-razorpay-payment", json=payload, headers=passenger["headers"])
    assert replay.json()["transaction"]["id"] == txn["id"]
    assert len(client.get("/payments/transactions", headers=driver["headers"]).json()) == 1


def test_verify_payment_rejects_bad_signature(client, razorpay_keys, completed_ride):
    passenger, _, ride = completed_ride()
    resp = client.post(
        "/api/verify-razorpay-payment",
        json={
            "ride_id": ride["id"],
            "razorpay_order_id": "order_abc",
            "razorpay_payment_id": "pay_123",
            "razorpay_signature": "deadbeef",
        },
        headers=passenger["headers"],
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid payment signature"}
    assert client.get("/payments/transactions", headers=passenger["headers"]).json() == []


def test_cash_transaction(client, completed_ride):
    passenger, driver, ride = completed_ride()
    resp = client.post(
        "/payments/transactions",
        json={"ride_id": ride["id"], "payment_method": "cash"},
        headers=passenger["headers"],
    )
    assert resp.status_code == 201
    assert resp.json()["payment_method"] == "cash"

    mine = client.get("/payments/transactions", headers=passenger["headers"]).json()
    assert [t["id"] for t in mine] == [resp.json()["id"]]


def test_pending_ride_is_not_payable(client, register, book):
    passenger = register("passenger")
    ride = book(passenger)["ride"]
    resp = client.post(
        "/payments/transactions",
        json={"ride_id": ride["id"], "payment_method": "cash"},
        headers=passenger["headers"],
    )
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "RIDE_NOT_PAYABLE"
