import hashlib
import hmac
import logging
import math
import time

import requests

from ridehail.core.config import settings

logger = logging.getLogger(__name__)


class RazorpayError(Exception):
    """Order creation failed upstream (non-2xx) or the gateway was unreachable."""

    def __init__(self, status_code: int, details) -> None:
        super().__init__(f"Razorpay request failed: status={status_code}")
        self.status_code = status_code
        self.details = details


def to_gateway_amount(amount: float) -> int:
    # Gateway wants an integer in the smallest currency unit; round half up.
    return int(math.floor(amount + 0.5))


def default_receipt() -> str:
    return f"order_{int(time.time() * 1000)}"


def create_order(
    *,
    amount: float,
    currency: str = "INR",
    receipt: str | None = None,
    notes: dict | None = None,
) -> dict:
    """
    Create an order via the Razorpay Orders API.
    Returns the gateway's JSON body; raises RazorpayError on a non-2xx answer.
    """
    body = {
        "amount": to_gateway_amount(amount),
        "currency": currency,
        "receipt": receipt or default_receipt(),
        "notes": notes or {},
    }
    url = settings.razorpay_api_base.rstrip("/") + "/orders"
    resp = requests.post(
        url,
        json=body,
        auth=(settings.razorpay_key_id or "", settings.razorpay_key_secret or ""),
        headers={"content-type": "application/json"},
        timeout=settings.razorpay_timeout_seconds,
    )
    try:
        data = resp.json()
    except ValueError:
        data = {"raw": resp.text[:500]}
    if resp.status_code // 100 != 2:
        logger.warning("Razorpay create order failed: status=%s body=%s", resp.status_code, resp.text[:300])
        raise RazorpayError(resp.status_code, data)
    logger.info("Razorpay order created: id=%s amount=%s", data.get("id"), body["amount"])
    return data


def payment_signature(order_id: str, payment_id: str) -> str:
    secret = (settings.razorpay_key_secret or "").encode("utf-8")
    msg = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret, msg, hashlib.sha256).hexdigest()


def verify_payment_signature(order_id: str, payment_id: str, signature: str) -> bool:
    return hmac.compare_digest(payment_signature(order_id, payment_id), signature or "")
