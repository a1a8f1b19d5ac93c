import logging

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from ridehail.core.config import settings
from ridehail.domains.payments.models import PaymentMethod, Transaction
from ridehail.domains.rides.models import RideRequest, RideStatus
from ridehail.realtime.feed import INSERT, feed
from ridehail.utils.ride_math import round_half_up

logger = logging.getLogger(__name__)


def split_fare(amount: float, driver_earnings: float | None = None) -> tuple[float, float]:
    """Returns (platform_fee, driver_earnings) for a fare."""
    platform_fee = round_half_up(amount * settings.platform_fee_pct, 2)
    earnings = driver_earnings if driver_earnings is not None else round_half_up(amount - platform_fee, 2)
    return platform_fee, earnings


def payable_ride(db: Session, *, ride_id: str, passenger_id: str) -> RideRequest:
    ride = db.get(RideRequest, ride_id)
    if ride is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ride not found")
    if ride.rider_id != passenger_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your ride")
    if ride.status in (RideStatus.PENDING, RideStatus.CANCELLED):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "RIDE_NOT_PAYABLE", "message": "Ride has no driver to pay.", "status": ride.status.value},
        )
    return ride


def record_transaction(
    db: Session,
    *,
    ride: RideRequest,
    amount: float,
    payment_method: PaymentMethod,
    driver_earnings: float | None = None,
    gateway_order_id: str | None = None,
    gateway_payment_id: str | None = None,
) -> Transaction:
    if gateway_payment_id:
        existing = db.query(Transaction).filter(Transaction.gateway_payment_id == gateway_payment_id).one_or_none()
        if existing is not None:
            return existing

    platform_fee, earnings = split_fare(amount, driver_earnings)
    txn = Transaction(
        ride_id=ride.id,
        passenger_id=ride.rider_id,
        driver_id=ride.driver_id,
        amount=amount,
        payment_method=payment_method,
        platform_fee=platform_fee,
        driver_earnings=earnings,
        gateway_order_id=gateway_order_id,
        gateway_payment_id=gateway_payment_id,
    )
    db.add(txn)
    db.commit()
    db.refresh(txn)
    feed.publish("transactions", INSERT, txn.to_public_dict())
    logger.info("transaction recorded: ride=%s method=%s amount=%s", ride.id, payment_method.value, amount)
    return txn


def list_transactions(db: Session, *, user_id: str) -> list[Transaction]:
    return (
        db.query(Transaction)
        .filter((Transaction.passenger_id == user_id) | (Transaction.driver_id == user_id))
        .order_by(Transaction.created_at.desc())
        .all()
    )
