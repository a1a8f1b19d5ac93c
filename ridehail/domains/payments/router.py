import logging

import requests
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ridehail.core.config import settings
from ridehail.core.deps import get_db, get_principal, require_passenger
from ridehail.core.security import Principal
from ridehail.domains.payments.models import PaymentMethod
from ridehail.domains.payments.schemas import (
    CreateOrderIn,
    TransactionIn,
    TransactionOut,
    VerifyPaymentIn,
    VerifyPaymentOut,
)
from ridehail.domains.payments.service import list_transactions, payable_ride, record_transaction
from ridehail.utils.razorpay import RazorpayError, create_order, verify_payment_signature

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(status_code: int, error: str, details=None) -> JSONResponse:
    content: dict = {"error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


@router.post("/api/create-razorpay-order")
def create_razorpay_order(payload: CreateOrderIn):
    if settings.razorpay_missing_fields():
        return _error(500, "Razorpay credentials missing in server env")
    if payload.amount is None or isinstance(payload.amount, bool) or payload.amount <= 0:
        return _error(400, "Invalid amount")

    try:
        data = create_order(
            amount=float(payload.amount),
            currency=payload.currency,
            receipt=payload.receipt,
            notes=payload.notes,
        )
    except RazorpayError as e:
        return _error(502, "Razorpay create order failed", e.details)
    except requests.RequestException as e:
        logger.exception("create-razorpay-order error")
        return _error(500, "Internal server error", str(e))
    return JSONResponse(status_code=200, content=data)


@router.post("/api/verify-razorpay-payment", response_model=VerifyPaymentOut)
def verify_razorpay_payment(
    payload: VerifyPaymentIn,
    principal: Principal = Depends(require_passenger),
    db: Session = Depends(get_db),
):
    if settings.razorpay_missing_fields():
        return _error(500, "Razorpay credentials missing in server env")
    if not verify_payment_signature(payload.razorpay_order_id, payload.razorpay_payment_id, payload.razorpay_signature):
        return _error(400, "Invalid payment signature")

    ride = payable_ride(db, ride_id=payload.ride_id, passenger_id=principal.sub)
    txn = record_transaction(
        db,
        ride=ride,
        amount=ride.fare_rupees,
        payment_method=PaymentMethod.RAZORPAY,
        gateway_order_id=payload.razorpay_order_id,
        gateway_payment_id=payload.razorpay_payment_id,
    )
    return VerifyPaymentOut(verified=True, transaction=TransactionOut(**txn.to_public_dict()))


@router.post("/payments/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    payload: TransactionIn,
    principal: Principal = Depends(require_passenger),
    db: Session = Depends(get_db),
) -> TransactionOut:
    if payload.payment_method == PaymentMethod.RAZORPAY:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Razorpay payments are recorded through /api/verify-razorpay-payment",
        )
    ride = payable_ride(db, ride_id=payload.ride_id, passenger_id=principal.sub)
    txn = record_transaction(
        db,
        ride=ride,
        amount=ride.fare_rupees,
        payment_method=payload.payment_method,
        driver_earnings=payload.driver_earnings,
    )
    return TransactionOut(**txn.to_public_dict())


@router.get("/payments/transactions", response_model=list[TransactionOut])
def my_transactions(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)) -> list[TransactionOut]:
    return [TransactionOut(**t.to_public_dict()) for t in list_transactions(db, user_id=principal.sub)]
