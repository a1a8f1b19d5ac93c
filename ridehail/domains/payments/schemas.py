from pydantic import BaseModel, Field, StrictFloat, StrictInt

from ridehail.domains.payments.models import PaymentMethod


class CreateOrderIn(BaseModel):
    # Smallest currency unit (paise). Checked in the handler so missing credentials win over a bad amount.
    amount: StrictInt | StrictFloat | None = None
    currency: str = Field(default="INR", min_length=3, max_length=3)
    receipt: str | None = Field(default=None, max_length=40)
    notes: dict | None = None


class VerifyPaymentIn(BaseModel):
    ride_id: str = Field(min_length=1)
    razorpay_order_id: str = Field(min_length=1)
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_signature: str = Field(min_length=1)


class TransactionIn(BaseModel):
    ride_id: str = Field(min_length=1)
    payment_method: PaymentMethod = PaymentMethod.CASH
    driver_earnings: float | None = Field(default=None, ge=0.0)


class TransactionOut(BaseModel):
    id: str
    ride_id: str
    passenger_id: str
    driver_id: str | None = None
    amount: float
    payment_method: str
    platform_fee: float
    driver_earnings: float
    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None
    created_at: str | None = None


class VerifyPaymentOut(BaseModel):
    verified: bool
    transaction: TransactionOut
