import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from ridehail.core.db import Base


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    CASH = "cash"
    WALLET = "wallet"
    RAZORPAY = "razorpay"


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    ride_id: Mapped[str] = mapped_column(String, index=True)
    passenger_id: Mapped[str] = mapped_column(String, index=True)
    driver_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)

    amount: Mapped[float] = mapped_column(Float)
    payment_method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod))
    platform_fee: Mapped[float] = mapped_column(Float)
    driver_earnings: Mapped[float] = mapped_column(Float)

    gateway_order_id: Mapped[str | None] = mapped_column(String, nullable=True)
    gateway_payment_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "ride_id": self.ride_id,
            "passenger_id": self.passenger_id,
            "driver_id": self.driver_id,
            "amount": self.amount,
            "payment_method": self.payment_method.value,
            "platform_fee": self.platform_fee,
            "driver_earnings": self.driver_earnings,
            "gateway_order_id": self.gateway_order_id,
            "gateway_payment_id": self.gateway_payment_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
