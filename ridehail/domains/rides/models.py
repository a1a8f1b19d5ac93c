import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from ridehail.core.db import Base


class RideStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS: dict[RideStatus, frozenset[RideStatus]] = {
    RideStatus.PENDING: frozenset({RideStatus.ACCEPTED, RideStatus.CANCELLED}),
    RideStatus.ACCEPTED: frozenset({RideStatus.ONGOING, RideStatus.CANCELLED}),
    RideStatus.ONGOING: frozenset({RideStatus.COMPLETED}),
    RideStatus.COMPLETED: frozenset(),
    RideStatus.CANCELLED: frozenset(),
}

ACTIVE_STATUSES = (RideStatus.PENDING, RideStatus.ACCEPTED, RideStatus.ONGOING)


def can_transition(current: RideStatus, target: RideStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class RideRequest(Base):
    __tablename__ = "ride_requests"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    rider_id: Mapped[str] = mapped_column(String, index=True)

    pickup_lat: Mapped[float] = mapped_column(Float)
    pickup_lon: Mapped[float] = mapped_column(Float)
    drop_lat: Mapped[float] = mapped_column(Float)
    drop_lon: Mapped[float] = mapped_column(Float)
    pickup_address: Mapped[str | None] = mapped_column(String, nullable=True)
    drop_address: Mapped[str | None] = mapped_column(String, nullable=True)

    distance_km: Mapped[float] = mapped_column(Float)
    fare_rupees: Mapped[float] = mapped_column(Float)

    status: Mapped[RideStatus] = mapped_column(Enum(RideStatus), default=RideStatus.PENDING, index=True)
    driver_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    otp: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String, nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(String, nullable=True)

    def to_public_dict(self, *, include_otp: bool = False) -> dict:
        return {
            "id": self.id,
            "rider_id": self.rider_id,
            "pickup_lat": self.pickup_lat,
            "pickup_lon": self.pickup_lon,
            "drop_lat": self.drop_lat,
            "drop_lon": self.drop_lon,
            "pickup_address": self.pickup_address,
            "drop_address": self.drop_address,
            "distance_km": self.distance_km,
            "fare_rupees": self.fare_rupees,
            "status": self.status.value,
            "driver_id": self.driver_id,
            "otp": self.otp if include_otp else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "accepted_at": self.accepted_at.isoformat() if self.accepted_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancelled_by": self.cancelled_by,
            "cancel_reason": self.cancel_reason,
        }
