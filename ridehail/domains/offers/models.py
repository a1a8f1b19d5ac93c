import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ridehail.core.db import Base


class RideOffer(Base):
    """Fan-out row: one pending ride offered to one nearby driver."""

    __tablename__ = "ride_offers"
    __table_args__ = (UniqueConstraint("ride_id", "driver_id", name="uq_ride_offers_ride_driver"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    ride_id: Mapped[str] = mapped_column(String, index=True)
    driver_id: Mapped[str] = mapped_column(String, index=True)
    distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "ride_id": self.ride_id,
            "driver_id": self.driver_id,
            "distance_km": self.distance_km,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }
