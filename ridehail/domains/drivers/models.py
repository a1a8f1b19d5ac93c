from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from ridehail.core.db import Base


class Driver(Base):
    __tablename__ = "drivers"

    # Same id as the driver's user profile.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    is_online: Mapped[bool] = mapped_column(Boolean, default=False)
    vehicle: Mapped[str | None] = mapped_column(String, nullable=True)
    plate: Mapped[str | None] = mapped_column(String, nullable=True)

    current_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_lon: Mapped[float | None] = mapped_column(Float, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "is_online": bool(self.is_online),
            "vehicle": self.vehicle,
            "plate": self.plate,
            "current_lat": self.current_lat,
            "current_lon": self.current_lon,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class DriverLocation(Base):
    """Last known position per driver; overwritten on every update."""

    __tablename__ = "driver_locations"

    driver_id: Mapped[str] = mapped_column(String, primary_key=True)
    lat: Mapped[float] = mapped_column(Float, index=True)
    lon: Mapped[float] = mapped_column(Float, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True
    )

    def to_public_dict(self) -> dict:
        return {
            "id": self.driver_id,
            "driver_id": self.driver_id,
            "lat": self.lat,
            "lon": self.lon,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
