from pydantic import BaseModel, Field


class CreateRideOffersIn(BaseModel):
    ride_id: str = Field(min_length=1)
    pickup_lat: float = Field(ge=-90.0, le=90.0, strict=True)
    pickup_lon: float = Field(ge=-180.0, le=180.0, strict=True)
    radius_km: float = Field(default=3.0, gt=0.0, le=50.0)


class RideOfferOut(BaseModel):
    id: str
    ride_id: str
    driver_id: str
    distance_km: float | None = None
    created_at: str | None = None
    expires_at: str | None = None


class CreateRideOffersOut(BaseModel):
    created: int
    offers: list[RideOfferOut]


class DriverOfferOut(BaseModel):
    offer: RideOfferOut
    ride: dict
