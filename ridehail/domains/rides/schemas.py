from pydantic import BaseModel, Field


class Point(BaseModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lon: float = Field(ge=-180.0, le=180.0)


class EstimateIn(BaseModel):
    pickup: Point
    drop: Point


class EstimateOut(BaseModel):
    distance_km: float
    fare_rupees: float
    eta_minutes: int | None = None


class RideCreateIn(BaseModel):
    pickup: Point
    drop: Point
    pickup_address: str | None = Field(default=None, max_length=512)
    drop_address: str | None = Field(default=None, max_length=512)
    radius_km: float | None = Field(default=None, gt=0.0, le=50.0)


class RideOut(BaseModel):
    id: str
    rider_id: str
    pickup_lat: float
    pickup_lon: float
    drop_lat: float
    drop_lon: float
    pickup_address: str | None = None
    drop_address: str | None = None
    distance_km: float
    fare_rupees: float
    status: str
    driver_id: str | None = None
    otp: str | None = None
    created_at: str | None = None
    accepted_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    cancelled_at: str | None = None
    cancelled_by: str | None = None
    cancel_reason: str | None = None
    eta_minutes: int | None = None


class RideCreateOut(BaseModel):
    ride: RideOut
    offers_created: int


class NearbyRideOut(BaseModel):
    ride: RideOut
    distance_to_pickup_km: float


class StartRideIn(BaseModel):
    otp: str = Field(min_length=4, max_length=8)


class CancelRideIn(BaseModel):
    reason: str | None = Field(default=None, max_length=256)
