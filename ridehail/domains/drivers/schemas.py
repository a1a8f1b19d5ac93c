from pydantic import BaseModel, Field


class LocationIn(BaseModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lon: float = Field(ge=-180.0, le=180.0)


class LocationOut(BaseModel):
    driver_id: str
    lat: float
    lon: float
    updated_at: str | None = None


class OnlineIn(BaseModel):
    is_online: bool


class DriverProfileIn(BaseModel):
    vehicle: str | None = Field(default=None, max_length=128)
    plate: str | None = Field(default=None, max_length=32)


class DriverOut(BaseModel):
    id: str
    is_online: bool
    vehicle: str | None = None
    plate: str | None = None
    current_lat: float | None = None
    current_lon: float | None = None
    updated_at: str | None = None
