from pydantic import BaseModel, Field


class RatingIn(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, max_length=1000)


class RatingOut(BaseModel):
    id: str
    ride_id: str
    passenger_id: str
    driver_id: str
    rating: int
    comment: str | None = None
    created_at: str | None = None


class DriverRatingsOut(BaseModel):
    driver_id: str
    average: float | None = None
    count: int
    ratings: list[RatingOut]
