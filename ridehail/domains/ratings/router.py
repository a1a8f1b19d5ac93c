from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ridehail.core.deps import get_db, get_principal, require_passenger
from ridehail.core.security import Principal
from ridehail.domains.ratings.schemas import DriverRatingsOut, RatingIn, RatingOut
from ridehail.domains.ratings.service import get_driver_ratings, submit_driver_rating


router = APIRouter()


@router.post("/rides/{ride_id}/rating", response_model=RatingOut, status_code=201)
def rate_ride(
    ride_id: str,
    payload: RatingIn,
    principal: Principal = Depends(require_passenger),
    db: Session = Depends(get_db),
) -> RatingOut:
    r = submit_driver_rating(
        db,
        ride_id=ride_id,
        passenger_id=principal.sub,
        rating=payload.rating,
        comment=payload.comment,
    )
    return RatingOut(**r.to_public_dict())


@router.get("/drivers/{driver_id}/ratings", response_model=DriverRatingsOut)
def driver_ratings(
    driver_id: str,
    _principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> DriverRatingsOut:
    return DriverRatingsOut(**get_driver_ratings(db, driver_id=driver_id))
