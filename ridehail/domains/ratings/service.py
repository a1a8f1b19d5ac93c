from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from ridehail.domains.ratings.models import DriverRating
from ridehail.domains.rides.models import RideRequest, RideStatus


def submit_driver_rating(
    db: Session,
    *,
    ride_id: str,
    passenger_id: str,
    rating: int,
    comment: str | None,
) -> DriverRating:
    ride = db.get(RideRequest, ride_id)
    if ride is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ride not found")
    if ride.rider_id != passenger_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your ride")
    if ride.status != RideStatus.COMPLETED or not ride.driver_id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "RIDE_NOT_COMPLETED", "message": "Only completed rides can be rated."},
        )
    if db.query(DriverRating).filter(DriverRating.ride_id == ride_id).one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "ALREADY_RATED", "message": "This ride has already been rated."},
        )
    r = DriverRating(
        ride_id=ride_id,
        passenger_id=passenger_id,
        driver_id=ride.driver_id,
        rating=rating,
        comment=comment,
    )
    db.add(r)
    db.commit()
    db.refresh(r)
    return r


def get_driver_ratings(db: Session, *, driver_id: str) -> dict:
    rows = (
        db.query(DriverRating)
        .filter(DriverRating.driver_id == driver_id)
        .order_by(DriverRating.created_at.desc())
        .all()
    )
    avg = round(sum(r.rating for r in rows) / len(rows), 2) if rows else None
    return {"driver_id": driver_id, "average": avg, "count": len(rows), "ratings": [r.to_public_dict() for r in rows]}
