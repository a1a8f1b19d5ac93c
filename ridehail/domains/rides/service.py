import logging
import secrets
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from ridehail.core.config import settings
from ridehail.core.security import Principal
from ridehail.domains.drivers.models import DriverLocation
from ridehail.domains.notifications.service import notify_best_effort
from ridehail.domains.offers.service import create_ride_offers, withdraw_offers
from ridehail.domains.rides.models import ACTIVE_STATUSES, RideRequest, RideStatus, can_transition
from ridehail.realtime.feed import INSERT, UPDATE, feed
from ridehail.utils.ride_math import (
    bounding_box,
    calculate_fare,
    estimate_eta_minutes,
    generate_otp,
    haversine_distance_km,
)

logger = logging.getLogger(__name__)


def ride_view(row: dict, viewer_id: str | None) -> dict:
    """The OTP is for the rider to read out; nobody else gets to see it."""
    if viewer_id is None or row.get("rider_id") != viewer_id:
        return {**row, "otp": None}
    return row


def estimate_eta(distance_km: float) -> int | None:
    return estimate_eta_minutes(distance_km, settings.avg_speed_kmph)


def estimate(*, pickup_lat: float, pickup_lon: float, drop_lat: float, drop_lon: float) -> dict:
    distance = haversine_distance_km(pickup_lat, pickup_lon, drop_lat, drop_lon)
    return {
        "distance_km": round(distance, 3),
        "fare_rupees": calculate_fare(distance, base_fare=settings.base_fare_rupees, per_km=settings.per_km_rupees),
        "eta_minutes": estimate_eta(distance),
    }


def _active_ride_for_rider(db: Session, rider_id: str) -> RideRequest | None:
    return (
        db.query(RideRequest)
        .filter(RideRequest.rider_id == rider_id, RideRequest.status.in_(ACTIVE_STATUSES))
        .order_by(RideRequest.created_at.desc())
        .first()
    )


def _active_ride_for_driver(db: Session, driver_id: str) -> RideRequest | None:
    return (
        db.query(RideRequest)
        .filter(
            RideRequest.driver_id == driver_id,
            RideRequest.status.in_([RideStatus.ACCEPTED, RideStatus.ONGOING]),
        )
        .first()
    )


def create_ride_request(
    db: Session,
    *,
    rider_id: str,
    pickup_lat: float,
    pickup_lon: float,
    drop_lat: float,
    drop_lon: float,
    pickup_address: str | None = None,
    drop_address: str | None = None,
    radius_km: float | None = None,
) -> tuple[RideRequest, int]:
    """
    Book a ride: price it, store it as pending, then fan out offers to nearby drivers.
    Returns (ride, offers_created). Offer fan-out is best-effort; the ride stands without it.
    """
    existing = _active_ride_for_rider(db, rider_id)
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "ACTIVE_RIDE_EXISTS",
                "message": "Finish or cancel your current ride before booking another.",
                "ride_id": existing.id,
            },
        )

    distance = haversine_distance_km(pickup_lat, pickup_lon, drop_lat, drop_lon)
    ride = RideRequest(
        rider_id=rider_id,
        pickup_lat=pickup_lat,
        pickup_lon=pickup_lon,
        drop_lat=drop_lat,
        drop_lon=drop_lon,
        pickup_address=pickup_address,
        drop_address=drop_address,
        distance_km=distance,
        fare_rupees=calculate_fare(distance, base_fare=settings.base_fare_rupees, per_km=settings.per_km_rupees),
        status=RideStatus.PENDING,
    )
    db.add(ride)
    db.commit()
    db.refresh(ride)
    feed.publish("ride_requests", INSERT, ride.to_public_dict(include_otp=True))
    logger.info("ride requested: id=%s rider=%s distance_km=%.3f fare=%s", ride.id, rider_id, distance, ride.fare_rupees)

    offers_created = 0
    try:
        offers = create_ride_offers(
            db,
            ride_id=ride.id,
            pickup_lat=pickup_lat,
            pickup_lon=pickup_lon,
            radius_km=radius_km,
        )
        offers_created = len(offers)
    except Exception as e:
        db.rollback()
        logger.warning("ride offers not created: ride=%s err=%s", ride.id, e)
    return ride, offers_created


def get_ride(db: Session, ride_id: str) -> RideRequest:
    ride = db.get(RideRequest, ride_id)
    if ride is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ride not found")
    return ride


def get_ride_for(db: Session, ride_id: str, principal: Principal) -> RideRequest:
    ride = get_ride(db, ride_id)
    if principal.is_admin or principal.sub in (ride.rider_id, ride.driver_id):
        return ride
    # Any driver may look at a ride that is still up for grabs.
    if principal.role == "driver" and ride.status == RideStatus.PENDING:
        return ride
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a participant of this ride")


def get_driver_location_for(db: Session, *, ride_id: str, principal: Principal) -> DriverLocation:
    """Last known position of the assigned driver, for the people on the ride while it is live."""
    ride = get_ride(db, ride_id)
    if not (principal.is_admin or principal.sub in (ride.rider_id, ride.driver_id)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a participant of this ride")
    if ride.status not in (RideStatus.ACCEPTED, RideStatus.ONGOING) or not ride.driver_id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "RIDE_NOT_LIVE", "message": "No driver is on the way for this ride.", "status": ride.status.value},
        )
    loc = db.get(DriverLocation, ride.driver_id)
    if loc is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Driver location not available")
    return loc


def _invalid_transition(ride: RideRequest, target: RideStatus, code: str = "INVALID_TRANSITION") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "code": code,
            "message": f"Cannot move ride from {ride.status.value} to {target.value}.",
            "status": ride.status.value,
        },
    )


def _transition(
    db: Session,
    ride: RideRequest,
    *,
    target: RideStatus,
    values: dict,
    conflict_code: str = "INVALID_TRANSITION",
) -> RideRequest:
    """
    Compare-and-set on status: the UPDATE only matches while the row still has the status
    we read, so concurrent writers cannot both win.
    """
    expected = ride.status
    if not can_transition(expected, target):
        raise _invalid_transition(ride, target, conflict_code)

    result = db.execute(
        update(RideRequest)
        .where(RideRequest.id == ride.id, RideRequest.status == expected)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        db.refresh(ride)
        raise _invalid_transition(ride, target, conflict_code)
    if target != RideStatus.ONGOING:
        withdraw_offers(db, ride_id=ride.id)
    db.commit()
    db.refresh(ride)
    feed.publish("ride_requests", UPDATE, ride.to_public_dict(include_otp=True))
    logger.info("ride %s: %s -> %s", ride.id, expected.value, target.value)
    return ride


def accept_ride(db: Session, *, ride_id: str, driver_id: str) -> RideRequest:
    ride = get_ride(db, ride_id)
    busy = _active_ride_for_driver(db, driver_id)
    if busy is not None and busy.id != ride_id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "DRIVER_BUSY", "message": "Complete your current ride first.", "ride_id": busy.id},
        )
    ride = _transition(
        db,
        ride,
        target=RideStatus.ACCEPTED,
        values={
            "driver_id": driver_id,
            "otp": generate_otp(settings.ride_otp_len),
            "accepted_at": datetime.now(timezone.utc),
        },
        conflict_code="RIDE_NOT_PENDING",
    )
    notify_best_effort(
        db,
        user_id=ride.rider_id,
        type="ride_accepted",
        title="Driver on the way",
        message="A driver accepted your ride. Share your OTP when they arrive.",
        ride_id=ride.id,
        data={"driver_id": driver_id},
    )
    return ride


def _require_assigned_driver(ride: RideRequest, driver_id: str) -> None:
    if ride.driver_id != driver_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Ride is assigned to another driver")


def start_ride(db: Session, *, ride_id: str, driver_id: str, otp: str) -> RideRequest:
    ride = get_ride(db, ride_id)
    _require_assigned_driver(ride, driver_id)
    if ride.status != RideStatus.ACCEPTED:
        raise _invalid_transition(ride, RideStatus.ONGOING)
    if not secrets.compare_digest((ride.otp or "").encode(), (otp or "").strip().encode()):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "OTP_MISMATCH", "message": "OTP incorrect"},
        )
    ride = _transition(db, ride, target=RideStatus.ONGOING, values={"started_at": datetime.now(timezone.utc)})
    notify_best_effort(
        db,
        user_id=ride.rider_id,
        type="ride_started",
        title="Ride started",
        message="Your ride is under way.",
        ride_id=ride.id,
    )
    return ride


def complete_ride(db: Session, *, ride_id: str, driver_id: str) -> RideRequest:
    ride = get_ride(db, ride_id)
    _require_assigned_driver(ride, driver_id)
    ride = _transition(db, ride, target=RideStatus.COMPLETED, values={"completed_at": datetime.now(timezone.utc)})
    notify_best_effort(
        db,
        user_id=ride.rider_id,
        type="ride_completed",
        title="Ride completed",
        message=f"You have arrived. Fare: ₹{ride.fare_rupees:.2f}",
        ride_id=ride.id,
        data={"fare_rupees": ride.fare_rupees},
    )
    return ride


def cancel_ride(db: Session, *, ride_id: str, principal: Principal, reason: str | None = None) -> RideRequest:
    ride = get_ride(db, ride_id)
    if not (principal.is_admin or principal.sub in (ride.rider_id, ride.driver_id)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a participant of this ride")
    ride = _transition(
        db,
        ride,
        target=RideStatus.CANCELLED,
        values={
            "cancelled_at": datetime.now(timezone.utc),
            "cancelled_by": principal.sub,
            "cancel_reason": reason,
        },
    )
    counterpart = ride.driver_id if principal.sub == ride.rider_id else ride.rider_id
    if counterpart:
        notify_best_effort(
            db,
            user_id=counterpart,
            type="ride_cancelled",
            title="Ride cancelled",
            message=reason or "The ride was cancelled.",
            ride_id=ride.id,
        )
    return ride


def get_nearby_pending_requests(
    db: Session,
    *,
    lat: float,
    lon: float,
    radius_km: float | None = None,
) -> list[tuple[RideRequest, float]]:
    """Pending rides whose pickup lies within `radius_km` of the driver, nearest first."""
    radius = settings.nearby_radius_km if radius_km is None else float(radius_km)
    min_lat, max_lat, min_lon, max_lon = bounding_box(lat, lon, radius)
    rows = (
        db.query(RideRequest)
        .filter(
            RideRequest.status == RideStatus.PENDING,
            RideRequest.pickup_lat.between(min_lat, max_lat),
            RideRequest.pickup_lon.between(min_lon, max_lon),
        )
        .all()
    )
    out: list[tuple[RideRequest, float]] = []
    for r in rows:
        d = haversine_distance_km(lat, lon, r.pickup_lat, r.pickup_lon)
        if d <= radius:
            out.append((r, d))
    out.sort(key=lambda t: t[1])
    return out


def get_current_ride(db: Session, *, user_id: str) -> RideRequest | None:
    return (
        db.query(RideRequest)
        .filter(
            or_(RideRequest.rider_id == user_id, RideRequest.driver_id == user_id),
            RideRequest.status.in_([RideStatus.PENDING, RideStatus.ACCEPTED, RideStatus.ONGOING]),
        )
        .order_by(RideRequest.created_at.desc())
        .first()
    )


def get_ride_history(db: Session, *, user_id: str, limit: int | None = None) -> list[RideRequest]:
    return (
        db.query(RideRequest)
        .filter(
            or_(RideRequest.rider_id == user_id, RideRequest.driver_id == user_id),
            RideRequest.status == RideStatus.COMPLETED,
        )
        .order_by(RideRequest.created_at.desc())
        .limit(limit or settings.ride_history_limit)
        .all()
    )
