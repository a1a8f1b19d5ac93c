import logging
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, status
from sqlalchemy import update
from sqlalchemy.orm import Session

from ridehail.core.config import settings
from ridehail.domains.drivers.models import Driver, DriverLocation
from ridehail.domains.offers.models import RideOffer
from ridehail.domains.rides.models import RideRequest, RideStatus
from ridehail.realtime.feed import INSERT, feed
from ridehail.utils.ride_math import bounding_box, haversine_distance_km

logger = logging.getLogger(__name__)


def nearby_drivers(db: Session, *, lat: float, lon: float, radius_km: float) -> list[dict]:
    """
    Drivers available around a point, nearest first.

    Available = online, position fresher than
    `driver_location_max_age_seconds`, and not already on an accepted/ongoing ride.
    Returns: [{"driver_id", "distance_km", "lat", "lon"}]
    """
    if radius_km <= 0:
        return []
    min_lat, max_lat, min_lon, max_lon = bounding_box(lat, lon, radius_km)
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=settings.driver_location_max_age_seconds)
    busy = (
        db.query(RideRequest.driver_id)
        .filter(
            RideRequest.driver_id.is_not(None),
            RideRequest.status.in_([RideStatus.ACCEPTED, RideStatus.ONGOING]),
        )
        .scalar_subquery()
    )
    rows = (
        db.query(DriverLocation)
        .join(Driver, Driver.id == DriverLocation.driver_id)
        .filter(
            DriverLocation.lat.between(min_lat, max_lat),
            DriverLocation.lon.between(min_lon, max_lon),
            DriverLocation.updated_at >= cutoff,
            Driver.is_online.is_(True),
            DriverLocation.driver_id.not_in(busy),
        )
        .all()
    )
    out: list[dict] = []
    for loc in rows:
        dist = haversine_distance_km(lat, lon, float(loc.lat), float(loc.lon))
        if dist <= radius_km:
            out.append({"driver_id": loc.driver_id, "distance_km": round(dist, 3), "lat": loc.lat, "lon": loc.lon})
    out.sort(key=lambda d: d["distance_km"])
    return out


def create_ride_offers(
    db: Session,
    *,
    ride_id: str,
    pickup_lat: float,
    pickup_lon: float,
    radius_km: float | None = None,
) -> list[RideOffer]:
    ride = db.get(RideRequest, ride_id)
    if ride is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ride not found")
    if ride.status != RideStatus.PENDING:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "RIDE_NOT_PENDING", "message": "Offers can only be created for pending rides.", "status": ride.status.value},
        )

    radius = settings.nearby_radius_km if radius_km is None else float(radius_km)
    drivers = nearby_drivers(db, lat=pickup_lat, lon=pickup_lon, radius_km=radius)
    if not drivers:
        return []

    already = {r[0] for r in db.query(RideOffer.driver_id).filter(RideOffer.ride_id == ride_id).all()}
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=settings.offer_ttl_seconds)
    offers: list[RideOffer] = []
    for d in drivers:
        if d["driver_id"] in already:
            continue
        offer = RideOffer(
            ride_id=ride_id,
            driver_id=d["driver_id"],
            distance_km=d["distance_km"],
            created_at=now,
            expires_at=expires_at,
        )
        db.add(offer)
        offers.append(offer)
    db.commit()
    for offer in offers:
        db.refresh(offer)
        feed.publish("ride_offers", INSERT, offer.to_public_dict())
    logger.info("ride offers created: ride=%s radius_km=%s offered=%s", ride_id, radius, len(offers))
    return offers


def list_driver_offers(db: Session, *, driver_id: str) -> list[tuple[RideOffer, RideRequest]]:
    """Live offers for a driver: not expired, ride still pending. Newest first."""
    now = datetime.now(timezone.utc)
    rows = (
        db.query(RideOffer, RideRequest)
        .join(RideRequest, RideRequest.id == RideOffer.ride_id)
        .filter(
            RideOffer.driver_id == driver_id,
            RideOffer.expires_at > now,
            RideRequest.status == RideStatus.PENDING,
        )
        .order_by(RideOffer.created_at.desc())
        .all()
    )
    return [(offer, ride) for offer, ride in rows]


def withdraw_offers(db: Session, *, ride_id: str) -> None:
    """Expire every live offer for a ride. Caller commits."""
    now = datetime.now(timezone.utc)
    db.execute(
        update(RideOffer)
        .where(RideOffer.ride_id == ride_id, RideOffer.expires_at > now)
        .values(expires_at=now)
        .execution_options(synchronize_session=False)
    )
