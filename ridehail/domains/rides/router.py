from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ridehail.core.deps import get_db, get_principal, require_driver, require_passenger
from ridehail.core.security import Principal
from ridehail.domains.drivers.schemas import LocationOut
from ridehail.domains.rides.models import RideRequest
from ridehail.domains.rides.schemas import (
    CancelRideIn,
    EstimateIn,
    EstimateOut,
    NearbyRideOut,
    RideCreateIn,
    RideCreateOut,
    RideOut,
    StartRideIn,
)
from ridehail.domains.rides.service import (
    accept_ride,
    cancel_ride,
    complete_ride,
    create_ride_request,
    estimate,
    estimate_eta,
    get_driver_location_for,
    get_current_ride,
    get_nearby_pending_requests,
    get_ride_for,
    get_ride_history,
    ride_view,
    start_ride,
)


router = APIRouter(prefix="/rides")


def _out(ride: RideRequest, principal: Principal) -> RideOut:
    row = ride_view(ride.to_public_dict(include_otp=True), principal.sub)
    return RideOut(**row, eta_minutes=estimate_eta(ride.distance_km))


@router.post("/estimate", response_model=EstimateOut)
def estimate_route(payload: EstimateIn) -> EstimateOut:
    out = estimate(
        pickup_lat=payload.pickup.lat,
        pickup_lon=payload.pickup.lon,
        drop_lat=payload.drop.lat,
        drop_lon=payload.drop.lon,
    )
    return EstimateOut(**out)


@router.post("", response_model=RideCreateOut, status_code=201)
def create(
    payload: RideCreateIn,
    principal: Principal = Depends(require_passenger),
    db: Session = Depends(get_db),
) -> RideCreateOut:
    ride, offers_created = create_ride_request(
        db,
        rider_id=principal.sub,
        pickup_lat=payload.pickup.lat,
        pickup_lon=payload.pickup.lon,
        drop_lat=payload.drop.lat,
        drop_lon=payload.drop.lon,
        pickup_address=payload.pickup_address,
        drop_address=payload.drop_address,
        radius_km=payload.radius_km,
    )
    return RideCreateOut(ride=_out(ride, principal), offers_created=offers_created)


@router.get("/current", response_model=RideOut | None)
def current(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)) -> RideOut | None:
    ride = get_current_ride(db, user_id=principal.sub)
    return _out(ride, principal) if ride else None


@router.get("/history", response_model=list[RideOut])
def history(
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> list[RideOut]:
    return [_out(r, principal) for r in get_ride_history(db, user_id=principal.sub, limit=limit)]


@router.get("/nearby", response_model=list[NearbyRideOut])
def nearby(
    lat: float = Query(ge=-90.0, le=90.0),
    lon: float = Query(ge=-180.0, le=180.0),
    radius_km: float | None = Query(default=None, gt=0.0, le=50.0),
    principal: Principal = Depends(require_driver),
    db: Session = Depends(get_db),
) -> list[NearbyRideOut]:
    rows = get_nearby_pending_requests(db, lat=lat, lon=lon, radius_km=radius_km)
    return [NearbyRideOut(ride=_out(r, principal), distance_to_pickup_km=round(d, 3)) for r, d in rows]


@router.get("/{ride_id}", response_model=RideOut)
def get_one(ride_id: str, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)) -> RideOut:
    return _out(get_ride_for(db, ride_id, principal), principal)


@router.get("/{ride_id}/driver-location", response_model=LocationOut)
def driver_location(
    ride_id: str,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> LocationOut:
    loc = get_driver_location_for(db, ride_id=ride_id, principal=principal)
    return LocationOut(
        driver_id=loc.driver_id,
        lat=loc.lat,
        lon=loc.lon,
        updated_at=loc.updated_at.isoformat() if loc.updated_at else None,
    )


@router.post("/{ride_id}/accept", response_model=RideOut)
def accept(ride_id: str, principal: Principal = Depends(require_driver), db: Session = Depends(get_db)) -> RideOut:
    return _out(accept_ride(db, ride_id=ride_id, driver_id=principal.sub), principal)


@router.post("/{ride_id}/start", response_model=RideOut)
def start(
    ride_id: str,
    payload: StartRideIn,
    principal: Principal = Depends(require_driver),
    db: Session = Depends(get_db),
) -> RideOut:
    return _out(start_ride(db, ride_id=ride_id, driver_id=principal.sub, otp=payload.otp), principal)


@router.post("/{ride_id}/complete", response_model=RideOut)
def complete(ride_id: str, principal: Principal = Depends(require_driver), db: Session = Depends(get_db)) -> RideOut:
    return _out(complete_ride(db, ride_id=ride_id, driver_id=principal.sub), principal)


@router.post("/{ride_id}/cancel", response_model=RideOut)
def cancel(
    ride_id: str,
    payload: CancelRideIn | None = None,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> RideOut:
    reason = payload.reason if payload else None
    return _out(cancel_ride(db, ride_id=ride_id, principal=principal, reason=reason), principal)
