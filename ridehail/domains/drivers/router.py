from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ridehail.core.deps import get_db, require_driver
from ridehail.core.security import Principal
from ridehail.domains.drivers.schemas import DriverOut, DriverProfileIn, LocationIn, LocationOut, OnlineIn
from ridehail.domains.drivers.service import get_or_create_driver, set_online, update_driver_location, update_profile


router = APIRouter(prefix="/drivers")


@router.get("/me", response_model=DriverOut)
def me(principal: Principal = Depends(require_driver), db: Session = Depends(get_db)) -> DriverOut:
    driver = get_or_create_driver(db, principal.sub)
    db.commit()
    return DriverOut(**driver.to_public_dict())


@router.put("/me", response_model=DriverOut)
def update_me(
    payload: DriverProfileIn,
    principal: Principal = Depends(require_driver),
    db: Session = Depends(get_db),
) -> DriverOut:
    driver = update_profile(db, driver_id=principal.sub, vehicle=payload.vehicle, plate=payload.plate)
    return DriverOut(**driver.to_public_dict())


@router.post("/me/location", response_model=LocationOut)
def post_location(
    payload: LocationIn,
    principal: Principal = Depends(require_driver),
    db: Session = Depends(get_db),
) -> LocationOut:
    loc = update_driver_location(db, driver_id=principal.sub, lat=payload.lat, lon=payload.lon)
    return LocationOut(
        driver_id=loc.driver_id,
        lat=loc.lat,
        lon=loc.lon,
        updated_at=loc.updated_at.isoformat() if loc.updated_at else None,
    )


@router.post("/me/online", response_model=DriverOut)
def post_online(
    payload: OnlineIn,
    principal: Principal = Depends(require_driver),
    db: Session = Depends(get_db),
) -> DriverOut:
    driver = set_online(db, driver_id=principal.sub, is_online=payload.is_online)
    return DriverOut(**driver.to_public_dict())
