from datetime import datetime, timezone

from sqlalchemy.orm import Session

from ridehail.domains.drivers.models import Driver, DriverLocation
from ridehail.realtime.feed import INSERT, UPDATE, feed


def get_or_create_driver(db: Session, driver_id: str) -> Driver:
    driver = db.get(Driver, driver_id)
    if driver is None:
        driver = Driver(id=driver_id, is_online=False)
        db.add(driver)
        db.flush()
    return driver


def update_driver_location(db: Session, *, driver_id: str, lat: float, lon: float) -> DriverLocation:
    """Upsert the driver's last known position (one row per driver) and mirror it on the driver."""
    now = datetime.now(timezone.utc)
    loc = db.get(DriverLocation, driver_id)
    event = UPDATE
    if loc is None:
        loc = DriverLocation(driver_id=driver_id, lat=lat, lon=lon, updated_at=now)
        db.add(loc)
        event = INSERT
    else:
        loc.lat = lat
        loc.lon = lon
        loc.updated_at = now

    driver = get_or_create_driver(db, driver_id)
    driver.current_lat = lat
    driver.current_lon = lon
    driver.updated_at = now

    db.commit()
    db.refresh(loc)
    feed.publish("driver_locations", event, loc.to_public_dict())
    return loc


def set_online(db: Session, *, driver_id: str, is_online: bool) -> Driver:
    driver = get_or_create_driver(db, driver_id)
    driver.is_online = is_online
    driver.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(driver)
    feed.publish("drivers", UPDATE, driver.to_public_dict())
    return driver


def update_profile(db: Session, *, driver_id: str, vehicle: str | None, plate: str | None) -> Driver:
    driver = get_or_create_driver(db, driver_id)
    if vehicle is not None:
        driver.vehicle = vehicle
    if plate is not None:
        driver.plate = plate
    driver.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(driver)
    return driver
