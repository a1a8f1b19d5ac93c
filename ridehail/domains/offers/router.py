from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ridehail.core.deps import get_db, get_principal, require_driver
from ridehail.core.security import Principal
from ridehail.domains.offers.schemas import CreateRideOffersIn, CreateRideOffersOut, DriverOfferOut, RideOfferOut
from ridehail.domains.offers.service import create_ride_offers, list_driver_offers


router = APIRouter()


@router.post("/api/create-ride-offers", response_model=CreateRideOffersOut)
def create_ride_offers_route(
    payload: CreateRideOffersIn,
    _principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> CreateRideOffersOut:
    offers = create_ride_offers(
        db,
        ride_id=payload.ride_id,
        pickup_lat=payload.pickup_lat,
        pickup_lon=payload.pickup_lon,
        radius_km=payload.radius_km,
    )
    return CreateRideOffersOut(
        created=len(offers),
        offers=[RideOfferOut(**o.to_public_dict()) for o in offers],
    )


@router.get("/drivers/me/offers", response_model=list[DriverOfferOut])
def my_offers(principal: Principal = Depends(require_driver), db: Session = Depends(get_db)) -> list[DriverOfferOut]:
    return [
        DriverOfferOut(offer=RideOfferOut(**offer.to_public_dict()), ride=ride.to_public_dict())
        for offer, ride in list_driver_offers(db, driver_id=principal.sub)
    ]
