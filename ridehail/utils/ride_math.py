import math
import secrets
from decimal import ROUND_HALF_UP, Decimal


EARTH_RADIUS_KM = 6371.0
KM_PER_DEG_LAT = 111.0


def haversine_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def round_half_up(value: float, places: int = 2) -> float:
    # Ties round up: 35.125 -> 35.13.
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def calculate_fare(distance_km: float, *, base_fare: float = 35.0, per_km: float = 10.0) -> float:
    """Linear fare in rupees, rounded to paise and never below 1."""
    fare = base_fare + per_km * distance_km
    return max(1.0, round_half_up(fare, 2))


def generate_otp(length: int = 4) -> str:
    lower = 10 ** (length - 1)
    upper = 10**length
    return str(secrets.randbelow(upper - lower) + lower)


def estimate_eta_minutes(distance_km: float, avg_speed_kmph: float = 30.0) -> int | None:
    if avg_speed_kmph <= 0:
        return None
    minutes = distance_km * 60 / avg_speed_kmph
    return int(math.floor(minutes + 0.5))


def bounding_box(lat: float, lon: float, radius_km: float) -> tuple[float, float, float, float]:
    """
    Coarse (min_lat, max_lat, min_lon, max_lon) window around a point.
    Always contains the haversine circle of `radius_km`; callers re-check exact distance.
    A window that would cross the antimeridian spans the full longitude range instead.
    """
    dlat = radius_km / KM_PER_DEG_LAT
    dlon = radius_km / (KM_PER_DEG_LAT * max(0.01, math.cos(math.radians(lat))))
    min_lon, max_lon = lon - dlon, lon + dlon
    if min_lon < -180.0 or max_lon > 180.0:
        min_lon, max_lon = -180.0, 180.0
    return lat - dlat, lat + dlat, min_lon, max_lon
