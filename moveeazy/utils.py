from datetime import datetime, timezone
from math import asin, cos, degrees, radians, sin, sqrt

from .config import settings

EARTH_RADIUS_KM = 6371.0


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = radians(lat2 - lat1)
    d_lon = radians(lon2 - lon1)
    a = sin(d_lat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(d_lon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * asin(min(1.0, sqrt(a)))


def bounding_box(lat: float, lon: float, radius_km: float):
    """(min_lat, max_lat, min_lon, max_lon) enclosing a circle of `radius_km`.

    Longitude bounds are None when the box reaches a pole or crosses the
    antimeridian.
    """
    angular = radius_km / EARTH_RADIUS_KM
    d_lat = degrees(angular)
    min_lat, max_lat = lat - d_lat, lat + d_lat
    if min_lat <= -90 or max_lat >= 90:
        return min_lat, max_lat, None, None
    d_lon = degrees(asin(min(1.0, sin(angular) / cos(radians(lat)))))
    min_lon, max_lon = lon - d_lon, lon + d_lon
    if min_lon < -180 or max_lon > 180:
        return min_lat, max_lat, None, None
    return min_lat, max_lat, min_lon, max_lon


def estimate_fare_cents(distance_km: float) -> int:
    if distance_km < 0:
        raise ValueError("distance_km must be non-negative")
    return settings.BASE_FARE_CENTS + int(round(settings.PER_KM_CENTS * distance_km))


def format_address(address: str | None) -> str:
    if not address:
        return ""
    return ",".join(address.split(",")[:2]).strip()
