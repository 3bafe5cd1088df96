"""Great-circle distance and circular zone containment."""
import math
from typing import Iterable

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def point_in_zone(lat: float, lng: float, zone) -> bool:
    """True when the point lies within the zone's radius (boundary included)."""
    distance_m = haversine_km(lat, lng, zone.center_lat, zone.center_lng) * 1000
    return distance_m <= zone.radius_meters


def find_zone(lat: float, lng: float, zones: Iterable):
    """First zone (in the given order) containing the point, or None."""
    for zone in zones:
        if point_in_zone(lat, lng, zone):
            return zone
    return None
