import math
from typing import NamedTuple, Tuple

EARTH_RADIUS_METERS = 6371000.0


class Coordinate(NamedTuple):
    latitude: float
    longitude: float


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two coordinates using the haversine formula."""
    if a == b:
        return 0.0

    lat1, lon1, lat2, lon2 = map(math.radians, [a.latitude, a.longitude, b.latitude, b.longitude])

    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(h)))


def bounding_box(center: Coordinate, radius_meters: float) -> Tuple[float, float, float, float]:
    """Return (min_lon, min_lat, max_lon, max_lat) enclosing a circle around center."""
    dlat = math.degrees(radius_meters / EARTH_RADIUS_METERS)
    # Clamp near the poles so the longitude span stays finite
    cos_lat = max(0.2, math.cos(math.radians(center.latitude)))
    dlon = dlat / cos_lat
    return (
        max(-180.0, center.longitude - dlon),
        max(-90.0, center.latitude - dlat),
        min(180.0, center.longitude + dlon),
        min(90.0, center.latitude + dlat),
    )
