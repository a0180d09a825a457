#Purpose: Great-circle distance between two (lat, lon) points.
#Used by the scoring layer (driver -> delivery point) and as the
#fallback when OSRM cannot produce a road distance.
#Pure math, no I/O.

import math
from typing import Tuple

#internal coordinate type :(lat,lon)
LatLon = Tuple[float, float]

EARTH_RADIUS_KM = 6371.0


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Haversine distance in kilometres between two points.

    distance_km(p, p) == 0 and the result is symmetric in its two points.
    Antipodal points return pi * EARTH_RADIUS_KM (~20015 km).
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    # rounding can push a a hair outside [0, 1] near antipodes
    a = min(1.0, max(0.0, a))

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_between(origin: LatLon, destination: LatLon) -> float:
    """Tuple form of distance_km, for callers holding (lat, lon) pairs."""
    return distance_km(origin[0], origin[1], destination[0], destination[1])
