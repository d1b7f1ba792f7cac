"""
Great-circle distance for proximity filtering of ride searches.

Search is deliberately simple: a database pre-filter on status / seats /
departure followed by a haversine radius check on the start and end
points.  A spatial index or routing service would replace this module.
"""

import math

EARTH_RADIUS_M = 6_371_000.0


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Return the great-circle distance in **metres** between two points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lng2 - lng1)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))


def within_radius(
    lat: float, lng: float, center_lat: float, center_lng: float, radius_m: float
) -> bool:
    return haversine_m(lat, lng, center_lat, center_lng) <= radius_m
