"""
Great-circle distance and coordinate comparison.

Road distance always comes from the routing collaborator.  Haversine is
only used to report how far a snap-to-road moved a point, and to decide
whether snapping changed anything at all.

Complexity: O(1) per call.
"""

import math

from .entities import Location

EARTH_RADIUS_M = 6_371_000.0

# Two coordinates closer than this (in degrees) are the same point
COORD_TOLERANCE_DEG = 1e-7


def haversine_m(a: Location, b: Location) -> float:
    """Return the great-circle distance in **metres** between two points."""
    lat1_r, lat2_r = math.radians(a.lat), math.radians(b.lat)
    dlat = math.radians(b.lat - a.lat)
    dlng = math.radians(b.lng - a.lng)

    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))


def same_point(a: Location, b: Location, tolerance: float = COORD_TOLERANCE_DEG) -> bool:
    return (
        math.isclose(a.lat, b.lat, rel_tol=0.0, abs_tol=tolerance)
        and math.isclose(a.lng, b.lng, rel_tol=0.0, abs_tol=tolerance)
    )
