"""
Account Guard - Great-Circle Distance.

Used only to annotate location-anomaly events with how far the
new fix is from the trusted location. Not an input to scoring.
"""

import math


EARTH_RADIUS_KM = 6371.0


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Haversine distance between two points.

    Args:
        lat1, lon1: First point in decimal degrees
        lat2, lon2: Second point in decimal degrees

    Returns:
        Distance in kilometres (non-negative)
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    # Float error can push the haversine term above 1 near antipodes
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c
