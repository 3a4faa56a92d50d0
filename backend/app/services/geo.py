"""
Great-circle distance helpers.

Haversine with a mean Earth radius of 6371 km. Invalid (non-finite) input
propagates as NaN; callers drop records without coordinates before
filtering rather than treating them as 0 or infinitely far away.
"""

import math
from typing import Any, Optional

import numpy as np

EARTH_RADIUS_KM = 6371.0


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance between two lat/lon points in kilometers."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distances_km(lat: float, lon: float, lats, lons) -> np.ndarray:
    """
    Vectorised distance_km from one origin to many points.

    `lats` / `lons` may contain NaN; the matching output entries are NaN.
    """
    lats = np.asarray(lats, dtype=float)
    lons = np.asarray(lons, dtype=float)

    phi1 = np.radians(lat)
    phi2 = np.radians(lats)
    dphi = np.radians(lats - lat)
    dlambda = np.radians(lons - lon)

    a = np.sin(dphi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(dlambda / 2) ** 2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def parse_coordinate(value: Any) -> Optional[float]:
    """Float coordinate, or None for missing / unparseable / non-finite values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(f):
        return None
    return f


def has_coordinates(lat: Any, lng: Any) -> bool:
    return parse_coordinate(lat) is not None and parse_coordinate(lng) is not None
