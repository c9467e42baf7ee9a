"""Great-circle distance between geographic points."""

from __future__ import annotations

import math

from src.shared.models import GeoPoint

EARTH_RADIUS_KM = 6371.0


def distance_km(a: GeoPoint | None, b: GeoPoint | None) -> float:
    """Haversine distance in kilometres.

    Returns ``math.inf`` when either point is missing, so unlocated shops
    sort after every located one.
    """
    if a is None or b is None:
        return math.inf

    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = math.radians(b.latitude - a.latitude)
    d_lon = math.radians(b.longitude - a.longitude)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    h = min(1.0, h)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def bounding_box(center: GeoPoint, radius_km: float) -> tuple[float, float, float, float]:
    """Return ``(min_lat, max_lat, min_lon, max_lon)`` enclosing a radius.

    Used as a coarse SQL prefilter before the exact haversine check.
    """
    d_lat = math.degrees(radius_km / EARTH_RADIUS_KM)
    cos_lat = math.cos(math.radians(center.latitude))
    # Near the poles every longitude is within range
    if cos_lat < 1e-6:
        d_lon = 180.0
    else:
        d_lon = min(180.0, math.degrees(radius_km / (EARTH_RADIUS_KM * cos_lat)))
    return (
        max(-90.0, center.latitude - d_lat),
        min(90.0, center.latitude + d_lat),
        center.longitude - d_lon,
        center.longitude + d_lon,
    )
