"""Spherical Web Mercator projection (EPSG:3857)."""

from __future__ import annotations

import math

EARTH_RADIUS_M = 6_378_137.0
MAX_LATITUDE = 85.0511
MIN_LATITUDE = -85.0511

_DEG = math.pi / 180.0


def clamp_latitude(lat: float) -> float:
    return max(min(float(lat), MAX_LATITUDE), MIN_LATITUDE)


def project(lon: float, lat: float) -> tuple[float, float]:
    """Project lon/lat degrees to Web Mercator metres.

    Latitude is expected to be clamped by the caller; a sine that drifts past
    unit magnitude is pinned to +/-1 instead of failing.
    """
    sin = math.sin(float(lat) * _DEG)
    if abs(sin) > 1.0:
        sin = math.copysign(1.0, sin)
    try:
        y = EARTH_RADIUS_M * math.log((1.0 + sin) / (1.0 - sin)) / 2.0
    except (ValueError, ZeroDivisionError):
        y = math.copysign(math.inf, sin)
    x = EARTH_RADIUS_M * float(lon) * _DEG
    return (x, y)


def project_clamped(lon: float, lat: float) -> tuple[float, float]:
    return project(lon, clamp_latitude(lat))
