"""Bounding box and projected-to-pixel mapping for one ring."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

from .errors import UnsupportedGeometry
from .models import Corners, Point, Ring
from .projection import MAX_LATITUDE, MIN_LATITUDE, project


@dataclass(frozen=True, slots=True)
class ClipRegion:
    """Clamped geographic box of a ring and its linear mapping onto a raster."""

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float
    top_left: tuple[float, float]
    bottom_right: tuple[float, float]
    width: int
    height: int

    def to_pixel(self, lon: float, lat: float) -> tuple[float, float]:
        x, y = project(lon, lat)
        return (
            _interpolate(x, self.top_left[0], self.bottom_right[0], self.width),
            _interpolate(y, self.top_left[1], self.bottom_right[1], self.height),
        )

    def corners(self) -> Corners:
        return (
            (self.min_lon, self.max_lat),
            (self.max_lon, self.max_lat),
            (self.max_lon, self.min_lat),
            (self.min_lon, self.min_lat),
        )


def bounding_box(points: Iterable[Point]) -> tuple[float, float, float, float]:
    """Single pass over the points: (min_lon, min_lat, max_lon, max_lat)."""
    min_lon = min_lat = math.inf
    max_lon = max_lat = -math.inf
    for lon, lat in points:
        if lon < min_lon:
            min_lon = lon
        if lat < min_lat:
            min_lat = lat
        if lon > max_lon:
            max_lon = lon
        if lat > max_lat:
            max_lat = lat
    return (min_lon, min_lat, max_lon, max_lat)


def build_region(ring: Ring, width: int, height: int) -> ClipRegion:
    if not ring.points:
        raise UnsupportedGeometry(f"Empty ring {ring.index} for {ring.admin}")
    min_lon, min_lat, max_lon, max_lat = bounding_box(ring.points)
    min_lat = max(min_lat, MIN_LATITUDE)
    max_lat = min(max_lat, MAX_LATITUDE)
    return ClipRegion(
        min_lon=min_lon,
        min_lat=min_lat,
        max_lon=max_lon,
        max_lat=max_lat,
        top_left=project(min_lon, max_lat),
        bottom_right=project(max_lon, min_lat),
        width=int(width),
        height=int(height),
    )


def ring_to_pixels(ring: Ring, region: ClipRegion) -> list[tuple[float, float]]:
    """Map every ring point into raster space; non-finite results are dropped."""
    out: list[tuple[float, float]] = []
    for lon, lat in ring.points:
        px, py = region.to_pixel(lon, lat)
        if math.isfinite(px) and math.isfinite(py):
            out.append((px, py))
    return out


def _interpolate(value: float, start: float, end: float, size: int) -> float:
    offset = (value - start) * size
    span = end - start
    if span == 0.0:
        # Zero-width/height box: no finite mapping exists.
        if offset == 0.0 or math.isnan(offset):
            return math.nan
        return math.copysign(math.inf, offset)
    return offset / span
