"""Error taxonomy for the overlay pipeline."""

from __future__ import annotations


class OverlayError(Exception):
    """Base class for overlay pipeline errors."""


class UnsupportedGeometry(OverlayError, ValueError):
    """Geometry is neither a Polygon nor a MultiPolygon, or is not a simple ring."""


class MissingImage(OverlayError, LookupError):
    """No source image can be resolved for a country."""

    def __init__(self, admin: str) -> None:
        super().__init__(f"No source image resolvable for country '{admin}'")
        self.admin = admin


class InvalidQuadrant(OverlayError, ValueError):
    """Quadrant outside {0, 1, 2, 3}."""

    def __init__(self, quadrant: object) -> None:
        super().__init__(f"Invalid quadrant: {quadrant!r}")
        self.quadrant = quadrant


class ImageLoadError(OverlayError, RuntimeError):
    """A resolved source image could not be read or decoded."""
