"""Clip one quadrant of a source image to a ring's silhouette."""

from __future__ import annotations

from typing import Sequence

from PIL import Image, ImageDraw

from .clip_region import build_region, ring_to_pixels
from .errors import UnsupportedGeometry
from .models import RenderedArtifact, Ring, SourceRect, artifact_key, ensure_quadrant

_RESAMPLING = getattr(getattr(Image, "Resampling", Image), "LANCZOS")


def canvas_size(width: int, height: int) -> tuple[int, int]:
    """Destination raster is a fixed half-resolution of the source."""
    return (max(int(width) // 2, 1), max(int(height) // 2, 1))


def source_rect(variant: int, width: int, height: int) -> SourceRect:
    """Quadrant of the source image used as texture for `variant`.

    0 = top-left, 1 = top-right, 2 = bottom-left, 3 = bottom-right.
    """
    quadrant = ensure_quadrant(variant)
    half_w, half_h = canvas_size(width, height)
    x = half_w if quadrant in (1, 3) else 0
    y = half_h if quadrant in (2, 3) else 0
    return SourceRect(x=x, y=y, width=half_w, height=half_h)


def polygon_mask(pixels: Sequence[tuple[float, float]], size: tuple[int, int]) -> Image.Image:
    mask = Image.new("L", size, 0)
    if len(pixels) >= 3:
        ImageDraw.Draw(mask).polygon(list(pixels), fill=255)
    return mask


def clip(image: Image.Image, ring: Ring, variant: int) -> RenderedArtifact:
    """Produce the clipped artifact for one ring and quadrant variant."""
    if not isinstance(ring, Ring):
        raise UnsupportedGeometry(
            f"Clipper accepts a single ring, got {type(ring).__name__}"
        )
    quadrant = ensure_quadrant(variant)
    width, height = canvas_size(image.width, image.height)
    region = build_region(ring, width, height)
    mask = polygon_mask(ring_to_pixels(ring, region), (width, height))

    rect = source_rect(quadrant, image.width, image.height)
    tile = image.crop(rect.box).convert("RGBA")
    if tile.size != (width, height):
        tile = tile.resize((width, height), resample=_RESAMPLING)

    canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    canvas.paste(tile, (0, 0), mask)
    return RenderedArtifact(
        key=artifact_key(ring.admin, quadrant, ring.index),
        admin=ring.admin,
        quadrant=quadrant,
        ring_index=ring.index,
        image=canvas,
        coordinates=region.corners(),
    )
