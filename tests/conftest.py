from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Callable

import pytest
from PIL import Image

from overlaybuilder.errors import ImageLoadError
from overlaybuilder.host import InMemoryHost
from overlaybuilder.images import ImageResolver
from overlaybuilder.io_borders import BorderDataset
from overlaybuilder.registry import CountryStateRegistry
from overlaybuilder.session import OverlaySession

RED = (255, 0, 0, 255)
GREEN = (0, 255, 0, 255)
BLUE = (0, 0, 255, 255)
YELLOW = (255, 255, 0, 255)
QUADRANT_COLORS = (RED, GREEN, BLUE, YELLOW)


def make_quadrant_image(width: int = 40, height: int = 40) -> Image.Image:
    """Four solid quadrants: red TL, green TR, blue BL, yellow BR."""
    image = Image.new("RGBA", (width, height))
    half_w, half_h = width // 2, height // 2
    image.paste(RED, (0, 0, half_w, half_h))
    image.paste(GREEN, (half_w, 0, width, half_h))
    image.paste(BLUE, (0, half_h, half_w, height))
    image.paste(YELLOW, (half_w, half_h, width, height))
    return image


def square(lon0: float, lat0: float, size: float = 10.0) -> list[list[float]]:
    return [
        [lon0, lat0],
        [lon0 + size, lat0],
        [lon0 + size, lat0 + size],
        [lon0, lat0 + size],
        [lon0, lat0],
    ]


def polygon_feature(admin: str | None, *rings: list[list[float]]) -> dict[str, Any]:
    return {
        "type": "Feature",
        "properties": {"admin": admin},
        "geometry": {"type": "Polygon", "coordinates": list(rings)},
    }


def multipolygon_feature(admin: str, *polygons: list[list[float]]) -> dict[str, Any]:
    return {
        "type": "Feature",
        "properties": {"admin": admin},
        "geometry": {"type": "MultiPolygon", "coordinates": [[ring] for ring in polygons]},
    }


class FakeImages:
    """In-memory image source with optional per-URL delays."""

    def __init__(
        self,
        images: dict[str, Image.Image],
        delays: dict[str, float] | None = None,
    ) -> None:
        self.images = images
        self.delays = delays or {}
        self.calls: list[str] = []

    async def load(self, url: str) -> Image.Image:
        self.calls.append(url)
        await asyncio.sleep(self.delays.get(url, 0))
        if url not in self.images:
            raise ImageLoadError(f"Failed loading image '{url}': not found")
        return self.images[url]


@pytest.fixture
def quadrant_image() -> Image.Image:
    return make_quadrant_image()


@pytest.fixture
def two_country_dataset() -> BorderDataset:
    features = (
        polygon_feature("A", square(0, 0)),
        multipolygon_feature("B", square(20, 0), square(40, 20)),
    )
    return BorderDataset(features=features, admin_field="admin", source="memory")


@pytest.fixture
def make_session() -> Callable[..., OverlaySession]:
    def _make(
        images: dict[str, Image.Image],
        *,
        overrides: dict[str, str | None] | None = None,
        delays: dict[str, float] | None = None,
    ) -> OverlaySession:
        return OverlaySession(
            host=InMemoryHost(),
            resolver=ImageResolver("img", "png", overrides),
            images=FakeImages(images, delays),
            registry=CountryStateRegistry(),
        )

    return _make


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Config, border dataset and images for end-to-end runs."""
    (tmp_path / "data").mkdir()
    (tmp_path / "images").mkdir()
    collection = {
        "type": "FeatureCollection",
        "features": [
            polygon_feature("A", square(0, 0)),
            multipolygon_feature("B", square(20, 0), square(40, 20)),
            polygon_feature("C", square(-20, -20)),
        ],
    }
    (tmp_path / "data" / "countries.geojson").write_text(json.dumps(collection), encoding="utf-8")
    (tmp_path / "data" / "image_overrides.yaml").write_text("C: null\n", encoding="utf-8")
    make_quadrant_image().save(tmp_path / "images" / "A.png")
    make_quadrant_image().save(tmp_path / "images" / "B.png")
    (tmp_path / "config.yaml").write_text(
        "\n".join(
            [
                "project:",
                "  name: test-overlays",
                "paths:",
                "  borders: data/countries.geojson",
                "  image_overrides: data/image_overrides.yaml",
                "  build_root: build",
                "  artifacts_dir: build/artifacts",
                "  qa_dir: build/qa",
                "  manifests_dir: build/manifests",
                "  logs_dir: build/logs",
                "  preview_png: build/preview/overlays.png",
                "images:",
                "  base: images",
                "  extension: png",
                "preview:",
                "  enabled: false",
                "  width_px: 320",
                "  height_px: 200",
                "  dpi: 100",
                "  background: white",
                "qa:",
                "  generate_index: true",
                "  thumbnail_width_px: 120",
                "  max_columns: 3",
                "build:",
                "  write_manifest: true",
                "  write_artifacts: true",
                "",
            ]
        ),
        encoding="utf-8",
    )
    return tmp_path
