"""Domain models shared across pipeline modules."""

from __future__ import annotations

import base64
import io
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Sequence, Union

from .errors import InvalidQuadrant, UnsupportedGeometry

Point = tuple[float, float]
LinearRing = tuple[Point, ...]
Corners = tuple[Point, Point, Point, Point]


def _coerce_ring(raw: Any, field_name: str) -> LinearRing:
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
        raise UnsupportedGeometry(f"Expected coordinate list for '{field_name}'")
    try:
        return tuple((float(pair[0]), float(pair[1])) for pair in raw)
    except (TypeError, ValueError, IndexError) as exc:
        raise UnsupportedGeometry(f"Invalid [lon, lat] pair in '{field_name}': {exc}") from exc


def _coerce_rings(raw: Any, field_name: str) -> tuple[LinearRing, ...]:
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)) or not raw:
        raise UnsupportedGeometry(f"Expected non-empty ring list for '{field_name}'")
    return tuple(_coerce_ring(ring, f"{field_name}[{idx}]") for idx, ring in enumerate(raw))


@dataclass(frozen=True, slots=True)
class PolygonGeometry:
    """GeoJSON `Polygon`: an outer ring followed by holes (holes are ignored)."""

    rings: tuple[LinearRing, ...]

    @property
    def outer(self) -> LinearRing:
        return self.rings[0]

    @classmethod
    def from_coordinates(cls, coordinates: Any) -> PolygonGeometry:
        return cls(rings=_coerce_rings(coordinates, "Polygon.coordinates"))


@dataclass(frozen=True, slots=True)
class MultiPolygonGeometry:
    """GeoJSON `MultiPolygon`: ordered member polygons, each a list of rings."""

    polygons: tuple[tuple[LinearRing, ...], ...]

    @classmethod
    def from_coordinates(cls, coordinates: Any) -> MultiPolygonGeometry:
        if not isinstance(coordinates, Sequence) or isinstance(coordinates, (str, bytes)):
            raise UnsupportedGeometry("Expected polygon list for 'MultiPolygon.coordinates'")
        return cls(
            polygons=tuple(
                _coerce_rings(polygon, f"MultiPolygon.coordinates[{idx}]")
                for idx, polygon in enumerate(coordinates)
            )
        )


Geometry = Union[PolygonGeometry, MultiPolygonGeometry]


def geometry_from_geojson(raw: Any) -> Geometry:
    """Build the tagged geometry from a GeoJSON mapping or a `__geo_interface__` object."""
    if hasattr(raw, "__geo_interface__"):
        raw = raw.__geo_interface__
    if not isinstance(raw, Mapping):
        raise UnsupportedGeometry(f"Expected geometry mapping, got {type(raw).__name__}")
    geom_type = raw.get("type")
    coordinates = raw.get("coordinates")
    if geom_type == "Polygon":
        return PolygonGeometry.from_coordinates(coordinates)
    if geom_type == "MultiPolygon":
        return MultiPolygonGeometry.from_coordinates(coordinates)
    raise UnsupportedGeometry(f"Unsupported geometry type: {geom_type!r}")


def feature_admin_name(feature: Mapping[str, Any], admin_field: str) -> str | None:
    properties = feature.get("properties")
    if not isinstance(properties, Mapping):
        return None
    value = properties.get(admin_field)
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()


@dataclass(frozen=True, slots=True)
class CountryPolygon:
    """One country boundary from the border dataset."""

    admin: str
    geometry: Geometry

    @property
    def geometry_type(self) -> str:
        if isinstance(self.geometry, MultiPolygonGeometry):
            return "MultiPolygon"
        if isinstance(self.geometry, PolygonGeometry):
            return "Polygon"
        return type(self.geometry).__name__

    @classmethod
    def from_feature(
        cls,
        feature: Mapping[str, Any],
        *,
        admin_field: str = "admin",
    ) -> CountryPolygon:
        admin = feature_admin_name(feature, admin_field)
        if admin is None:
            raise ValueError(f"Feature has no usable '{admin_field}' property")
        return cls(admin=admin, geometry=geometry_from_geojson(feature.get("geometry")))


@dataclass(frozen=True, slots=True)
class Ring:
    """Single closed outer boundary; the unit of clipping and rendering."""

    admin: str
    index: int
    points: LinearRing


class LoadState(str, Enum):
    PENDING = "pending"
    LOADING = "loading"
    LOADED = "loaded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class CountryState:
    """Per-country session state: active quadrant and registered artifact keys."""

    polygon: CountryPolygon
    image_url: str
    quadrant: int = 0
    artifact_keys: list[str] = field(default_factory=list)
    load_state: LoadState = LoadState.PENDING

    @property
    def admin(self) -> str:
        return self.polygon.admin


@dataclass(frozen=True, slots=True)
class SourceRect:
    x: int
    y: int
    width: int
    height: int

    @property
    def box(self) -> tuple[int, int, int, int]:
        return (self.x, self.y, self.x + self.width, self.y + self.height)


QUADRANTS = (0, 1, 2, 3)


def ensure_quadrant(quadrant: Any) -> int:
    """Fail fast on anything outside {0, 1, 2, 3}."""
    if isinstance(quadrant, bool) or not isinstance(quadrant, int) or quadrant not in QUADRANTS:
        raise InvalidQuadrant(quadrant)
    return quadrant


@dataclass(frozen=True, slots=True)
class QuadrantHighlight:
    quadrant: int
    left: float
    top: float
    width: float
    height: float


def artifact_key(admin: str, quadrant: int, ring_index: int) -> str:
    return f"image-{admin}-{quadrant}-{ring_index}"


@dataclass(frozen=True, slots=True)
class RenderedArtifact:
    """Clipped raster plus its geographic corners (TL, TR, BR, BL)."""

    key: str
    admin: str
    quadrant: int
    ring_index: int
    image: Any
    coordinates: Corners

    def to_png_bytes(self) -> bytes:
        buffer = io.BytesIO()
        self.image.save(buffer, format="PNG")
        return buffer.getvalue()

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.to_png_bytes()).decode("ascii")
        return f"data:image/png;base64,{encoded}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "admin": self.admin,
            "quadrant": self.quadrant,
            "ring_index": self.ring_index,
            "width_px": int(self.image.width),
            "height_px": int(self.image.height),
            "coordinates": [list(corner) for corner in self.coordinates],
        }


@dataclass(frozen=True, slots=True)
class BuildManifest:
    """Build metadata used for audit trails."""

    generated_at_utc: str
    config_hash_sha256: str
    git_commit: str | None
    steps: Mapping[str, str]
    countries: Mapping[str, Any]
    artifacts: Mapping[str, str]

    @classmethod
    def create(
        cls,
        *,
        config_hash_sha256: str,
        git_commit: str | None,
        steps: Mapping[str, str],
        countries: Mapping[str, Any],
        artifacts: Mapping[str, str],
    ) -> BuildManifest:
        now = datetime.now(timezone.utc).isoformat()
        return cls(
            generated_at_utc=now,
            config_hash_sha256=config_hash_sha256,
            git_commit=git_commit,
            steps=steps,
            countries=countries,
            artifacts=artifacts,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at_utc": self.generated_at_utc,
            "config_hash_sha256": self.config_hash_sha256,
            "git_commit": self.git_commit,
            "steps": dict(self.steps),
            "countries": dict(self.countries),
            "artifacts": dict(self.artifacts),
        }
