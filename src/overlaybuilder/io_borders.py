"""Border dataset loading interfaces."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import requests

from .config import HttpConfig, is_url
from .models import feature_admin_name

_LOGGER = logging.getLogger("overlaybuilder.io_borders")

ADMIN_FIELD_CANDIDATES = ("admin", "ADMIN", "name", "NAME", "NAME_EN", "name_en")


def _first_existing_column(columns: Iterable[str], candidates: Sequence[str]) -> str | None:
    existing = {col.lower(): col for col in columns}
    for candidate in candidates:
        if candidate in existing.values():
            return candidate
        match = existing.get(candidate.lower())
        if match:
            return match
    return None


@dataclass(frozen=True, slots=True)
class BorderDataset:
    """Read-only feature collection with the property used as country key."""

    features: tuple[Mapping[str, Any], ...]
    admin_field: str
    source: str

    def __len__(self) -> int:
        return len(self.features)

    def admin_name(self, feature: Mapping[str, Any]) -> str | None:
        return feature_admin_name(feature, self.admin_field)

    def admin_names(self) -> list[str | None]:
        return [self.admin_name(feature) for feature in self.features]


class BorderRepository:
    """Access to the border dataset from a GeoJSON file, a URL, or any
    vector format GeoPandas can read (e.g. Natural Earth shapefiles)."""

    GEOJSON_SUFFIXES = (".geojson", ".json")

    def __init__(self, source: str | Path, *, http: HttpConfig | None = None) -> None:
        self.source = source
        self.http = http or HttpConfig.default()

    def load(self, *, admin_field: str = "admin") -> BorderDataset:
        payload = self._load_payload()
        features = _features_from_payload(payload)
        field = detect_admin_field(features, preferred=admin_field)
        if field != admin_field:
            _LOGGER.info("Admin property '%s' not found; using '%s'", admin_field, field)
        return BorderDataset(features=features, admin_field=field, source=str(self.source))

    def _load_payload(self) -> Any:
        if isinstance(self.source, str) and is_url(self.source):
            response = requests.get(
                self.source,
                headers={"User-Agent": self.http.user_agent},
                timeout=self.http.request_timeout_s,
            )
            response.raise_for_status()
            return response.json()

        path = Path(self.source)
        if not path.exists():
            raise FileNotFoundError(f"Border dataset not found: {path}")
        if path.suffix.casefold() in self.GEOJSON_SUFFIXES:
            return json.loads(path.read_text(encoding="utf-8"))
        return self._read_with_geopandas(path)

    def _read_with_geopandas(self, path: Path) -> dict[str, Any]:
        gpd = self._require_geopandas()
        mapping = _require_shapely_mapping()
        frame = gpd.read_file(path)
        if frame.crs is not None and frame.crs.to_epsg() != 4326:
            frame = frame.to_crs(epsg=4326)

        features: list[dict[str, Any]] = []
        for _, row in frame.iterrows():
            geometry = row.get("geometry")
            properties = {str(key): value for key, value in row.items() if key != "geometry"}
            features.append(
                {
                    "type": "Feature",
                    "properties": properties,
                    "geometry": mapping(geometry) if geometry is not None else None,
                }
            )
        return {"type": "FeatureCollection", "features": features}

    @staticmethod
    def _require_geopandas() -> Any:
        try:
            import geopandas as gpd
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError("geopandas is required for non-GeoJSON border datasets") from exc
        return gpd


def load_border_dataset(
    source: str | Path,
    *,
    admin_field: str = "admin",
    http: HttpConfig | None = None,
) -> BorderDataset:
    return BorderRepository(source, http=http).load(admin_field=admin_field)


def detect_admin_field(features: Sequence[Mapping[str, Any]], *, preferred: str) -> str:
    columns: list[str] = []
    for feature in features:
        properties = feature.get("properties")
        if not isinstance(properties, Mapping):
            continue
        for key in properties:
            if isinstance(key, str) and key not in columns:
                columns.append(key)
    if preferred in columns or not features:
        return preferred
    match = _first_existing_column(columns, (preferred, *ADMIN_FIELD_CANDIDATES))
    if match is None:
        cols = ", ".join(columns)
        raise ValueError(
            "Could not detect country name property in border dataset. "
            f"Available properties: {cols}"
        )
    return match


def _features_from_payload(payload: Any) -> tuple[Mapping[str, Any], ...]:
    if not isinstance(payload, Mapping):
        raise ValueError("Expected GeoJSON object at root of border dataset.")
    if payload.get("type") != "FeatureCollection":
        raise ValueError("Border dataset must be a GeoJSON FeatureCollection.")
    features = payload.get("features")
    if not isinstance(features, list):
        raise ValueError("Expected 'features' list in border dataset.")
    out: list[Mapping[str, Any]] = []
    for idx, feature in enumerate(features):
        if not isinstance(feature, Mapping):
            raise ValueError(f"Expected feature mapping at index {idx}")
        out.append(feature)
    return tuple(out)


def _require_shapely_mapping() -> Any:
    try:
        from shapely.geometry import mapping
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for border geometry conversion") from exc
    return mapping
