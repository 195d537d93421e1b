"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, cast

import yaml


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _positive_int(value: Any, field_name: str) -> int:
    out = _int(value, field_name)
    if out < 1:
        raise ValueError(f"'{field_name}' must be >= 1")
    return out


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected bool for '{field_name}'")
    return value


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


def is_url(value: str | Path) -> bool:
    return isinstance(value, str) and value.casefold().startswith(("http://", "https://"))


def _location_from_cfg(value: Any, field_name: str, root_dir: Path) -> str | Path:
    raw = _str(value, field_name)
    if is_url(raw):
        return raw
    return _path_from_cfg(raw, field_name, root_dir)


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    name: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ProjectConfig:
        return cls(name=_str(raw.get("name"), "project.name"))


@dataclass(frozen=True, slots=True)
class PathsConfig:
    borders: str | Path
    image_overrides: Path
    build_root: Path
    artifacts_dir: Path
    qa_dir: Path
    manifests_dir: Path
    logs_dir: Path
    preview_png: Path

    @property
    def build_directories(self) -> tuple[Path, ...]:
        return (
            self.build_root,
            self.artifacts_dir,
            self.qa_dir,
            self.manifests_dir,
            self.logs_dir,
            self.preview_png.parent,
        )

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> PathsConfig:
        return cls(
            borders=_location_from_cfg(raw.get("borders"), "paths.borders", root_dir),
            image_overrides=_path_from_cfg(
                raw.get("image_overrides"), "paths.image_overrides", root_dir
            ),
            build_root=_path_from_cfg(raw.get("build_root"), "paths.build_root", root_dir),
            artifacts_dir=_path_from_cfg(raw.get("artifacts_dir"), "paths.artifacts_dir", root_dir),
            qa_dir=_path_from_cfg(raw.get("qa_dir"), "paths.qa_dir", root_dir),
            manifests_dir=_path_from_cfg(raw.get("manifests_dir"), "paths.manifests_dir", root_dir),
            logs_dir=_path_from_cfg(raw.get("logs_dir"), "paths.logs_dir", root_dir),
            preview_png=_path_from_cfg(raw.get("preview_png"), "paths.preview_png", root_dir),
        )


@dataclass(frozen=True, slots=True)
class BordersConfig:
    admin_field: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> BordersConfig:
        return cls(admin_field=_str(raw.get("admin_field", "admin"), "borders.admin_field"))


@dataclass(frozen=True, slots=True)
class ImagesConfig:
    base: str
    extension: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ImagesConfig:
        base = _str(raw.get("base"), "images.base").rstrip("/")
        extension = _str(raw.get("extension"), "images.extension").lstrip(".")
        if not base:
            raise ValueError("images.base cannot be only '/'")
        if not extension:
            raise ValueError("images.extension cannot be empty")
        return cls(base=base, extension=extension)


@dataclass(frozen=True, slots=True)
class HttpConfig:
    request_timeout_s: int
    user_agent: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> HttpConfig:
        return cls(
            request_timeout_s=_positive_int(raw.get("request_timeout_s"), "http.request_timeout_s"),
            user_agent=_str(raw.get("user_agent"), "http.user_agent"),
        )

    @classmethod
    def default(cls) -> HttpConfig:
        return cls(request_timeout_s=30, user_agent="country-overlays/0.1")


@dataclass(frozen=True, slots=True)
class PreviewConfig:
    enabled: bool
    width_px: int
    height_px: int
    dpi: int
    background: str
    outline_color: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> PreviewConfig:
        background = _str(raw.get("background"), "preview.background").casefold()
        allowed = {"white", "flat", "satellite"}
        if background not in allowed:
            raise ValueError(
                "preview.background must be one of: " + ", ".join(sorted(allowed))
            )
        return cls(
            enabled=_bool(raw.get("enabled"), "preview.enabled"),
            width_px=_positive_int(raw.get("width_px"), "preview.width_px"),
            height_px=_positive_int(raw.get("height_px"), "preview.height_px"),
            dpi=_positive_int(raw.get("dpi"), "preview.dpi"),
            background=background,
            outline_color=_str(raw.get("outline_color", "#ffffff"), "preview.outline_color"),
        )


@dataclass(frozen=True, slots=True)
class QaConfig:
    generate_index: bool
    thumbnail_width_px: int
    max_columns: int

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> QaConfig:
        return cls(
            generate_index=_bool(raw.get("generate_index"), "qa.generate_index"),
            thumbnail_width_px=_positive_int(raw.get("thumbnail_width_px"), "qa.thumbnail_width_px"),
            max_columns=_positive_int(raw.get("max_columns"), "qa.max_columns"),
        )


@dataclass(frozen=True, slots=True)
class BuildConfig:
    write_manifest: bool
    write_artifacts: bool

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> BuildConfig:
        return cls(
            write_manifest=_bool(raw.get("write_manifest"), "build.write_manifest"),
            write_artifacts=_bool(raw.get("write_artifacts"), "build.write_artifacts"),
        )


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path
    project: ProjectConfig
    paths: PathsConfig
    borders: BordersConfig
    images: ImagesConfig
    http: HttpConfig
    preview: PreviewConfig
    qa: QaConfig
    build: BuildConfig

    @property
    def root_dir(self) -> Path:
        return self.source_path.parent

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> AppConfig:
        root_dir = source_path.parent.resolve()
        http_raw = raw.get("http")
        return cls(
            source_path=source_path.resolve(),
            project=ProjectConfig.from_mapping(_mapping(raw.get("project"), "project")),
            paths=PathsConfig.from_mapping(_mapping(raw.get("paths"), "paths"), root_dir),
            borders=BordersConfig.from_mapping(_mapping(raw.get("borders", {}), "borders")),
            images=ImagesConfig.from_mapping(_mapping(raw.get("images"), "images")),
            http=(
                HttpConfig.default()
                if http_raw is None
                else HttpConfig.from_mapping(_mapping(http_raw, "http"))
            ),
            preview=PreviewConfig.from_mapping(_mapping(raw.get("preview"), "preview")),
            qa=QaConfig.from_mapping(_mapping(raw.get("qa"), "qa")),
            build=BuildConfig.from_mapping(_mapping(raw.get("build"), "build")),
        )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)
