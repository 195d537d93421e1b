"""Validation layer for config, overrides, and the border dataset."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from .config import AppConfig, is_url
from .errors import UnsupportedGeometry
from .geometry import decompose
from .images import ImageResolver, load_image_overrides
from .io_borders import BorderDataset, load_border_dataset
from .models import CountryPolygon, Ring
from .util import format_name_list


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class Validator:
    """Top-level input and schema validator.

    Loading aborts on the first unsupported geometry, so in strict mode every
    geometry problem is an error. Image presence is only ever a warning: the
    loader resolves names without probing files.
    """

    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg
        self.dataset: BorderDataset | None = None

    def run(self, *, strict: bool) -> ValidationReport:
        report = ValidationReport()
        self._validate_config_paths(report, strict=strict)
        overrides = self._validate_image_overrides(report)
        dataset = self._validate_borders(report, strict=strict)
        if dataset is not None:
            self._validate_admin_names(report, dataset)
            self._validate_geometries(report, dataset, strict=strict)
            self._validate_local_images(report, dataset, overrides)
        return report

    def _validate_config_paths(self, report: ValidationReport, *, strict: bool) -> None:
        borders = self.cfg.paths.borders
        if isinstance(borders, Path):
            self._check_exists(report, borders, as_error=strict)
        else:
            report.add_info(f"Border dataset is remote: {borders}")

        if not is_url(self.cfg.images.base):
            base = self._local_image_base()
            if not base.is_dir():
                self._add_quality_issue(
                    report, f"Image directory not found: {base}", strict=strict
                )

    def _validate_image_overrides(self, report: ValidationReport) -> dict[str, str | None]:
        try:
            overrides = load_image_overrides(self.cfg.paths.image_overrides)
        except Exception as exc:
            report.add_error(f"Failed parsing image overrides: {exc}")
            return {}
        skipped = sorted(admin for admin, value in overrides.items() if value is None)
        report.add_info(
            f"Loaded {len(overrides)} image override entries ({len(skipped)} marked as no image)"
        )
        return overrides

    def _validate_borders(self, report: ValidationReport, *, strict: bool) -> BorderDataset | None:
        borders = self.cfg.paths.borders
        if isinstance(borders, Path) and not borders.exists():
            report.add_info("Skipping border dataset checks because the dataset file is missing.")
            return None
        try:
            dataset = load_border_dataset(
                borders,
                admin_field=self.cfg.borders.admin_field,
                http=self.cfg.http,
            )
        except Exception as exc:
            self._add_quality_issue(report, f"Failed loading border dataset: {exc}", strict=strict)
            return None
        self.dataset = dataset
        report.add_info(
            f"Loaded {len(dataset)} border features from {dataset.source} "
            f"(admin property '{dataset.admin_field}')"
        )
        if not len(dataset):
            report.add_warning("Border dataset contains no features.")
        return dataset

    def _validate_admin_names(self, report: ValidationReport, dataset: BorderDataset) -> None:
        names = dataset.admin_names()
        unnamed = [str(idx) for idx, name in enumerate(names) if name is None]
        if unnamed:
            report.add_error(
                f"Features without a '{dataset.admin_field}' name (by index): "
                f"{format_name_list(unnamed)}"
            )
        counts = Counter(name for name in names if name is not None)
        duplicates = sorted(f"{name}({count})" for name, count in counts.items() if count > 1)
        if duplicates:
            report.add_error(
                "Duplicate country names; artifact keys would collide: "
                f"{format_name_list(duplicates)}"
            )

    def _validate_geometries(
        self,
        report: ValidationReport,
        dataset: BorderDataset,
        *,
        strict: bool,
    ) -> None:
        unsupported: list[str] = []
        invalid_rings: list[str] = []
        empty_rings: list[str] = []
        ring_total = 0
        multi_total = 0

        for idx, feature in enumerate(dataset.features):
            label = dataset.admin_name(feature) or f"#{idx}"
            try:
                country = CountryPolygon.from_feature(feature, admin_field=dataset.admin_field)
                rings = decompose(country)
            except (UnsupportedGeometry, ValueError) as exc:
                unsupported.append(f"{label}({exc})")
                continue
            if country.geometry_type == "MultiPolygon":
                multi_total += 1
            ring_total += len(rings)
            for ring in rings:
                problem = _ring_problem(ring)
                if problem == "empty":
                    empty_rings.append(f"{label}[{ring.index}]")
                elif problem is not None:
                    invalid_rings.append(f"{label}[{ring.index}]")

        if unsupported:
            self._add_quality_issue(
                report,
                "Features whose geometry would abort loading: "
                f"{format_name_list(sorted(unsupported))}",
                strict=strict,
            )
        if empty_rings:
            report.add_warning(
                "Rings with zero area (clip to an empty image): "
                f"{format_name_list(empty_rings)}"
            )
        if invalid_rings:
            report.add_warning(
                "Self-intersecting rings (mask may have gaps): "
                f"{format_name_list(invalid_rings)}"
            )
        report.add_info(
            "Geometry summary: "
            f"features={len(dataset)}, multipolygons={multi_total}, rings={ring_total}, "
            f"unsupported={len(unsupported)}"
        )

    def _validate_local_images(
        self,
        report: ValidationReport,
        dataset: BorderDataset,
        overrides: dict[str, str | None],
    ) -> None:
        if is_url(self.cfg.images.base):
            report.add_info("Image base is remote; skipping image presence checks.")
            return
        resolver = ImageResolver.from_config(self.cfg.images, overrides)
        present = 0
        missing: list[str] = []
        skipped = 0
        for name in dataset.admin_names():
            url = resolver.resolve(name)
            if url is None:
                skipped += 1
                continue
            if is_url(url):
                continue
            path = Path(url)
            path = path if path.is_absolute() else self.cfg.root_dir / path
            if path.exists():
                present += 1
            else:
                missing.append(name or "")

        report.add_info(
            "Image coverage summary: "
            f"present={present}, missing={len(missing)}, skipped={skipped}"
        )
        if missing:
            report.add_warning(
                "Missing country images (loading stops at the first one): "
                f"{format_name_list(sorted(missing))}"
            )

    def _local_image_base(self) -> Path:
        base = Path(self.cfg.images.base)
        return base if base.is_absolute() else self.cfg.root_dir / base

    @staticmethod
    def _check_exists(report: ValidationReport, path: Path, *, as_error: bool) -> None:
        if path.exists():
            return
        msg = f"Missing dataset file: {path}"
        if as_error:
            report.add_error(msg)
        else:
            report.add_warning(msg)

    @staticmethod
    def _add_quality_issue(report: ValidationReport, msg: str, *, strict: bool) -> None:
        if strict:
            report.add_error(msg)
        else:
            report.add_warning(msg)


def _ring_problem(ring: Ring) -> str | None:
    polygon_cls = _require_shapely_polygon()
    if len(ring.points) < 3:
        return "empty"
    shape: Any = polygon_cls(ring.points)
    if shape.area == 0:
        return "empty"
    if not shape.is_valid:
        return "invalid"
    return None


def _require_shapely_polygon() -> Any:
    try:
        from shapely.geometry import Polygon
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for ring validity checks") from exc
    return Polygon


def format_report_lines(report: ValidationReport) -> Iterable[str]:
    for info in report.infos:
        yield f"[INFO] {info}"
    for warning in report.warnings:
        yield f"[WARN] {warning}"
    for error in report.errors:
        yield f"[ERROR] {error}"
    if report.ok:
        yield "[OK] Validation completed with no errors."
