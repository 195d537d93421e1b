"""Sequential, country-by-country artifact loading."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from .clipper import clip
from .geometry import decompose
from .host import MapHost
from .images import ImageResolver, ImageSource
from .io_borders import BorderDataset
from .models import CountryPolygon, CountryState, LoadState, RenderedArtifact, Ring
from .registry import CountryStateRegistry

_LOGGER = logging.getLogger("overlaybuilder.loader")


@dataclass(slots=True)
class LoadReport:
    states: dict[str, LoadState] = field(default_factory=dict)
    artifact_counts: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def order(self) -> tuple[str, ...]:
        return tuple(self.states)

    def countries_in(self, state: LoadState) -> list[str]:
        return [admin for admin, current in self.states.items() if current is state]

    def mark(self, admin: str, state: LoadState) -> None:
        self.states[admin] = state

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class SequentialLoader:
    """Walk the country list in order, finishing each country before the next.

    A ring failure is not contained: it marks the country `failed` and
    propagates out of `run`, so no later country is attempted. Artifacts
    registered before the failure stay registered.
    """

    def __init__(
        self,
        *,
        registry: CountryStateRegistry,
        host: MapHost,
        resolver: ImageResolver,
        images: ImageSource,
    ) -> None:
        self.registry = registry
        self.host = host
        self.resolver = resolver
        self.images = images
        self.progress = LoadReport()

    async def run(
        self,
        dataset: BorderDataset,
        *,
        countries: Sequence[str] | None = None,
        limit: int | None = None,
    ) -> LoadReport:
        report = LoadReport()
        self.progress = report
        if limit is not None and limit < 1:
            report.add_error("limit must be >= 1 when provided.")
            return report

        selected = self._select_features(dataset, countries=countries, limit=limit, report=report)
        labels = [
            dataset.admin_name(feature) or f"#{idx}" for idx, feature in enumerate(selected)
        ]
        for label in labels:
            report.mark(label, LoadState.PENDING)

        total = len(selected)
        for idx, (label, feature) in enumerate(zip(labels, selected), start=1):
            country_t0 = time.perf_counter()
            image_url = self.resolver.resolve(dataset.admin_name(feature))
            if image_url is None:
                report.mark(label, LoadState.SKIPPED)
                _LOGGER.info("[load] (%d/%d) skipped %s (no image)", idx, total, label)
                continue

            report.mark(label, LoadState.LOADING)
            try:
                polygon = CountryPolygon.from_feature(feature, admin_field=dataset.admin_field)
                state = self.registry.ensure(polygon, image_url)
                async with self.registry.lock_for(state.admin):
                    count = await self.load_country(state)
            except Exception as exc:
                report.mark(label, LoadState.FAILED)
                report.add_error(f"{label}: {exc}")
                if idx < total:
                    report.add_warning(
                        f"Aborted loading of the remaining {total - idx} countries after {label} failed."
                    )
                self._summarize(report)
                _LOGGER.error("[load] (%d/%d) failed %s: %s", idx, total, label, exc)
                raise

            report.mark(label, LoadState.LOADED)
            report.artifact_counts[label] = count
            _LOGGER.info(
                "[load] (%d/%d) loaded %s in %.2fs (%d artifacts)",
                idx,
                total,
                label,
                time.perf_counter() - country_t0,
                count,
            )

        self._summarize(report)
        return report

    async def load_country(self, state: CountryState) -> int:
        """Clip and register all rings of one country at its current quadrant.

        Rings are processed concurrently and awaited jointly; once every ring
        has settled, the first failure (if any) is raised. The caller must
        hold the country's registry lock.
        """
        state.load_state = LoadState.LOADING
        quadrant = state.quadrant
        try:
            rings = decompose(state.polygon)
            results = await asyncio.gather(
                *(self._load_ring(state, ring, quadrant) for ring in rings),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
        except Exception:
            state.load_state = LoadState.FAILED
            raise
        state.load_state = LoadState.LOADED
        return len(results)

    async def _load_ring(self, state: CountryState, ring: Ring, quadrant: int) -> RenderedArtifact:
        image = await self.images.load(state.image_url)
        artifact = clip(image, ring, quadrant)
        self.host.add_artifact(artifact)
        self.registry.record_artifact(state.admin, artifact.key)
        return artifact

    @staticmethod
    def _select_features(
        dataset: BorderDataset,
        *,
        countries: Sequence[str] | None,
        limit: int | None,
        report: LoadReport,
    ) -> list[Mapping[str, Any]]:
        features = list(dataset.features)
        requested = {item.strip().casefold() for item in countries or () if item and item.strip()}
        if requested:
            features = [
                feature
                for feature in features
                if (dataset.admin_name(feature) or "").casefold() in requested
            ]
            report.add_info(
                f"Country filter enabled: {len(features)} selected from {len(requested)} requested names."
            )
            found = {(dataset.admin_name(feature) or "").casefold() for feature in features}
            missing = sorted(requested - found)
            if missing:
                report.add_warning("Requested countries not present in border dataset: " + ", ".join(missing))
        if limit is not None:
            features = features[:limit]
            report.add_info(f"Country limit enabled: first {len(features)} countries.")
        return features

    @staticmethod
    def _summarize(report: LoadReport) -> None:
        report.summary = {
            "countries_total": len(report.states),
            "countries_loaded": len(report.countries_in(LoadState.LOADED)),
            "countries_skipped": len(report.countries_in(LoadState.SKIPPED)),
            "countries_failed": len(report.countries_in(LoadState.FAILED)),
            "countries_pending": len(report.countries_in(LoadState.PENDING)),
            "artifacts_registered": sum(report.artifact_counts.values()),
        }
        report.add_info(
            "Load summary: "
            + ", ".join(f"{key}={value}" for key, value in report.summary.items())
        )


def format_load_lines(report: LoadReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Country loading completed with no errors.")
    return lines
