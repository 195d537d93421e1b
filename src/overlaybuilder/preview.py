"""Static preview of registered overlays composited on a Web Mercator map."""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any, Iterable, Sequence

from .config import PreviewConfig
from .geometry import decompose
from .host import RegisteredSource
from .models import Ring
from .projection import project_clamped
from .registry import CountryStateRegistry

_LOGGER = logging.getLogger("overlaybuilder.preview")

_BACKGROUND_WHITE = "white"
_BACKGROUND_SATELLITE = "satellite"

Extent = tuple[float, float, float, float]


def source_extent(source: RegisteredSource) -> Extent:
    """(left, right, bottom, top) in metres for `imshow` from TL/BR corners."""
    top_left, _, bottom_right, _ = source.coordinates
    left, top = project_clamped(*top_left)
    right, bottom = project_clamped(*bottom_right)
    return (left, right, bottom, top)


def projected_ring(ring: Ring) -> list[tuple[float, float]]:
    return [project_clamped(lon, lat) for lon, lat in ring.points]


def preview_extent(
    extents: Iterable[Extent],
    rings: Iterable[Sequence[tuple[float, float]]],
    *,
    pad_ratio: float = 0.05,
) -> Extent | None:
    """Union of all drawn content, padded; None when nothing is drawable."""
    xs: list[float] = []
    ys: list[float] = []
    for left, right, bottom, top in extents:
        xs.extend((left, right))
        ys.extend((bottom, top))
    for ring in rings:
        for x, y in ring:
            xs.append(x)
            ys.append(y)
    xs = [x for x in xs if math.isfinite(x)]
    ys = [y for y in ys if math.isfinite(y)]
    if not xs or not ys:
        return None
    x0, x1 = min(xs), max(xs)
    y0, y1 = min(ys), max(ys)
    span = max(x1 - x0, y1 - y0)
    pad = span * pad_ratio if span > 0 else 1000.0
    return (x0 - pad, x1 + pad, y0 - pad, y1 + pad)


class PreviewRenderer:
    """Render one PNG with every registered artifact at its projected corners."""

    def __init__(self, cfg: PreviewConfig) -> None:
        self.cfg = cfg
        self._basemap_source = _resolve_basemap_source(cfg.background)
        self._basemap_failure: str | None = None

    @property
    def basemap_warning(self) -> str | None:
        return self._basemap_failure

    def render(
        self,
        *,
        sources: Sequence[RegisteredSource],
        registry: CountryStateRegistry,
        output_path: Path,
    ) -> Path:
        plt = _require_matplotlib()
        dpi = self.cfg.dpi
        extents = [source_extent(source) for source in sources]
        outlines: list[list[tuple[float, float]]] = []
        for state in registry:
            for ring in decompose(state.polygon):
                outlines.append(projected_ring(ring))

        fig, ax = plt.subplots(figsize=(self.cfg.width_px / dpi, self.cfg.height_px / dpi), dpi=dpi)
        fig.subplots_adjust(left=0.0, right=1.0, bottom=0.0, top=1.0)
        try:
            fig.patch.set_facecolor("white")
            ax.set_facecolor("white")
            ax.set_axis_off()
            extent = preview_extent(extents, outlines)
            if extent is not None:
                ax.set_xlim(extent[0], extent[1])
                ax.set_ylim(extent[2], extent[3])
                self._draw_basemap(ax=ax)

            for source, (left, right, bottom, top) in zip(sources, extents):
                if not all(math.isfinite(v) for v in (left, right, bottom, top)):
                    _LOGGER.warning("Skipping %s in preview: non-finite extent", source.key)
                    continue
                ax.imshow(
                    source.artifact.image,
                    extent=(left, right, bottom, top),
                    origin="upper",
                    interpolation="bilinear",
                    zorder=2,
                )
            for ring in outlines:
                points = [(x, y) for x, y in ring if math.isfinite(x) and math.isfinite(y)]
                if len(points) < 2:
                    continue
                xs, ys = zip(*points)
                ax.plot(xs, ys, color=self.cfg.outline_color, linewidth=0.8, zorder=3)

            if extent is not None:
                ax.set_xlim(extent[0], extent[1])
                ax.set_ylim(extent[2], extent[3])
            ax.set_aspect("equal", adjustable="datalim")

            output_path.parent.mkdir(parents=True, exist_ok=True)
            fig.savefig(output_path, dpi=dpi, format="png")
            _LOGGER.info("Preview written to %s (%d artifacts)", output_path, len(sources))
            return output_path
        finally:
            plt.close(fig)

    def _draw_basemap(self, *, ax: Any) -> None:
        if self._basemap_source is None or self._basemap_failure is not None:
            return
        contextily = _require_contextily()
        x0, x1 = ax.get_xlim()
        y0, y1 = ax.get_ylim()
        try:
            image, extent = contextily.bounds2img(
                x0,
                y0,
                x1,
                y1,
                zoom="auto",
                source=self._basemap_source,
                ll=False,
                use_cache=True,
                max_retries=1,
            )
            ax.imshow(image, extent=extent, interpolation="bilinear", zorder=0)
            ax.set_xlim(x0, x1)
            ax.set_ylim(y0, y1)
        except Exception as exc:
            self._basemap_failure = f"Basemap loading failed and was disabled: {exc}"
            _LOGGER.warning(self._basemap_failure)


def render_preview(
    cfg: PreviewConfig,
    *,
    sources: Sequence[RegisteredSource],
    registry: CountryStateRegistry,
    output_path: Path,
) -> tuple[Path, str | None]:
    """Render the preview; returns the path and any basemap warning."""
    renderer = PreviewRenderer(cfg)
    path = renderer.render(sources=sources, registry=registry, output_path=output_path)
    return path, renderer.basemap_warning


def _resolve_basemap_source(mode: str) -> Any | None:
    chosen = mode.casefold()
    if chosen == _BACKGROUND_WHITE:
        return None
    providers = _require_xyzservices_providers()
    if chosen == _BACKGROUND_SATELLITE:
        return providers.Esri.WorldImagery
    return providers.CartoDB.PositronNoLabels


def _require_matplotlib() -> Any:
    try:
        import matplotlib

        matplotlib.use("Agg", force=False)
        import matplotlib.pyplot as plt
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for preview rendering") from exc
    return plt


def _require_contextily() -> Any:
    try:
        import contextily as ctx
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("contextily is required for basemap rendering") from exc
    return ctx


def _require_xyzservices_providers() -> Any:
    try:
        from xyzservices import providers
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("xyzservices is required for basemap source definitions") from exc
    return providers
