"""CLI entrypoint for the country overlay builder."""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .config import AppConfig, load_config
from .host import InMemoryHost, RegisteredSource
from .images import ImageLoader, ImageResolver, load_image_overrides
from .io_borders import BorderDataset, load_border_dataset
from .loader import LoadReport, format_load_lines
from .models import BuildManifest, ensure_quadrant
from .preview import render_preview
from .qa import write_qa_index
from .session import CountrySelected, OverlaySession, PointerClicked
from .util import (
    artifact_filename,
    detect_git_commit,
    ensure_directories,
    sha256_file,
    setup_logging,
    sha256_bytes,
    write_json,
)
from .validate import Validator, format_report_lines

LOGGER = logging.getLogger("overlaybuilder.cli")


@dataclass(slots=True)
class _Outputs:
    artifact_files: dict[str, Path]
    qa_index: Path | None = None
    preview: Path | None = None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="overlaybuilder",
        description="Clip per-country imagery to borders for Web Mercator map overlays.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="config.yaml", help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    validate_p = subparsers.add_parser("validate", help="Validate config and input files.")
    add_common(validate_p)
    validate_p.add_argument(
        "--strict",
        action="store_true",
        help="Treat missing datasets and unsupported geometry as validation errors.",
    )

    build_p = subparsers.add_parser("build", help="Load every country and write all outputs.")
    add_common(build_p)
    build_p.add_argument(
        "--strict",
        action="store_true",
        help="Treat missing datasets and unsupported geometry as validation errors.",
    )
    build_p.add_argument(
        "--country",
        action="append",
        default=[],
        help="Country name filter (admin property). Can be repeated.",
    )
    build_p.add_argument(
        "--limit-countries",
        type=int,
        default=None,
        help="Load only the first N countries in dataset order.",
    )
    build_p.add_argument(
        "--no-preview",
        action="store_true",
        help="Skip the preview PNG even when enabled in config.",
    )
    build_p.add_argument(
        "--clean",
        action="store_true",
        help="Delete existing artifact PNG files before writing.",
    )

    quadrant_p = subparsers.add_parser(
        "quadrant",
        help="Load one country and switch it to another quadrant of its image.",
    )
    add_common(quadrant_p)
    quadrant_p.add_argument("--country", required=True, help="Country name (admin property).")
    target = quadrant_p.add_mutually_exclusive_group(required=True)
    target.add_argument(
        "--quadrant",
        type=int,
        choices=[0, 1, 2, 3],
        help="0=top-left, 1=top-right, 2=bottom-left, 3=bottom-right.",
    )
    target.add_argument(
        "--pointer",
        type=float,
        nargs=4,
        metavar=("X", "Y", "WIDTH", "HEIGHT"),
        help="Click position inside the displayed image of the given size.",
    )

    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    log_path = cfg.paths.logs_dir / "build.log"
    setup_logging(log_path, verbose=args.verbose)
    ensure_directories(cfg.paths.build_directories)
    return cfg


def _new_session(cfg: AppConfig) -> tuple[OverlaySession, InMemoryHost]:
    overrides = load_image_overrides(cfg.paths.image_overrides)
    resolver = ImageResolver.from_config(cfg.images, overrides)
    host = InMemoryHost()
    session = OverlaySession(
        host=host,
        resolver=resolver,
        images=ImageLoader(cfg.http, root_dir=cfg.root_dir),
    )
    return session, host


def _load_dataset(cfg: AppConfig, validator: Validator | None = None) -> BorderDataset:
    if validator is not None and validator.dataset is not None:
        return validator.dataset
    return load_border_dataset(
        cfg.paths.borders,
        admin_field=cfg.borders.admin_field,
        http=cfg.http,
    )


def _load_countries(
    session: OverlaySession,
    dataset: BorderDataset,
    *,
    countries: Sequence[str] | None,
    limit: int | None,
) -> LoadReport:
    try:
        report = asyncio.run(session.load_all(dataset, countries=countries, limit=limit))
    except Exception as exc:
        LOGGER.error("Loading aborted: %s", exc)
        report = session.loader.progress
    for line in format_load_lines(report):
        LOGGER.info(line)
    return report


def _clean_artifacts(cfg: AppConfig) -> None:
    removed = 0
    for path in cfg.paths.artifacts_dir.glob("*.png"):
        try:
            path.unlink()
            removed += 1
        except OSError as exc:
            LOGGER.warning("Failed removing old artifact file %s: %s", path, exc)
    LOGGER.info("Cleaned %d existing artifact PNG files from %s", removed, cfg.paths.artifacts_dir)


def _write_artifacts(cfg: AppConfig, sources: Sequence[RegisteredSource]) -> dict[str, Path]:
    files: dict[str, Path] = {}
    entries: list[dict[str, object]] = []
    for source in sources:
        path = cfg.paths.artifacts_dir / artifact_filename(source.key)
        payload = source.artifact.to_png_bytes()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)
        files[source.key] = path
        entry = source.artifact.to_dict()
        entry["file"] = path.name
        entry["sha256"] = sha256_bytes(payload)
        entries.append(entry)
    write_json(cfg.paths.artifacts_dir / "artifacts.json", {"artifacts": entries})
    LOGGER.info("Wrote %d artifact PNG files to %s", len(files), cfg.paths.artifacts_dir)
    return files


def _write_outputs(
    cfg: AppConfig,
    *,
    session: OverlaySession,
    report: LoadReport,
    sources: Sequence[RegisteredSource],
    preview: bool,
) -> _Outputs:
    outputs = _Outputs(artifact_files={})
    if cfg.build.write_artifacts:
        outputs.artifact_files = _write_artifacts(cfg, sources)

    if cfg.qa.generate_index:
        outputs.qa_index = write_qa_index(
            report=report,
            registry=session.registry,
            artifact_files=outputs.artifact_files,
            output_html=cfg.paths.qa_dir / "index.html",
            thumbnail_width_px=cfg.qa.thumbnail_width_px,
            max_columns=cfg.qa.max_columns,
        )
        LOGGER.info("QA index generated at %s", outputs.qa_index)

    if preview and cfg.preview.enabled:
        try:
            outputs.preview, basemap_warning = render_preview(
                cfg.preview,
                sources=sources,
                registry=session.registry,
                output_path=cfg.paths.preview_png,
            )
        except Exception as exc:
            LOGGER.warning("Preview rendering failed: %s", exc)
        else:
            if basemap_warning:
                report.add_warning(basemap_warning)
    return outputs


def _run_validate(cfg: AppConfig, *, strict: bool) -> int:
    report = Validator(cfg).run(strict=strict)
    for line in format_report_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _run_build(
    cfg: AppConfig,
    *,
    strict: bool,
    countries: Sequence[str],
    limit_countries: int | None,
    preview: bool,
    clean: bool,
) -> int:
    LOGGER.info("Starting build pipeline.")

    validator = Validator(cfg)
    validation = validator.run(strict=strict)
    for line in format_report_lines(validation):
        LOGGER.info(line)
    if not validation.ok:
        LOGGER.error("Build aborted due to validation errors.")
        return 1

    try:
        dataset = _load_dataset(cfg, validator)
    except Exception as exc:
        LOGGER.error("Failed loading border dataset: %s", exc)
        return 1

    session, host = _new_session(cfg)
    report = _load_countries(
        session,
        dataset,
        countries=countries or None,
        limit=limit_countries,
    )

    if clean:
        _clean_artifacts(cfg)
    outputs = _write_outputs(
        cfg,
        session=session,
        report=report,
        sources=host.sources,
        preview=preview,
    )

    if cfg.build.write_manifest:
        manifest = BuildManifest.create(
            config_hash_sha256=sha256_file(cfg.source_path),
            git_commit=detect_git_commit(cfg.source_path.parent),
            steps={
                "validate": "ok",
                "load": "ok" if report.ok else "error",
                "artifacts": "ok" if cfg.build.write_artifacts else "skipped",
                "qa_index": "ok" if outputs.qa_index else "skipped",
                "preview": "ok" if outputs.preview else "skipped",
            },
            countries={
                "states": {admin: state.value for admin, state in report.states.items()},
                "quadrants": {state.admin: state.quadrant for state in session.registry},
                "summary": dict(report.summary),
            },
            artifacts={
                "artifacts_dir": str(cfg.paths.artifacts_dir),
                "qa_index": str(outputs.qa_index) if outputs.qa_index else "",
                "preview": str(outputs.preview) if outputs.preview else "",
                "borders": str(cfg.paths.borders),
            },
        )
        manifest_path = cfg.paths.manifests_dir / "build_manifest.json"
        write_json(manifest_path, manifest.to_dict())
        LOGGER.info("Build manifest written to %s", manifest_path)

    if not report.ok:
        LOGGER.error("Build finished with load errors; partial outputs were written.")
        return 1
    LOGGER.info("Build finished.")
    return 0


def _pointer_for_quadrant(quadrant: int) -> PointerClicked:
    """Click in the centre of `quadrant` on a 2x2 image."""
    quadrant = ensure_quadrant(quadrant)
    return PointerClicked(x=quadrant % 2 + 0.5, y=quadrant // 2 + 0.5, width=2.0, height=2.0)


def _run_quadrant(
    cfg: AppConfig,
    *,
    country: str,
    quadrant: int | None,
    pointer: Sequence[float] | None,
) -> int:
    try:
        dataset = _load_dataset(cfg)
    except Exception as exc:
        LOGGER.error("Failed loading border dataset: %s", exc)
        return 1

    if pointer is not None:
        x, y, width, height = (float(value) for value in pointer)
        click = PointerClicked(x=x, y=y, width=width, height=height)
    else:
        click = _pointer_for_quadrant(int(quadrant if quadrant is not None else 0))

    session, host = _new_session(cfg)

    async def _apply() -> LoadReport:
        report = await session.load_all(dataset, countries=[country])
        if not report.states:
            report.add_error(f"Country not found in border dataset: {country}")
            return report
        admin = report.order[0]
        detail = await session.dispatch(CountrySelected(admin))
        if detail is None:
            report.add_error(f"Country has no image: {admin}")
            return report
        changed = await session.dispatch(click)
        report.add_info(f"Quadrant change for {admin}: {'applied' if changed else 'no-op'}")
        return report

    try:
        report = asyncio.run(_apply())
    except Exception as exc:
        LOGGER.error("Quadrant change failed: %s", exc)
        report = session.loader.progress
        if report.ok:
            report.add_error(str(exc))
    for line in format_load_lines(report):
        LOGGER.info(line)

    admin = session.selected
    if admin is not None:
        keys = set(host.keys_for(admin))
        sources = [source for source in host.sources if source.key in keys]
        _write_outputs(cfg, session=session, report=report, sources=sources, preview=True)
    return 0 if report.ok else 1


def _dispatch(args: argparse.Namespace) -> int:
    cfg = _load_and_setup(args)
    command = str(args.command)
    if command == "validate":
        return _run_validate(cfg, strict=bool(args.strict))
    if command == "build":
        return _run_build(
            cfg,
            strict=bool(args.strict),
            countries=[str(item) for item in args.country],
            limit_countries=args.limit_countries,
            preview=not bool(args.no_preview),
            clean=bool(args.clean),
        )
    if command == "quadrant":
        return _run_quadrant(
            cfg,
            country=str(args.country),
            quadrant=args.quadrant,
            pointer=args.pointer,
        )
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
