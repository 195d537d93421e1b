"""Static HTML page for eyeballing clipped artifacts after a build."""

from __future__ import annotations

import os
from html import escape
from pathlib import Path
from typing import Mapping

from .loader import LoadReport
from .models import CountryState, LoadState
from .registry import CountryStateRegistry

_STATUS_LABELS = {
    LoadState.LOADED: "LOADED",
    LoadState.SKIPPED: "SKIPPED",
    LoadState.FAILED: "FAILED",
    LoadState.LOADING: "INCOMPLETE",
    LoadState.PENDING: "NOT_ATTEMPTED",
}

_STYLE = """
body {{ font: 14px/1.4 Helvetica, Arial, sans-serif; margin: 20px; color: #222; }}
main {{ display: grid; grid-template-columns: repeat({columns}, minmax(200px, 1fr)); gap: 12px; }}
section {{ background: #fff; border: 1px solid #ccc; border-radius: 6px; padding: 10px; }}
section h3 {{ font-size: 15px; margin: 0 0 6px; }}
.state {{ font-weight: bold; margin: 0 0 6px; }}
.state.loaded {{ color: #1f7a36; }}
.state.skipped {{ color: #a0660a; }}
.state.failed {{ color: #b3261e; }}
.state.loading, .state.pending {{ color: #777; }}
.meta {{ color: #444; font-size: 12px; margin: 0 0 6px; }}
section img {{ display: block; max-width: 100%; margin: 0 0 6px; background: #f0f0f0; }}
.empty {{ border: 1px dashed #aaa; border-radius: 4px; color: #777; font-size: 12px; padding: 10px; }}
"""


def _thumbnails(
    keys: list[str],
    artifact_files: Mapping[str, Path],
    page_dir: Path,
    width_px: int,
) -> list[str]:
    tags = []
    for key in keys:
        path = artifact_files.get(key)
        if path is None:
            continue
        src = Path(os.path.relpath(path, page_dir)).as_posix()
        label = escape(key)
        tags.append(f"<img src='{escape(src)}' alt='{label}' title='{label}' width='{width_px}'>")
    return tags


def _card(admin: str, load_state: LoadState, state: CountryState | None, thumbnails: list[str]) -> str:
    keys = state.artifact_keys if state is not None else ()
    quadrant = "-" if state is None else str(state.quadrant)
    body = thumbnails
    if not body:
        note = "No image configured" if load_state is LoadState.SKIPPED else "No artifacts written"
        body = [f"<div class='empty'>{note}</div>"]
    lines = [
        "<section>",
        f"<h3>{escape(admin)}</h3>",
        f"<p class='state {load_state.value}'>{_STATUS_LABELS[load_state]}</p>",
        f"<p class='meta'>quadrant: {quadrant} | artifacts: {len(keys)}</p>",
        *body,
        "</section>",
    ]
    return "\n".join(lines)


def write_qa_index(
    *,
    report: LoadReport,
    registry: CountryStateRegistry,
    artifact_files: Mapping[str, Path],
    output_html: Path,
    thumbnail_width_px: int,
    max_columns: int,
) -> Path:
    """Write one card per country in the load report, thumbnails linked relative to the page.

    Countries are listed case-insensitively by name; skipped and failed countries
    still get a card so gaps in coverage are visible.
    """
    page_dir = output_html.parent
    cards = []
    for admin in sorted(report.states, key=str.casefold):
        state = registry.get(admin)
        keys = list(state.artifact_keys) if state is not None else []
        thumbs = _thumbnails(keys, artifact_files, page_dir, thumbnail_width_px)
        cards.append(_card(admin, report.states[admin], state, thumbs))

    summary = ", ".join(f"{name}={count}" for name, count in report.summary.items())
    head = (
        "<!doctype html>\n<html lang='en'>\n<head>\n<meta charset='utf-8'>\n"
        "<title>country-overlays QA</title>\n"
        f"<style>{_STYLE.format(columns=max_columns)}</style>\n</head>\n"
    )
    body = ["<body>", "<h1>Country Overlays QA Index</h1>"]
    if summary:
        body.append(f"<p>{escape(summary)}</p>")
    body += ["<main>", *cards, "</main>", "</body>", "</html>", ""]

    page_dir.mkdir(parents=True, exist_ok=True)
    output_html.write_text(head + "\n".join(body), encoding="utf-8")
    return output_html
