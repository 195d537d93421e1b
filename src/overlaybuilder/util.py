"""Logging setup and small filesystem helpers for build outputs."""

from __future__ import annotations

import hashlib
import json
import logging
import re
import subprocess
from pathlib import Path
from typing import Any, Iterable


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Decoders and HTTP/plot backends log per tile or per chunk at DEBUG.
_NOISY_LOGGERS = ("PIL", "urllib3", "matplotlib", "pyogrio", "fiona", "asyncio")

_UNSAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9._-]+")
_HASH_CHUNK = 1024 * 1024
_KEY_DIGEST_CHARS = 8


def setup_logging(log_file: Path | None = None, verbose: bool = False) -> None:
    """Log to the console and, when given, to `log_file` (e.g. build/logs/build.log)."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def ensure_directories(paths: Iterable[Path]) -> None:
    for path in paths:
        path.mkdir(parents=True, exist_ok=True)


def write_json(path: Path, payload: Any) -> None:
    """Stable, human-diffable JSON; Paths and other objects are written as strings."""
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False, default=str)
    path.write_text(text + "\n", encoding="utf-8")


def artifact_filename(key: str) -> str:
    """Filesystem-safe PNG name for an artifact key.

    Keys that are already safe keep their name. Any other key gets a digest of
    the original key appended, so two keys never share a file.
    """
    stem = _UNSAFE_FILENAME_RE.sub("_", key).strip("_")
    if stem and stem == key:
        return f"{stem}.png"
    digest = sha256_bytes(key.encode("utf-8"))[:_KEY_DIGEST_CHARS]
    return f"{stem or 'artifact'}.{digest}.png"


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(_HASH_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def detect_git_commit(cwd: Path) -> str | None:
    """HEAD of the repository holding the config, if any."""
    try:
        proc = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            check=True,
        )
    except (FileNotFoundError, subprocess.CalledProcessError):
        return None
    return proc.stdout.strip() or None


def format_name_list(values: list[str], limit: int = 12) -> str:
    if len(values) <= limit:
        return ", ".join(values)
    shown = ", ".join(values[:limit])
    return f"{shown}, ... (+{len(values) - limit} more)"
