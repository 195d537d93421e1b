"""Source image resolution and decoding."""

from __future__ import annotations

import asyncio
import io
import logging
from collections import OrderedDict
from pathlib import Path
from typing import Mapping, Protocol

import requests
import yaml
from PIL import Image

from .config import HttpConfig, ImagesConfig, is_url
from .errors import ImageLoadError, MissingImage

_LOGGER = logging.getLogger("overlaybuilder.images")


def image_url_for(admin: str, base: str, extension: str) -> str:
    """Image location for a country; identical for every quadrant variant."""
    return f"{base}/{admin.replace(' ', '_')}.{extension}"


def load_image_overrides(path: Path) -> dict[str, str | None]:
    """Load optional per-country image overrides keyed by admin name.

    A string value replaces the derived file name; `null` marks the country
    as having no image, so loading skips it.
    """
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"Expected mapping in {path}")

    overrides: dict[str, str | None] = {}
    for admin_raw, value in raw.items():
        if not isinstance(admin_raw, str) or not admin_raw.strip():
            raise ValueError(f"Image override key must be a country name in {path}")
        admin = admin_raw.strip()
        if value is None:
            overrides[admin] = None
        elif isinstance(value, str) and value.strip():
            overrides[admin] = value.strip()
        else:
            raise ValueError(f"Image override for '{admin}' must be a file name or null in {path}")
    return overrides


class ImageResolver:
    """Pure admin-name -> image URL mapping; never checks that the file exists."""

    def __init__(
        self,
        base: str,
        extension: str,
        overrides: Mapping[str, str | None] | None = None,
    ) -> None:
        self.base = base
        self.extension = extension
        self._overrides = dict(overrides or {})

    @classmethod
    def from_config(
        cls,
        cfg: ImagesConfig,
        overrides: Mapping[str, str | None] | None = None,
    ) -> ImageResolver:
        return cls(cfg.base, cfg.extension, overrides)

    def resolve(self, admin: str | None) -> str | None:
        if admin is None or not admin.strip():
            return None
        if admin in self._overrides:
            filename = self._overrides[admin]
            if filename is None:
                return None
            return filename if is_url(filename) else f"{self.base}/{filename}"
        return image_url_for(admin, self.base, self.extension)

    def require(self, admin: str | None) -> str:
        url = self.resolve(admin)
        if url is None:
            raise MissingImage(admin or "")
        return url


class ImageSource(Protocol):
    async def load(self, url: str) -> Image.Image:
        """Return the decoded RGBA image at `url`."""


class ImageLoader:
    """Fetch and decode source images off the event loop, once per URL.

    Concurrent requests for the same URL share one in-flight read. Only the
    `max_cached` most recently used images stay decoded, so memory follows the
    countries being worked on rather than the whole dataset.
    """

    def __init__(self, http: HttpConfig, *, root_dir: Path, max_cached: int = 4) -> None:
        if max_cached < 1:
            raise ValueError("max_cached must be >= 1")
        self.http = http
        self.root_dir = root_dir
        self.max_cached = max_cached
        self._session: requests.Session | None = None
        self._cache: OrderedDict[str, asyncio.Future[Image.Image]] = OrderedDict()

    @property
    def cached_urls(self) -> tuple[str, ...]:
        return tuple(self._cache)

    async def load(self, url: str) -> Image.Image:
        future = self._cache.get(url)
        if future is None:
            loop = asyncio.get_running_loop()
            future = loop.run_in_executor(None, self._read, url)
            self._cache[url] = future
            while len(self._cache) > self.max_cached:
                evicted, _ = self._cache.popitem(last=False)
                _LOGGER.debug("evicted decoded image %s", evicted)
        else:
            self._cache.move_to_end(url)
        try:
            return await future
        except ImageLoadError:
            if self._cache.get(url) is future:
                del self._cache[url]
            raise

    def resolve_path(self, url: str) -> Path:
        p = Path(url)
        return p if p.is_absolute() else self.root_dir / p

    def _read(self, url: str) -> Image.Image:
        try:
            payload = self._fetch(url) if is_url(url) else self.resolve_path(url).read_bytes()
            with Image.open(io.BytesIO(payload)) as image:
                rgba = image.convert("RGBA")
        except (OSError, requests.RequestException) as exc:
            raise ImageLoadError(f"Failed loading image '{url}': {exc}") from exc
        _LOGGER.debug("decoded %s (%dx%d)", url, rgba.width, rgba.height)
        return rgba

    def _fetch(self, url: str) -> bytes:
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"User-Agent": self.http.user_agent})
        response = self._session.get(url, timeout=self.http.request_timeout_s)
        response.raise_for_status()
        return response.content
