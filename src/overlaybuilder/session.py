"""Map-view session: owns the core state and routes host events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence, Union
from urllib.parse import quote

from .host import MapHost
from .images import ImageResolver, ImageSource
from .io_borders import BorderDataset
from .loader import LoadReport, SequentialLoader
from .models import QuadrantHighlight
from .registry import CountryStateRegistry
from .selector import QuadrantSelector, quadrant_highlight, select_quadrant

_LOGGER = logging.getLogger("overlaybuilder.session")

_WIKIPEDIA_URL = "https://en.m.wikipedia.org/wiki/"


@dataclass(frozen=True, slots=True)
class CountrySelected:
    admin: str


@dataclass(frozen=True, slots=True)
class PointerMoved:
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True, slots=True)
class PointerClicked:
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True, slots=True)
class PointerLeft:
    pass


Event = Union[CountrySelected, PointerMoved, PointerClicked, PointerLeft]


@dataclass(frozen=True, slots=True)
class CountryDetail:
    """What a detail panel needs to show for the selected country."""

    admin: str
    image_url: str
    quadrant: int | None
    wiki_url: str


class OverlaySession:
    """One map view: registry, loader and selector share a single lifetime.

    The host pushes discrete events in through `dispatch`; everything the
    core wants displayed goes out through the `MapHost` commands.
    """

    def __init__(
        self,
        *,
        host: MapHost,
        resolver: ImageResolver,
        images: ImageSource,
        registry: CountryStateRegistry | None = None,
    ) -> None:
        self.host = host
        self.resolver = resolver
        self.registry = registry or CountryStateRegistry()
        self.loader = SequentialLoader(
            registry=self.registry,
            host=host,
            resolver=resolver,
            images=images,
        )
        self.selector = QuadrantSelector(registry=self.registry, host=host, loader=self.loader)
        self.selected: str | None = None

    async def load_all(
        self,
        dataset: BorderDataset,
        *,
        countries: Sequence[str] | None = None,
        limit: int | None = None,
    ) -> LoadReport:
        return await self.loader.run(dataset, countries=countries, limit=limit)

    async def dispatch(self, event: Event) -> CountryDetail | QuadrantHighlight | bool | None:
        if isinstance(event, CountrySelected):
            return self._select_country(event.admin)
        if isinstance(event, PointerMoved):
            if self.selected is None:
                return None
            return quadrant_highlight(event.x, event.y, event.width, event.height)
        if isinstance(event, PointerClicked):
            if self.selected is None:
                return False
            quadrant = select_quadrant(event.x, event.y, event.width, event.height)
            return await self.selector.change_quadrant(self.selected, quadrant)
        if isinstance(event, PointerLeft):
            return None
        raise TypeError(f"Unsupported event: {type(event).__name__}")

    def _select_country(self, admin: str) -> CountryDetail | None:
        name = admin.strip() if admin else ""
        image_url = self.resolver.resolve(name)
        if image_url is None:
            self.selected = None
            return None
        self.selected = name
        state = self.registry.get(self.selected)
        _LOGGER.debug("selected %s", self.selected)
        return CountryDetail(
            admin=self.selected,
            image_url=image_url,
            quadrant=state.quadrant if state is not None else None,
            wiki_url=_WIKIPEDIA_URL + quote(self.selected.replace(" ", "_")),
        )
