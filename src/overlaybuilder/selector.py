"""Quadrant selection from pointer position, and per-country variant changes."""

from __future__ import annotations

import logging

from .host import MapHost
from .loader import SequentialLoader
from .models import QuadrantHighlight, ensure_quadrant
from .registry import CountryStateRegistry

_LOGGER = logging.getLogger("overlaybuilder.selector")


def select_quadrant(x: float, y: float, width: float, height: float) -> int:
    """Quadrant under a pointer inside a displayed image.

    0 = top-left, 1 = top-right, 2 = bottom-left, 3 = bottom-right.
    """
    return (0 if x < width / 2 else 1) + (0 if y < height / 2 else 2)


def quadrant_highlight(x: float, y: float, width: float, height: float) -> QuadrantHighlight:
    quadrant = ensure_quadrant(select_quadrant(x, y, width, height))
    return QuadrantHighlight(
        quadrant=quadrant,
        left=0.0 if quadrant % 2 == 0 else width / 2,
        top=0.0 if quadrant < 2 else height / 2,
        width=width / 2,
        height=height / 2,
    )


class QuadrantSelector:
    """Swap a country's artifacts over to another quadrant of its image."""

    def __init__(
        self,
        *,
        registry: CountryStateRegistry,
        host: MapHost,
        loader: SequentialLoader,
    ) -> None:
        self.registry = registry
        self.host = host
        self.loader = loader

    async def select_at(self, admin: str, x: float, y: float, width: float, height: float) -> bool:
        return await self.change_quadrant(admin, select_quadrant(x, y, width, height))

    async def change_quadrant(self, admin: str, quadrant: int) -> bool:
        """Re-render one country at `quadrant`; returns False when nothing changed.

        Old artifacts are removed from the host before any new artifact is
        created. Changes on the same country are serialized through its lock,
        so a queued request for the quadrant just applied becomes a no-op.
        """
        quadrant = ensure_quadrant(quadrant)
        if self.registry.get(admin) is None:
            return False
        async with self.registry.lock_for(admin):
            state = self.registry.get(admin)
            if state is None or state.quadrant == quadrant:
                return False
            previous = state.quadrant
            for key in list(state.artifact_keys):
                self.host.remove_artifact(key)
            self.registry.clear_artifacts(admin)
            state.quadrant = quadrant
            count = await self.loader.load_country(state)
        _LOGGER.info("[quadrant] %s: %d -> %d (%d artifacts)", admin, previous, quadrant, count)
        return True
