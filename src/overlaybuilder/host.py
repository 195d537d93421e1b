"""Map host boundary: artifact registration and removal commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from .models import Corners, RenderedArtifact

_LOGGER = logging.getLogger("overlaybuilder.host")


class MapHost(Protocol):
    """What the core needs from the map-rendering host."""

    def add_artifact(self, artifact: RenderedArtifact) -> None:
        """Register a raster source and its display layer under `artifact.key`."""

    def remove_artifact(self, key: str) -> None:
        """Remove both the raster source and the display layer bound to `key`."""


@dataclass(frozen=True, slots=True)
class HostCommand:
    action: str
    key: str


@dataclass(frozen=True, slots=True)
class RegisteredSource:
    key: str
    data_uri: str
    coordinates: Corners
    artifact: RenderedArtifact


class InMemoryHost:
    """Host that keeps registered sources in memory and logs every command.

    Registration order is preserved so later compositing draws artifacts in
    the order the host received them.
    """

    def __init__(self) -> None:
        self._sources: dict[str, RegisteredSource] = {}
        self.commands: list[HostCommand] = []

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(self._sources)

    @property
    def sources(self) -> tuple[RegisteredSource, ...]:
        return tuple(self._sources.values())

    def keys_for(self, admin: str) -> tuple[str, ...]:
        return tuple(key for key, source in self._sources.items() if source.artifact.admin == admin)

    def add_artifact(self, artifact: RenderedArtifact) -> None:
        if artifact.key in self._sources:
            raise ValueError(f"Source already registered: {artifact.key}")
        self._sources[artifact.key] = RegisteredSource(
            key=artifact.key,
            data_uri=artifact.to_data_uri(),
            coordinates=artifact.coordinates,
            artifact=artifact,
        )
        self.commands.append(HostCommand(action="add", key=artifact.key))
        _LOGGER.debug("registered %s", artifact.key)

    def remove_artifact(self, key: str) -> None:
        if key not in self._sources:
            raise KeyError(f"No registered source: {key}")
        del self._sources[key]
        self.commands.append(HostCommand(action="remove", key=key))
        _LOGGER.debug("removed %s", key)
