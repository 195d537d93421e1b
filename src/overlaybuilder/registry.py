"""Per-country session state store."""

from __future__ import annotations

import asyncio
from typing import Iterator

from .models import CountryPolygon, CountryState


class CountryStateRegistry:
    """Keyed store of `CountryState`, one entry per admin name.

    Entries live for the whole map-view session. Each country also gets an
    `asyncio.Lock`; whichever operation holds it owns that country's state.
    """

    def __init__(self) -> None:
        self._states: dict[str, CountryState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __contains__(self, admin: object) -> bool:
        return admin in self._states

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[CountryState]:
        return iter(self._states.values())

    def get(self, admin: str) -> CountryState | None:
        return self._states.get(admin)

    def set(self, admin: str, state: CountryState) -> None:
        if state.admin != admin:
            raise ValueError(f"State for '{state.admin}' cannot be stored under '{admin}'")
        self._states[admin] = state

    def ensure(self, polygon: CountryPolygon, image_url: str) -> CountryState:
        state = self._states.get(polygon.admin)
        if state is None:
            state = CountryState(polygon=polygon, image_url=image_url)
            self._states[polygon.admin] = state
        return state

    def record_artifact(self, admin: str, key: str) -> None:
        state = self._require(admin)
        if key in state.artifact_keys:
            raise ValueError(f"Artifact key already recorded for {admin}: {key}")
        state.artifact_keys.append(key)

    def clear_artifacts(self, admin: str) -> list[str]:
        state = self._require(admin)
        removed = list(state.artifact_keys)
        state.artifact_keys.clear()
        return removed

    def lock_for(self, admin: str) -> asyncio.Lock:
        lock = self._locks.get(admin)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[admin] = lock
        return lock

    def _require(self, admin: str) -> CountryState:
        state = self._states.get(admin)
        if state is None:
            raise KeyError(f"No country state for '{admin}'")
        return state
