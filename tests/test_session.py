from __future__ import annotations

import asyncio
from typing import Callable

import pytest
from PIL import Image

from conftest import GREEN
from overlaybuilder.io_borders import BorderDataset
from overlaybuilder.models import QuadrantHighlight
from overlaybuilder.session import (
    CountryDetail,
    CountrySelected,
    OverlaySession,
    PointerClicked,
    PointerLeft,
    PointerMoved,
)

SessionFactory = Callable[..., OverlaySession]


@pytest.fixture
def loaded_session(
    make_session: SessionFactory,
    two_country_dataset: BorderDataset,
    quadrant_image: Image.Image,
) -> OverlaySession:
    session = make_session(
        {"img/A.png": quadrant_image, "img/B.png": quadrant_image},
        overrides={"Hidden": None},
    )
    asyncio.run(session.load_all(two_country_dataset))
    return session


class TestCountrySelection:
    def test_detail_for_loaded_country(self, loaded_session: OverlaySession) -> None:
        detail = asyncio.run(loaded_session.dispatch(CountrySelected("B")))
        assert detail == CountryDetail(
            admin="B",
            image_url="img/B.png",
            quadrant=0,
            wiki_url="https://en.m.wikipedia.org/wiki/B",
        )
        assert loaded_session.selected == "B"

    def test_wiki_url_uses_underscores(self, loaded_session: OverlaySession) -> None:
        detail = asyncio.run(loaded_session.dispatch(CountrySelected("Costa Rica")))
        assert isinstance(detail, CountryDetail)
        assert detail.wiki_url == "https://en.m.wikipedia.org/wiki/Costa_Rica"
        assert detail.image_url == "img/Costa_Rica.png"
        assert detail.quadrant is None

    @pytest.mark.parametrize("admin", ["", "   ", "Hidden"])
    def test_unresolvable_names_clear_selection(self, loaded_session: OverlaySession, admin: str) -> None:
        asyncio.run(loaded_session.dispatch(CountrySelected("A")))
        assert asyncio.run(loaded_session.dispatch(CountrySelected(admin))) is None
        assert loaded_session.selected is None


class TestPointerEvents:
    def test_nothing_selected(self, loaded_session: OverlaySession) -> None:
        assert asyncio.run(loaded_session.dispatch(PointerMoved(10, 10, 100, 100))) is None
        assert asyncio.run(loaded_session.dispatch(PointerClicked(10, 10, 100, 100))) is False

    def test_hover_highlights_quadrant(self, loaded_session: OverlaySession) -> None:
        asyncio.run(loaded_session.dispatch(CountrySelected("A")))
        highlight = asyncio.run(loaded_session.dispatch(PointerMoved(60, 10, 100, 100)))
        assert highlight == QuadrantHighlight(quadrant=1, left=50.0, top=0.0, width=50.0, height=50.0)
        assert asyncio.run(loaded_session.dispatch(PointerLeft())) is None

    def test_click_changes_selected_country(self, loaded_session: OverlaySession) -> None:
        async def scenario() -> tuple[object, object, object]:
            await loaded_session.dispatch(CountrySelected("A"))
            first = await loaded_session.dispatch(PointerClicked(60, 10, 100, 100))
            again = await loaded_session.dispatch(PointerClicked(90, 40, 100, 100))
            detail = await loaded_session.dispatch(CountrySelected("A"))
            return first, again, detail

        first, again, detail = asyncio.run(scenario())
        assert first is True
        assert again is False
        assert isinstance(detail, CountryDetail) and detail.quadrant == 1
        state = loaded_session.registry.get("A")
        assert state is not None and state.artifact_keys == ["image-A-1-0"]
        source = loaded_session.host.sources[-1]  # type: ignore[attr-defined]
        assert source.artifact.image.getpixel((10, 10)) == GREEN
        assert loaded_session.registry.get("B").quadrant == 0  # type: ignore[union-attr]

    def test_unknown_event(self, loaded_session: OverlaySession) -> None:
        with pytest.raises(TypeError):
            asyncio.run(loaded_session.dispatch("click"))  # type: ignore[arg-type]
