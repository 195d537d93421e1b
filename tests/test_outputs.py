from __future__ import annotations

import asyncio
import hashlib
import json
import math
from pathlib import Path
from typing import Callable

import pytest
from PIL import Image

from conftest import make_quadrant_image, polygon_feature, square
from overlaybuilder.cli import main
from overlaybuilder.config import PreviewConfig
from overlaybuilder.io_borders import BorderDataset
from overlaybuilder.preview import preview_extent, render_preview, source_extent
from overlaybuilder.projection import project
from overlaybuilder.qa import write_qa_index
from overlaybuilder.session import OverlaySession
from overlaybuilder.util import artifact_filename

SessionFactory = Callable[..., OverlaySession]


class TestQaIndex:
    def test_cards_and_thumbnails(
        self,
        tmp_path: Path,
        make_session: SessionFactory,
        two_country_dataset: BorderDataset,
        quadrant_image: Image.Image,
    ) -> None:
        session = make_session({"img/A.png": quadrant_image, "img/B.png": quadrant_image})
        report = asyncio.run(session.load_all(two_country_dataset))
        files = {key: tmp_path / "artifacts" / artifact_filename(key) for key in session.host.keys}  # type: ignore[attr-defined]

        out = write_qa_index(
            report=report,
            registry=session.registry,
            artifact_files=files,
            output_html=tmp_path / "qa" / "index.html",
            thumbnail_width_px=100,
            max_columns=4,
        )
        html = out.read_text(encoding="utf-8")
        assert "<h3>A</h3>" in html and "<h3>B</h3>" in html
        assert "../artifacts/image-B-0-1.png" in html
        assert "quadrant: 0 | artifacts: 2" in html
        assert "repeat(4," in html


class TestPreview:
    def test_extent_helpers(
        self,
        make_session: SessionFactory,
        two_country_dataset: BorderDataset,
        quadrant_image: Image.Image,
    ) -> None:
        session = make_session({"img/A.png": quadrant_image, "img/B.png": quadrant_image})
        asyncio.run(session.load_all(two_country_dataset))
        source = session.host.sources[0]  # type: ignore[attr-defined]
        left, right, bottom, top = source_extent(source)
        assert (left, top) == project(0.0, 10.0)
        assert (right, bottom) == project(10.0, 0.0)

        extent = preview_extent([source_extent(source)], [], pad_ratio=0.0)
        assert extent == (left, right, bottom, top)
        assert preview_extent([], [[(math.inf, 0.0)]]) is None

    def test_render_white_background(
        self,
        tmp_path: Path,
        make_session: SessionFactory,
        two_country_dataset: BorderDataset,
        quadrant_image: Image.Image,
    ) -> None:
        pytest.importorskip("matplotlib")
        session = make_session({"img/A.png": quadrant_image, "img/B.png": quadrant_image})
        asyncio.run(session.load_all(two_country_dataset))
        cfg = PreviewConfig(
            enabled=True,
            width_px=200,
            height_px=100,
            dpi=50,
            background="white",
            outline_color="#000000",
        )
        path, warning = render_preview(
            cfg,
            sources=session.host.sources,  # type: ignore[attr-defined]
            registry=session.registry,
            output_path=tmp_path / "preview" / "out.png",
        )
        assert warning is None
        with Image.open(path) as rendered:
            assert rendered.size == (200, 100)


class TestCli:
    def test_build_writes_outputs(self, project_dir: Path) -> None:
        code = main(["build", "--config", str(project_dir / "config.yaml"), "--no-preview"])
        assert code == 0

        build = project_dir / "build"
        artifacts = sorted(path.name for path in (build / "artifacts").glob("*.png"))
        assert artifacts == ["image-A-0-0.png", "image-B-0-0.png", "image-B-0-1.png"]
        listing = json.loads((build / "artifacts" / "artifacts.json").read_text(encoding="utf-8"))
        assert [entry["key"] for entry in listing["artifacts"]] == [
            "image-A-0-0",
            "image-B-0-0",
            "image-B-0-1",
        ]
        assert all(len(entry["sha256"]) == 64 for entry in listing["artifacts"])

        manifest = json.loads((build / "manifests" / "build_manifest.json").read_text(encoding="utf-8"))
        assert manifest["countries"]["states"] == {"A": "loaded", "B": "loaded", "C": "skipped"}
        assert manifest["steps"]["load"] == "ok"
        assert manifest["steps"]["preview"] == "skipped"
        assert len(manifest["config_hash_sha256"]) == 64
        assert (build / "qa" / "index.html").exists()
        assert (build / "logs" / "build.log").exists()

    def test_build_keeps_similar_names_apart(self, project_dir: Path) -> None:
        collection = {
            "type": "FeatureCollection",
            "features": [polygon_feature("A B", square(0, 0)), polygon_feature("A_B", square(20, 0))],
        }
        (project_dir / "data" / "countries.geojson").write_text(json.dumps(collection), encoding="utf-8")
        make_quadrant_image().save(project_dir / "images" / "A_B.png")
        assert main(["build", "--config", str(project_dir / "config.yaml"), "--no-preview"]) == 0

        artifacts_dir = project_dir / "build" / "artifacts"
        listing = json.loads((artifacts_dir / "artifacts.json").read_text(encoding="utf-8"))
        files = [entry["file"] for entry in listing["artifacts"]]
        assert len(set(files)) == 2
        assert len(list(artifacts_dir.glob("*.png"))) == 2

    def test_build_with_failure_writes_partial_outputs(self, project_dir: Path) -> None:
        (project_dir / "images" / "B.png").unlink()
        code = main(["build", "--config", str(project_dir / "config.yaml"), "--no-preview"])
        assert code == 1

        build = project_dir / "build"
        artifacts = sorted(path.name for path in (build / "artifacts").glob("*.png"))
        assert artifacts == ["image-A-0-0.png"]
        manifest = json.loads((build / "manifests" / "build_manifest.json").read_text(encoding="utf-8"))
        assert manifest["countries"]["states"] == {"A": "loaded", "B": "failed", "C": "pending"}
        assert manifest["steps"]["load"] == "error"

    def test_build_country_filter(self, project_dir: Path) -> None:
        code = main(
            ["build", "--config", str(project_dir / "config.yaml"), "--no-preview", "--country", "b"]
        )
        assert code == 0
        artifacts = sorted(path.name for path in (project_dir / "build" / "artifacts").glob("*.png"))
        assert artifacts == ["image-B-0-0.png", "image-B-0-1.png"]

    def test_validate(self, project_dir: Path) -> None:
        assert main(["validate", "--config", str(project_dir / "config.yaml"), "--strict"]) == 0
        (project_dir / "data" / "countries.geojson").unlink()
        assert main(["validate", "--config", str(project_dir / "config.yaml"), "--strict"]) == 1

    def test_quadrant_by_number(self, project_dir: Path) -> None:
        code = main(
            ["quadrant", "--config", str(project_dir / "config.yaml"), "--country", "B", "--quadrant", "2"]
        )
        assert code == 0
        artifacts = sorted(path.name for path in (project_dir / "build" / "artifacts").glob("*.png"))
        assert artifacts == ["image-B-2-0.png", "image-B-2-1.png"]

    def test_quadrant_by_pointer(self, project_dir: Path) -> None:
        code = main(
            [
                "quadrant",
                "--config",
                str(project_dir / "config.yaml"),
                "--country",
                "a",
                "--pointer",
                "90",
                "10",
                "100",
                "100",
            ]
        )
        assert code == 0
        artifacts = sorted(path.name for path in (project_dir / "build" / "artifacts").glob("*.png"))
        assert artifacts == ["image-A-1-0.png"]

    def test_quadrant_for_skipped_country(self, project_dir: Path) -> None:
        code = main(
            ["quadrant", "--config", str(project_dir / "config.yaml"), "--country", "C", "--quadrant", "1"]
        )
        assert code == 1


class TestArtifactFilename:
    def test_safe_keys_keep_their_name(self) -> None:
        assert artifact_filename("image-A-0-0") == "image-A-0-0.png"
        assert artifact_filename("image-A_B-0-0") == "image-A_B-0-0.png"

    def test_unsafe_characters_are_replaced_and_tagged(self) -> None:
        key = "image-Côte d'Ivoire-0-1"
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:8]
        assert artifact_filename(key) == f"image-C_te_d_Ivoire-0-1.{digest}.png"

    def test_sanitised_keys_do_not_collide(self) -> None:
        keys = ["image-A B-0-0", "image-A_B-0-0", "image-A/B-0-0", "image-A  B-0-0"]
        names = {artifact_filename(key) for key in keys}
        assert len(names) == len(keys)
