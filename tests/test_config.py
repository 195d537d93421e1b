from __future__ import annotations

from pathlib import Path

import pytest

from overlaybuilder.config import HttpConfig, load_config


class TestLoadConfig:
    def test_paths_resolve_against_config_dir(self, project_dir: Path) -> None:
        cfg = load_config(project_dir / "config.yaml")
        assert cfg.root_dir == project_dir.resolve()
        assert cfg.paths.borders == project_dir.resolve() / "data" / "countries.geojson"
        assert cfg.paths.artifacts_dir == project_dir.resolve() / "build" / "artifacts"
        assert cfg.paths.preview_png.parent in cfg.paths.build_directories
        assert cfg.images.base == "images"
        assert cfg.images.extension == "png"

    def test_optional_sections_default(self, project_dir: Path) -> None:
        cfg = load_config(project_dir / "config.yaml")
        assert cfg.http == HttpConfig.default()
        assert cfg.borders.admin_field == "admin"
        assert cfg.preview.outline_color == "#ffffff"

    def test_remote_borders_stay_urls(self, project_dir: Path) -> None:
        path = project_dir / "config.yaml"
        text = path.read_text(encoding="utf-8").replace(
            "borders: data/countries.geojson",
            "borders: https://example.org/countries.geojson",
        )
        path.write_text(text, encoding="utf-8")
        cfg = load_config(path)
        assert cfg.paths.borders == "https://example.org/countries.geojson"

    def test_extension_and_base_are_normalized(self, project_dir: Path) -> None:
        path = project_dir / "config.yaml"
        text = path.read_text(encoding="utf-8")
        text = text.replace("base: images", "base: https://cdn.example.org/img/")
        text = text.replace("extension: png", "extension: .jpg")
        path.write_text(text, encoding="utf-8")
        cfg = load_config(path)
        assert cfg.images.base == "https://cdn.example.org/img"
        assert cfg.images.extension == "jpg"

    @pytest.mark.parametrize(
        "old, new",
        [
            ("background: white", "background: sepia"),
            ("width_px: 320", "width_px: 0"),
            ("generate_index: true", "generate_index: 'yes'"),
            ("max_columns: 3", "max_columns: 2.5"),
        ],
    )
    def test_invalid_values(self, project_dir: Path, old: str, new: str) -> None:
        path = project_dir / "config.yaml"
        path.write_text(path.read_text(encoding="utf-8").replace(old, new), encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(path)

    def test_missing_section(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("project:\n  name: x\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(path)
