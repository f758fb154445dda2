"""Tests for the production directory scanner."""

from unittest.mock import patch

import pytest

from production_sync.models import ProjectType
from production_sync.structure import StructureProvider, extract_scene_shots


def _touch(path):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")


@pytest.fixture
def production_root(tmp_path):
    root = tmp_path / "production"
    _touch(root / "Episode_02" / "Audio" / "SC_01_SH_01_Audio.wav")
    _touch(root / "Episode_01" / "Production" / "SC_01_SH_03_animation_v011.mp4")
    _touch(root / "Episode_01" / "Audio" / "SC_01_SH_02_Audio.wav")
    _touch(root / "Episode_01" / "For lineup" / "SC_02_SH_01_lineup.mov")
    _touch(root / "Episode_01" / "Unrelated" / "SC_09_SH_09_ignored.mp4")
    _touch(root / "Episode_01" / "Audio" / "readme.txt")
    _touch(root / "Episode_10" / "03_Production" / "SC_05_SH_01_x.mp4")
    _touch(root / "Short-Forms" / "Promo" / "renders" / "SC_01_SH_01_final.mp4")
    _touch(root / "Short-Forms" / "Teaser" / "cuts" / "SC_02_SH_04_v2.mp4")
    _touch(root / "Misc" / "SC_01_SH_01_x.mp4")
    return root


def test_extract_scene_shots():
    pairs = extract_scene_shots(
        ["SC_01_SH_02_Audio.wav", "notes.txt", "SC_3_SH_4_x.mp4", "XSC_01_SH_01_.mp4"]
    )
    assert pairs == {("SC_01", "SH_02"), ("SC_3", "SH_4")}


class TestStructureProvider:
    def test_episodes_sorted_numerically(self, production_root):
        structure = StructureProvider(production_root).scan()
        assert [p.name for p in structure.episodes] == [
            "Episode_01",
            "Episode_02",
            "Episode_10",
        ]
        assert all(p.project_type == ProjectType.LONG_FORM for p in structure.episodes)
        assert structure.error is None

    def test_episode_scenes_and_shots(self, production_root):
        structure = StructureProvider(production_root).scan()
        assert structure.scenes_for("Episode_01") == ["SC_01", "SC_02"]
        assert structure.shots_for("Episode_01", "SC_01") == ["SH_02", "SH_03"]
        # Only the known subdirectories are scanned
        assert "SC_09" not in structure.scenes_for("Episode_01")

    def test_short_forms(self, production_root):
        structure = StructureProvider(production_root).scan()
        assert [p.name for p in structure.short_forms] == ["Promo", "Teaser"]
        promo = structure.find("Promo")
        assert promo.project_type == ProjectType.SHORT_FORM
        assert structure.shots_for("Teaser", "SC_02") == ["SH_04"]

    def test_unknown_project(self, production_root):
        structure = StructureProvider(production_root).scan()
        assert structure.find("Episode_99") is None
        assert structure.scenes_for("Episode_99") == []
        assert structure.shots_for("Episode_99", "SC_01") == []

    def test_missing_root_is_empty(self, tmp_path):
        structure = StructureProvider(tmp_path / "absent").scan()
        assert structure.episodes == []
        assert structure.short_forms == []
        assert structure.error is None

    def test_io_error_reported(self, production_root):
        provider = StructureProvider(production_root)
        with patch.object(
            StructureProvider, "_scan_episodes", side_effect=PermissionError("denied")
        ):
            structure = provider.scan()
        assert structure.error == "denied"
        assert structure.episodes == []

    def test_serializes(self, production_root):
        data = StructureProvider(production_root).scan().model_dump(mode="json")
        assert data["episodes"][0]["project_type"] == "long-form"
        assert data["episodes"][0]["shots"][0] == {"scene": "SC_01", "shot": "SH_02"}
