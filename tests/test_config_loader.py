"""Tests for production_sync.config_loader: hierarchical config loading."""

import textwrap
from pathlib import Path
from unittest.mock import patch

import pytest

from production_sync.config_loader import (
    CONFIG_ENV_VAR,
    _interpolate_recursive,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
    resolve_config_path,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Empty CWD and HOME, no explicit config path."""
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.chdir(tmp_path)
    home = tmp_path / "home"
    monkeypatch.setenv("HOME", str(home))
    return tmp_path


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text))
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    @pytest.fixture(autouse=True)
    def env(self, monkeypatch):
        monkeypatch.setenv("PEER_HOST", "records.local")
        monkeypatch.setenv("PEER_PORT", "3000")
        monkeypatch.setenv("BLANK_VAR", "")
        monkeypatch.delenv("MISSING_VAR", raising=False)

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("${PEER_HOST}", "records.local"),
            ("${MISSING_VAR}", ""),
            ("${MISSING_VAR:-fallback}", "fallback"),
            ("${PEER_PORT:-8080}", "3000"),
            ("${BLANK_VAR:-fallback}", "fallback"),
            ("http://${PEER_HOST}:${PEER_PORT}/api", "http://records.local:3000/api"),
            ("${UNTERMINATED", "${UNTERMINATED"),
            ("no references", "no references"),
        ],
    )
    def test_expansion(self, raw, expected):
        assert interpolate_env_vars(raw) == expected

    def test_nested_structures(self):
        data = {
            "peer": {"url": "https://${PEER_HOST}", "timeout_seconds": 5},
            "extra": ["${PEER_PORT}", 1, None, True],
        }
        assert _interpolate_recursive(data) == {
            "peer": {"url": "https://records.local", "timeout_seconds": 5},
            "extra": ["3000", 1, None, True],
        }


# -------------------------------------------------------------------------
# Discovery
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    """Tests for discover_config_files() precedence and filtering."""

    def test_env_var_takes_highest_precedence(self, isolated, monkeypatch):
        custom = _write(isolated / "custom.yml", "custom: true\n")
        _write(isolated / ".production_sync" / "config.yml", "project: true\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(custom))

        result = discover_config_files()
        assert result[0] == custom.resolve()
        assert len(result) == 2

    def test_project_before_global(self, isolated):
        proj = _write(isolated / ".production_sync" / "config.yml", "project: true\n")
        xdg = _write(
            isolated / "home" / ".config" / "production_sync" / "config.yml",
            "global: true\n",
        )

        result = [p.resolve() for p in discover_config_files()]
        assert result == [proj.resolve(), xdg.resolve()]

    def test_yaml_extension(self, isolated):
        alt = _write(isolated / ".production_sync" / "config.yaml", "alt: true\n")
        assert [p.resolve() for p in discover_config_files()] == [alt.resolve()]

    def test_missing_files_excluded(self, isolated, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(isolated / "missing.yml"))
        assert discover_config_files() == []


# -------------------------------------------------------------------------
# Hierarchical merge
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    """Tests for load_hierarchical_config() merge and interpolation."""

    def test_zero_config_returns_empty_dict(self, isolated):
        assert load_hierarchical_config() == {}

    def test_project_overrides_global_at_section_level(self, isolated):
        _write(
            isolated / "home" / ".config" / "production_sync" / "config.yml",
            """\
            peer:
              url: https://global.example.com
              api_key: global-key
            storage:
              backend: sql
            """,
        )
        _write(
            isolated / ".production_sync" / "config.yml",
            """\
            peer:
              url: https://project.example.com
            """,
        )

        result = load_hierarchical_config()
        # The project's peer section replaces the global one entirely
        assert result["peer"] == {"url": "https://project.example.com"}
        assert result["storage"] == {"backend": "sql"}

    def test_env_var_interpolation_after_merge(self, isolated, monkeypatch):
        monkeypatch.setenv("MY_SECRET", "s3cret")
        _write(
            isolated / ".production_sync" / "config.yml",
            """\
            server:
              api_secret: "${MY_SECRET}"
              host: "${BIND_HOST_UNSET:-0.0.0.0}"
            """,
        )

        result = load_hierarchical_config()
        assert result["server"] == {"api_secret": "s3cret", "host": "0.0.0.0"}

    def test_non_dict_root_skipped(self, isolated, monkeypatch):
        custom = _write(isolated / "bad.yml", "- item1\n- item2\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(custom))
        assert load_hierarchical_config() == {}

    def test_invalid_yaml_raises(self, isolated):
        _write(isolated / ".production_sync" / "config.yml", "peer: [unclosed\n")
        with pytest.raises(Exception):
            load_hierarchical_config()


# -------------------------------------------------------------------------
# Config bootstrapping
# -------------------------------------------------------------------------


class TestResolveConfigPath:
    """Tests for resolve_config_path(): determining single config path."""

    def test_returns_highest_precedence(self):
        project_path = Path("/project/.production_sync/config.yml")
        global_path = Path("/home/user/.config/production_sync/config.yml")
        with patch(
            "production_sync.config_loader.discover_config_files",
            return_value=[project_path, global_path],
        ):
            assert resolve_config_path() == project_path

    def test_returns_default_when_no_files(self, isolated):
        result = resolve_config_path()
        assert result.resolve() == (isolated / ".production_sync" / "config.yml").resolve()


class TestEnsureConfig:
    """Tests for ensure_config(): bootstrapping config files."""

    def test_noop_when_exists(self, tmp_path):
        existing_path = Path("/fake/existing/config.yml")
        with patch(
            "production_sync.config_loader.discover_config_files",
            return_value=[existing_path],
        ):
            assert ensure_config() == existing_path
        assert not (tmp_path / ".production_sync").exists()

    def test_creates_starter_file(self, isolated):
        target = isolated / "a" / "b" / "config.yml"

        result = ensure_config(target=target)

        assert result == target
        content = target.read_text()
        assert "# production-sync configuration" in content
        assert "# peer:" in content
        assert "# logging:" in content

    def test_default_location(self, isolated):
        result = ensure_config()
        assert result.resolve() == (isolated / ".production_sync" / "config.yml").resolve()
        assert result.exists()

    def test_starter_file_loads_as_zero_config(self, isolated):
        ensure_config()
        # Everything in the starter file is commented out
        assert load_hierarchical_config() == {}
