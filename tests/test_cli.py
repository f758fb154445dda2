"""Tests for the production-sync command line (server/cli.py)."""

from unittest.mock import patch

import pytest

from conftest import make_input
from production_sync.config import ENV_VARS
from production_sync.config_loader import CONFIG_ENV_VAR
from production_sync.errors import TransportError
from production_sync.mirror import CsvFileMirror
from production_sync.server import cli
from production_sync.server.node import build_node
from production_sync.store import JsonRecordStore


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """No env config, no config files, logging left to pytest."""
    for env_key in ENV_VARS.values():
        monkeypatch.delenv(env_key, raising=False)
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.delenv("LOG_FILE", raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    with patch("production_sync.server.cli.setup_logging"):
        yield tmp_path


def _exit_code(argv):
    with pytest.raises(SystemExit) as exc_info:
        cli.run(argv)
    return exc_info.value.code


@pytest.fixture
def loopback_node(peer, local_store, monkeypatch):
    """Make the CLI build its node around the loopback peer."""

    def _build(config):
        return build_node(config, store=local_store, client=peer)

    monkeypatch.setattr(cli, "build_node", _build)
    return local_store


class TestParser:
    def test_no_command_prints_help(self, capsys):
        assert _exit_code([]) == 1
        assert "usage: production-sync" in capsys.readouterr().out

    def test_version(self, capsys):
        assert _exit_code(["--version"]) == 0
        assert "production-sync version" in capsys.readouterr().out

    def test_invalid_direction_rejected(self):
        assert _exit_code(["sync", "--direction", "sideways"]) == 2

    def test_overrides_skip_unset_args(self):
        args = cli.build_parser().parse_args(
            ["--store", "json", "--insecure", "serve", "--port", "4000"]
        )
        assert cli._config_overrides(args) == {
            "store_backend": "json",
            "insecure": True,
            "port": 4000,
        }


class TestConfigErrors:
    def test_invalid_peer_url_exits_1(self, capsys):
        assert _exit_code(["--peer-url", "records.example.com", "status"]) == 1
        assert "Configuration error" in capsys.readouterr().err

    def test_invalid_env_value_exits_1(self, monkeypatch, capsys):
        monkeypatch.setenv("SYNC_INTERVAL_MINUTES", "0")
        assert _exit_code(["status"]) == 1
        assert "Invalid sync_interval_minutes" in capsys.readouterr().err


class TestSync:
    def test_disabled_without_peer(self, capsys):
        assert _exit_code(["--store", "memory", "sync"]) == 1
        assert "Sync is disabled" in capsys.readouterr().err

    def test_pull_prints_report(self, loopback_node, peer_store, capsys):
        peer_store.insert(make_input(shot="SH_03"))

        code = _exit_code(
            ["--peer-url", "https://peer.example.com", "--store", "memory", "sync"]
        )

        assert code == 0
        out = capsys.readouterr().out
        assert "Sync report (pull, manual)" in out
        assert [r.shot for r in loopback_node.get_all()] == ["SH_03"]

    def test_direction_override(self, loopback_node, peer_store, capsys):
        loopback_node.insert(make_input(shot="SH_04"))

        code = _exit_code(
            [
                "--peer-url", "https://peer.example.com",
                "--store", "memory",
                "sync", "--direction", "push",
            ]
        )

        assert code == 0
        assert "Sync report (push, manual)" in capsys.readouterr().out
        assert [r.shot for r in peer_store.get_all()] == ["SH_04"]

    def test_failed_pass_exits_1(self, loopback_node, peer, capsys):
        loopback_node.insert(make_input())
        peer.errors["export_records"] = TransportError("Peer unreachable")

        code = _exit_code(
            ["--peer-url", "https://peer.example.com", "--store", "memory", "sync"]
        )

        assert code == 1
        assert "FAILED" in capsys.readouterr().out
        # Local data survives an unreachable peer
        assert len(loopback_node.get_all()) == 1


class TestStatus:
    def test_standalone(self, tmp_path, capsys):
        assert _exit_code(["--store", "json", "--data-dir", str(tmp_path), "status"]) == 0
        out = capsys.readouterr().out
        assert "Sync: disabled" in out
        assert "Records:        0" in out
        assert "Sync log is empty." in out

    def test_with_peer(self, tmp_path, capsys):
        code = _exit_code(
            [
                "--peer-url", "https://peer.example.com",
                "--store", "json",
                "--data-dir", str(tmp_path),
                "status",
            ]
        )
        assert code == 0
        out = capsys.readouterr().out
        assert "Sync direction: pull" in out
        assert "Last run:       never" in out

    def test_json_output(self, tmp_path, capsys):
        code = _exit_code(
            [
                "--peer-url", "https://peer.example.com",
                "--store", "json",
                "--data-dir", str(tmp_path),
                "status", "--json",
            ]
        )
        assert code == 0
        out = capsys.readouterr().out
        assert '"direction": "pull"' in out
        assert '"running": false' in out


class TestImportMirror:
    def test_imports_rows(self, tmp_path, capsys):
        mirror_path = tmp_path / "production_data.csv"
        CsvFileMirror(mirror_path).write(
            [make_input(shot="SH_01"), make_input(shot="SH_02")]
        )
        data_dir = tmp_path / "data"

        code = _exit_code(
            [
                "--store", "json",
                "--data-dir", str(data_dir),
                "--mirror", str(mirror_path),
                "import-mirror",
            ]
        )

        assert code == 0
        assert "Imported 2 records" in capsys.readouterr().out
        stored = JsonRecordStore(data_dir).get_all()
        assert sorted(r.shot for r in stored) == ["SH_01", "SH_02"]

    def test_without_mirror_exits_1(self, capsys):
        assert _exit_code(["--store", "memory", "import-mirror"]) == 1
        assert "No mirror configured" in capsys.readouterr().err


class TestInitConfig:
    def test_writes_file(self, tmp_path, capsys):
        target = tmp_path / "conf" / "config.yml"
        assert _exit_code(["init-config", "--path", str(target)]) == 0
        assert target.exists()
        assert f"Config file: {target}" in capsys.readouterr().out


class TestServe:
    def test_runs_uvicorn(self, capsys):
        with patch("production_sync.server.cli.uvicorn.run") as mock_run:
            code = _exit_code(["--store", "memory", "serve", "--port", "4123"])

        assert code == 0
        mock_run.assert_called_once()
        assert mock_run.call_args.kwargs["port"] == 4123
        assert mock_run.call_args.kwargs["host"] == "127.0.0.1"
        assert "listening on http://127.0.0.1:4123" in capsys.readouterr().err
