"""Shared pytest fixtures for production-sync tests."""

from __future__ import annotations

from typing import Any

import pytest

from production_sync.config import Config
from production_sync.errors import ConflictError
from production_sync.mapper import record_to_wire
from production_sync.models import ProductionRecord, RecordInput
from production_sync.store import InMemoryRecordStore
from production_sync.sync.inbound import InboundChanges

MONDAY = "20250106"
NEXT_MONDAY = "20250113"


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a reachable peer node",
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Record helpers
# ---------------------------------------------------------------------------


def make_input(**overrides: Any) -> RecordInput:
    """Build valid business fields; any field can be overridden."""
    defaults: dict[str, Any] = {
        "animator": "Alice",
        "project_type": "long-form",
        "title": "Episode_01",
        "scene": "SC_01",
        "shot": "SH_01",
        "week_code": MONDAY,
        "status": "submitted",
        "notes": "",
    }
    defaults.update(overrides)
    return RecordInput(**defaults)


def make_wire(**overrides: Any) -> dict[str, Any]:
    """Build a peer-protocol record dict."""
    data: dict[str, Any] = {
        "id": None,
        "peer_id": None,
        "animator": "Alice",
        "project_type": "long-form",
        "episode_title": "Episode_01",
        "scene": "SC_01",
        "shot": "SH_01",
        "week_yyyymmdd": MONDAY,
        "status": "submitted",
        "notes": "",
    }
    data.update(overrides)
    return data


@pytest.fixture
def record_input():
    """Factory fixture for ``RecordInput`` values."""
    return make_input


# ---------------------------------------------------------------------------
# Peer doubles
# ---------------------------------------------------------------------------


class LoopbackPeerClient:
    """``PeerClient`` stand-in that talks to another node's inbound side.

    Errors are shaped the way the HTTP client shapes them: a conflict
    carries the peer's record as a wire dict.

    Attributes:
        errors: Method name -> exception raised on every call to it.
        record_errors: Sender record id -> exception raised when that
            record is created or updated.
        calls: Names of the methods called, in order.
    """

    def __init__(self, inbound: InboundChanges) -> None:
        self.inbound = inbound
        self.errors: dict[str, BaseException] = {}
        self.record_errors: dict[int, BaseException] = {}
        self.calls: list[str] = []

    def _enter(self, name: str, record: dict[str, Any] | None = None) -> None:
        self.calls.append(name)
        if name in self.errors:
            raise self.errors[name]
        if record is not None and record.get("id") in self.record_errors:
            raise self.record_errors[record["id"]]

    @staticmethod
    def _conflict(exc: ConflictError) -> ConflictError:
        existing = exc.existing
        if isinstance(existing, ProductionRecord):
            existing = record_to_wire(existing)
        return ConflictError(f"Peer reports conflict: {exc}", existing=existing)

    def export_records(self) -> list[dict[str, Any]]:
        self._enter("export_records")
        return self.inbound.export_snapshot()

    def create_record(self, record: dict[str, Any]) -> dict[str, Any]:
        self._enter("create_record", record)
        try:
            return record_to_wire(self.inbound.create(record))
        except ConflictError as exc:
            raise self._conflict(exc) from None

    def update_record(self, peer_id: int, record: dict[str, Any]) -> dict[str, Any]:
        self._enter("update_record", record)
        try:
            return record_to_wire(self.inbound.update(peer_id, record))
        except ConflictError as exc:
            raise self._conflict(exc) from None

    def delete_record(self, peer_id: int) -> None:
        self._enter("delete_record")
        self.inbound.delete(peer_id)

    def apply_change(self, action: str, record: dict[str, Any]) -> dict[str, Any]:
        self._enter("apply_change", record)
        try:
            stored = self.inbound.apply(action, record)
        except ConflictError as exc:
            raise self._conflict(exc) from None
        return {
            "success": True,
            "action": action,
            "data": record_to_wire(stored) if stored is not None else None,
        }

    def check_health(self) -> dict[str, Any]:
        self._enter("check_health")
        return {"status": "ok"}


@pytest.fixture
def local_store():
    return InMemoryRecordStore()


@pytest.fixture
def peer_store():
    """The other node's store."""
    return InMemoryRecordStore()


@pytest.fixture
def peer(peer_store):
    """Loopback client whose far side is ``peer_store``."""
    return LoopbackPeerClient(InboundChanges(peer_store))


@pytest.fixture
def node_config(tmp_path):
    """Config for an in-process node with auto-sync off."""
    return Config(
        peer_url="https://peer.example.com",
        store_backend="memory",
        data_dir=str(tmp_path / "data"),
        enable_auto_sync=False,
        busy_wait_seconds=0.1,
    )
