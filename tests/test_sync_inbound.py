"""Tests for InboundChanges: applying the peer's changes locally."""

from __future__ import annotations

import pytest

from conftest import make_input, make_wire
from production_sync.errors import ConflictError, NotFoundError, RecordValidationError
from production_sync.mirror import CsvFileMirror
from production_sync.models import LogAction, LogOutcome, LogSource, SyncDirection
from production_sync.sync.inbound import InboundChanges


@pytest.fixture
def inbound(local_store):
    return InboundChanges(local_store)


# ---------------------------------------------------------------------------
# Record endpoints
# ---------------------------------------------------------------------------


class TestCreate:
    def test_stores_synced_record_with_sender_id(self, inbound, local_store):
        record = inbound.create(make_wire(id=7))

        assert record.peer_id == 7
        assert record.is_synced
        (entry,) = local_store.get_sync_log()
        assert entry.direction == SyncDirection.PULL
        assert entry.action == LogAction.INSERT
        assert entry.source == LogSource.INBOUND
        assert entry.local_id == record.id

    def test_repeated_create_updates(self, inbound, local_store):
        first = inbound.create(make_wire(id=7))
        second = inbound.create(make_wire(id=7, status="approved"))

        assert second.id == first.id
        assert second.status.value == "approved"
        assert len(local_store.get_all()) == 1
        assert local_store.get_sync_log()[-1].action == LogAction.UPDATE

    def test_conflict_is_logged_and_raised(self, inbound, local_store):
        ours = local_store.insert(make_input(animator="Alice"))

        with pytest.raises(ConflictError) as exc_info:
            inbound.create(make_wire(id=7, animator="Bob"))

        assert exc_info.value.existing == ours
        assert local_store.get(ours.id) == ours
        (entry,) = local_store.get_sync_log()
        assert entry.outcome == LogOutcome.FAILED
        assert entry.peer_id == 7

    def test_invalid_payload(self, inbound, local_store):
        with pytest.raises(RecordValidationError) as exc_info:
            inbound.create(make_wire(id=7, week_yyyymmdd="20250107"))
        assert exc_info.value.field == "week_yyyymmdd"
        assert local_store.get_all() == []

    def test_mirror_regenerated(self, local_store, tmp_path):
        mirror = CsvFileMirror(tmp_path / "production.csv")
        InboundChanges(local_store, mirror).create(make_wire(id=7))
        assert [r.shot for r in mirror.read()] == ["SH_01"]


class TestUpdate:
    def test_overwrites_with_peer_version(self, inbound, local_store):
        ours = local_store.insert(make_input())

        record = inbound.update(ours.id, make_wire(id=7, animator="Bob"))

        assert record.id == ours.id
        assert record.animator == "Bob"
        assert record.peer_id == 7
        assert record.is_synced

    def test_missing_record(self, inbound):
        with pytest.raises(NotFoundError):
            inbound.update(99, make_wire(id=7))


class TestDelete:
    def test_removes_and_logs(self, inbound, local_store):
        ours = local_store.insert(make_input())

        removed = inbound.delete(ours.id)

        assert removed.id == ours.id
        assert local_store.get_all() == []
        assert local_store.get_sync_log()[-1].action == LogAction.DELETE

    def test_missing_is_noop(self, inbound, local_store):
        assert inbound.delete(99) is None
        assert local_store.get_sync_log() == []


# ---------------------------------------------------------------------------
# Change notifications
# ---------------------------------------------------------------------------


class TestApply:
    def test_create_inserts(self, inbound, local_store):
        record = inbound.apply("create", make_wire(id=7))
        assert record.peer_id == 7
        assert len(local_store.get_all()) == 1

    def test_resolves_by_our_id(self, inbound, local_store):
        ours = local_store.insert(make_input())
        record = inbound.apply("update", make_wire(id=7, peer_id=ours.id, shot="SH_02"))
        assert record.id == ours.id
        assert record.shot == "SH_02"

    def test_resolves_by_sender_id(self, inbound, local_store):
        ours = local_store.insert(make_input(), peer_id=7)
        record = inbound.apply("update", make_wire(id=7, shot="SH_02"))
        assert record.id == ours.id

    def test_resolves_by_identity_key(self, inbound, local_store):
        ours = local_store.insert(make_input(animator="Alice"))
        record = inbound.apply("create", make_wire(id=7, animator="Bob"))
        assert record.id == ours.id
        assert record.animator == "Bob"
        assert record.peer_id == 7

    def test_stale_local_id_falls_through(self, inbound, local_store):
        record = inbound.apply("update", make_wire(id=7, peer_id=42))
        assert record.peer_id == 7
        assert len(local_store.get_all()) == 1

    def test_delete(self, inbound, local_store):
        local_store.insert(make_input(), peer_id=7)
        removed = inbound.apply("delete", {"id": 7})
        assert removed is not None
        assert local_store.get_all() == []

    def test_delete_unknown_is_noop(self, inbound):
        assert inbound.apply("delete", make_wire(id=7)) is None

    def test_update_collision(self, inbound, local_store):
        first = local_store.insert(make_input(shot="SH_01"))
        second = local_store.insert(make_input(shot="SH_02"), peer_id=7)

        with pytest.raises(ConflictError):
            inbound.apply("update", make_wire(id=7, shot="SH_01"))

        assert local_store.get(first.id) == first
        assert local_store.get(second.id) == second

    def test_invalid_action(self, inbound):
        with pytest.raises(ValueError, match="Invalid action 'upsert'"):
            inbound.apply("upsert", make_wire(id=7))


def test_export_snapshot(inbound, local_store):
    local_store.insert(make_input(shot="SH_01"))
    local_store.insert(make_input(shot="SH_02"), peer_id=12)

    snapshot = inbound.export_snapshot()

    assert sorted(r["shot"] for r in snapshot) == ["SH_01", "SH_02"]
    assert {r["peer_id"] for r in snapshot} == {None, 12}
    assert all("episode_title" in r and "updated_at" in r for r in snapshot)
