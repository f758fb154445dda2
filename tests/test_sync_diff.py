"""Tests for peer snapshot translation and difference detection."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from conftest import make_input, make_wire
from production_sync.models import ProductionRecord, RecordStatus
from production_sync.sync.diff import detect_differences, translate_snapshot

NOW = datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc)
EARLIER = NOW - timedelta(days=2)


def _local(record_id: int, peer_id: int | None = None, **overrides) -> ProductionRecord:
    return ProductionRecord(
        **make_input(**overrides).model_dump(),
        id=record_id,
        peer_id=peer_id,
        created_at=EARLIER,
        updated_at=EARLIER,
    )


# ---------------------------------------------------------------------------
# translate_snapshot
# ---------------------------------------------------------------------------


class TestTranslateSnapshot:
    def test_new_peer_record_has_no_local_id(self):
        result = translate_snapshot([], [make_wire(id=40)], NOW)
        (record,) = result.records
        assert record.id is None
        assert record.peer_id == 40
        assert record.is_synced
        assert result.failures == []

    def test_matched_by_peer_id(self):
        local = [_local(3, peer_id=40, animator="Alice")]
        result = translate_snapshot(local, [make_wire(id=40, animator="Bob")], NOW)
        (record,) = result.records
        assert record.id == 3
        assert record.animator == "Bob"
        assert record.created_at == EARLIER

    def test_matched_by_senders_view_of_our_id(self):
        local = [_local(3)]
        result = translate_snapshot(local, [make_wire(id=40, peer_id=3, shot="SH_02")], NOW)
        (record,) = result.records
        assert record.id == 3
        assert record.peer_id == 40
        assert record.shot == "SH_02"

    def test_matched_by_identity_key(self):
        local = [_local(7)]
        result = translate_snapshot(local, [make_wire(id=40)], NOW)
        assert result.records[0].id == 7

    def test_local_record_claimed_once(self):
        local = [_local(7)]
        result = translate_snapshot(
            local,
            [make_wire(id=40, peer_id=7, shot="SH_05"), make_wire(id=41)],
            NOW,
        )
        assert [r.id for r in result.records] == [7, None]

    def test_peer_timestamps_kept(self):
        wire = make_wire(
            id=40,
            created_at="2025-01-01T08:00:00+00:00",
            updated_at="2025-01-09T08:00:00Z",
        )
        (record,) = translate_snapshot([], [wire], NOW).records
        assert record.updated_at == datetime(2025, 1, 9, 8, 0, tzinfo=timezone.utc)
        assert record.created_at == datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)
        assert record.last_synced_at == NOW

    def test_peer_clock_ahead_still_synced(self):
        ahead = NOW + timedelta(hours=1)
        wire = make_wire(id=40, updated_at=ahead.isoformat())
        (record,) = translate_snapshot([], [wire], NOW).records
        assert record.last_synced_at == ahead
        assert record.is_synced

    def test_invalid_peer_record_reported(self):
        result = translate_snapshot([], [make_wire(id=40, week_yyyymmdd="nope")], NOW)
        assert result.records == []
        assert result.failures[0][0] == 40
        assert "8 digits" in result.failures[0][1]

    def test_invalid_peer_record_keeps_mapped_local(self):
        local = [_local(3, peer_id=40, notes="ours")]
        result = translate_snapshot(local, [make_wire(id=40, episode_title="")], NOW)
        (record,) = result.records
        assert record is local[0]
        assert len(result.failures) == 1

    def test_bad_id_reported(self):
        result = translate_snapshot([], [make_wire(id="x")], NOW)
        assert result.records == []
        assert result.failures[0][0] is None


# ---------------------------------------------------------------------------
# detect_differences
# ---------------------------------------------------------------------------


class TestDetectDifferences:
    def test_empty(self):
        diff = detect_differences([], [])
        assert diff.total_changes == 0
        assert diff.counts() == {"added": 0, "updated": 0, "removed": 0, "unchanged": 0}

    def test_added_updated_removed_unchanged(self):
        local = [
            _local(1, peer_id=10, shot="SH_01"),
            _local(2, peer_id=20, shot="SH_02"),
            _local(3, peer_id=30, shot="SH_03"),
        ]
        incoming = [
            local[0],
            local[1].model_copy(update={"status": RecordStatus.APPROVED}),
            ProductionRecord(**make_input(shot="SH_04").model_dump(), peer_id=40),
        ]
        diff = detect_differences(local, incoming)
        assert [r.shot for r in diff.added] == ["SH_04"]
        assert [r.id for r in diff.updated] == [2]
        assert [r.id for r in diff.removed] == [3]
        assert diff.unchanged == 1
        assert diff.total_changes == 3

    def test_peer_id_change_counts_as_update(self):
        local = [_local(1)]
        diff = detect_differences(local, [local[0].model_copy(update={"peer_id": 9})])
        assert len(diff.updated) == 1

    def test_timestamps_alone_are_not_a_change(self):
        local = [_local(1, peer_id=10)]
        touched = local[0].model_copy(update={"last_synced_at": NOW, "updated_at": NOW})
        diff = detect_differences(local, [touched])
        assert diff.unchanged == 1
        assert diff.total_changes == 0
