"""Tests for the field mapper between record attributes and external names."""

from datetime import datetime, timezone

import pytest

from conftest import MONDAY, make_input, make_wire
from production_sync.errors import RecordValidationError
from production_sync.mapper import (
    FIELD_MAP,
    MIRROR_COLUMNS,
    FieldMapper,
    parse_id,
    parse_timestamp,
    record_from_frontend,
    record_from_wire,
    record_to_frontend,
    record_to_wire,
)
from production_sync.models import ProductionRecord


def _record(**overrides) -> ProductionRecord:
    return ProductionRecord(
        **make_input(**overrides).model_dump(),
        id=3,
        peer_id=11,
        created_at=datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc),
        updated_at=datetime(2025, 1, 7, 10, 30, tzinfo=timezone.utc),
    )


class TestFieldTable:
    def test_every_attribute_mapped_once(self):
        attributes = [spec.attribute for spec in FIELD_MAP]
        assert len(attributes) == len(set(attributes))
        assert set(attributes) == {
            "animator",
            "project_type",
            "title",
            "scene",
            "shot",
            "week_code",
            "status",
            "notes",
        }

    def test_mirror_columns_order(self):
        assert MIRROR_COLUMNS[0] == "Animator"
        assert "Week" in MIRROR_COLUMNS
        assert len(MIRROR_COLUMNS) == len(FIELD_MAP)


class TestFieldMapper:
    def test_dump_wire_names(self):
        data = FieldMapper("wire").dump(make_input(title="Ep1"))
        assert data["episode_title"] == "Ep1"
        assert data["week_yyyymmdd"] == MONDAY
        assert data["project_type"] == "long-form"
        assert "title" not in data

    def test_dump_label_names(self):
        data = FieldMapper("label").dump(make_input())
        assert data["Episode/Title"] == "Episode_01"
        assert data["Week (YYYYMMDD)"] == MONDAY
        assert data["Project Type"] == "long-form"

    def test_load_ignores_unknown_keys(self):
        fields = FieldMapper("column").load(
            {
                "Animator": "Bob",
                "ProjectType": "short-form",
                "Title": "Promo",
                "Scene": "SC_03",
                "Shot": "SH_04",
                "Week": MONDAY,
                "Status": "approved",
                "Notes": "",
                "Extra": "ignored",
            }
        )
        assert fields.title == "Promo"
        assert fields.status.value == "approved"

    def test_load_error_names_external_field(self):
        with pytest.raises(RecordValidationError) as exc_info:
            FieldMapper("label").load(
                {**FieldMapper("label").dump(make_input()), "Week (YYYYMMDD)": "20250107"}
            )
        assert exc_info.value.field == "Week (YYYYMMDD)"


class TestWire:
    def test_record_to_wire(self):
        data = record_to_wire(_record())
        assert data["id"] == 3
        assert data["peer_id"] == 11
        assert data["episode_title"] == "Episode_01"
        assert data["updated_at"] == "2025-01-07T10:30:00+00:00"

    def test_wire_business_fields_survive(self):
        record = _record(notes="retake")
        assert record_from_wire(record_to_wire(record)) == record.business_fields()

    def test_record_from_wire_rejects_bad_week(self):
        with pytest.raises(RecordValidationError) as exc_info:
            record_from_wire(make_wire(week_yyyymmdd="2025"))
        assert exc_info.value.field == "week_yyyymmdd"


class TestFrontend:
    def test_record_to_frontend_carries_ids(self):
        data = record_to_frontend(_record())
        assert data["_id"] == 3
        assert data["_peer_id"] == 11
        assert data["Animator"] == "Alice"

    def test_record_from_frontend(self):
        fields = record_from_frontend(
            {
                "Animator": "Alice",
                "Project Type": "long-form",
                "Episode/Title": "Episode_02",
                "Scene": "SC_01",
                "Shot": "SH_09",
                "Week (YYYYMMDD)": MONDAY,
                "Status": "submitted",
            }
        )
        assert fields.title == "Episode_02"
        assert fields.notes == ""


class TestParseTimestamp:
    def test_zulu(self):
        parsed = parse_timestamp("2025-01-06T09:00:00Z")
        assert parsed == datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        parsed = parse_timestamp("2025-01-06T09:00:00")
        assert parsed.tzinfo == timezone.utc

    @pytest.mark.parametrize("value", [None, ""])
    def test_blank(self, value):
        assert parse_timestamp(value) is None

    def test_datetime_passthrough(self):
        value = datetime(2025, 1, 6, tzinfo=timezone.utc)
        assert parse_timestamp(value) is value

    def test_invalid(self):
        with pytest.raises(RecordValidationError, match="Invalid timestamp"):
            parse_timestamp("yesterday")


class TestParseId:
    def test_int_and_string(self):
        assert parse_id(5) == 5
        assert parse_id("7") == 7

    @pytest.mark.parametrize("value", [None, ""])
    def test_blank(self, value):
        assert parse_id(value) is None

    @pytest.mark.parametrize("value", ["abc", True, 1.5j])
    def test_invalid(self, value):
        with pytest.raises(RecordValidationError) as exc_info:
            parse_id(value, field="peer_id")
        assert exc_info.value.field == "peer_id"
