"""Field mapper between record attributes and their external names.

One table (``FIELD_MAP``) names every business attribute in each of the
three external shapes a record takes:

- **wire**   -- JSON keys of the peer sync protocol.
- **column** -- header of the flat-file mirror.
- **label**  -- keys used by the data-entry frontend.

``FieldMapper`` converts in both directions for any of the views.  The
wire view additionally carries ids and timestamps; the label view
carries the local and peer ids as ``_id`` / ``_peer_id``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, NamedTuple

from .errors import RecordValidationError
from .models import ProductionRecord, RecordInput, build_record_input

View = Literal["wire", "column", "label"]


class FieldSpec(NamedTuple):
    attribute: str
    wire: str
    column: str
    label: str


FIELD_MAP: tuple[FieldSpec, ...] = (
    FieldSpec("animator", "animator", "Animator", "Animator"),
    FieldSpec("project_type", "project_type", "ProjectType", "Project Type"),
    FieldSpec("title", "episode_title", "Title", "Episode/Title"),
    FieldSpec("scene", "scene", "Scene", "Scene"),
    FieldSpec("shot", "shot", "Shot", "Shot"),
    FieldSpec("week_code", "week_yyyymmdd", "Week", "Week (YYYYMMDD)"),
    FieldSpec("status", "status", "Status", "Status"),
    FieldSpec("notes", "notes", "Notes", "Notes"),
)

MIRROR_COLUMNS: tuple[str, ...] = tuple(spec.column for spec in FIELD_MAP)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO 8601 timestamp from the wire; naive values are UTC."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            raise RecordValidationError(
                f"Invalid timestamp '{value}'", field="updated_at"
            ) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_id(value: Any, field: str = "id") -> int | None:
    """Parse a surrogate id from the wire; blank means ``None``."""
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        raise RecordValidationError(f"Invalid {field} {value!r}", field=field)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise RecordValidationError(
            f"Invalid {field} {value!r}", field=field
        ) from None


class FieldMapper:
    """Convert record fields to and from one external view."""

    def __init__(self, view: View) -> None:
        self.view = view
        self._to_external = {
            spec.attribute: getattr(spec, view) for spec in FIELD_MAP
        }
        self._to_attribute = {
            external: attribute
            for attribute, external in self._to_external.items()
        }

    def dump(self, fields: RecordInput) -> dict[str, Any]:
        """Return the business fields keyed by this view's names."""
        values = fields.business_fields().model_dump(mode="json")
        return {
            self._to_external[attribute]: values[attribute]
            for attribute in self._to_external
        }

    def load(self, data: dict[str, Any]) -> RecordInput:
        """Build validated business fields from a dict in this view.

        Unknown keys are ignored.

        Raises:
            RecordValidationError: If a field is missing or invalid.
        """
        attributes = {
            self._to_attribute[key]: value
            for key, value in data.items()
            if key in self._to_attribute
        }
        try:
            return build_record_input(attributes)
        except RecordValidationError as exc:
            field = self._to_external.get(exc.field or "", exc.field)
            raise RecordValidationError(str(exc), field=field) from exc


wire_fields = FieldMapper("wire")
mirror_fields = FieldMapper("column")
frontend_fields = FieldMapper("label")


# ------------------------------------------------------------------
# Wire (peer protocol)
# ------------------------------------------------------------------


def record_to_wire(record: ProductionRecord) -> dict[str, Any]:
    """Serialize a stored record for the peer protocol."""
    data: dict[str, Any] = {"id": record.id, "peer_id": record.peer_id}
    data.update(wire_fields.dump(record))
    data["created_at"] = record.created_at.isoformat()
    data["updated_at"] = record.updated_at.isoformat()
    return data


def record_from_wire(data: dict[str, Any]) -> RecordInput:
    """Validate the business fields of a wire record."""
    return wire_fields.load(data)


# ------------------------------------------------------------------
# Frontend
# ------------------------------------------------------------------


def record_to_frontend(record: ProductionRecord) -> dict[str, Any]:
    """Serialize a stored record with frontend labels."""
    data = frontend_fields.dump(record)
    data["_id"] = record.id
    data["_peer_id"] = record.peer_id
    return data


def record_from_frontend(data: dict[str, Any]) -> RecordInput:
    """Validate a frontend submission."""
    return frontend_fields.load(data)
