"""Pydantic models for production records and the sync log.

Defines the data contracts shared by the store, the reconciler and the
HTTP surface:

- ``ProjectType`` / ``RecordStatus``: record vocabularies.
- ``SyncDirection``: the authority mode of one reconciliation pass.
- ``RecordInput``: the business fields of a record, validated.
- ``ProductionRecord``: a stored record with per-side metadata.
- ``SyncLogEntry``: one append-only audit entry.

All models are frozen (immutable); use ``model_copy(update=...)`` to
derive a changed record.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import RecordValidationError
from .validators import validate_required_text, validate_week_code

IdentityKey = tuple[str, str, str, str]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class ProjectType(str, Enum):
    """Kind of project a shot belongs to."""

    LONG_FORM = "long-form"
    SHORT_FORM = "short-form"


class RecordStatus(str, Enum):
    """Review status of a submitted shot."""

    SUBMITTED = "submitted"
    APPROVED = "approved"
    REVISION = "revision"


class SyncDirection(str, Enum):
    """Which side is authoritative for one reconciliation pass."""

    PULL = "pull"
    PUSH = "push"
    BIDIRECTIONAL = "bidirectional"


class LogAction(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    FULL_REPLACE = "full_replace"


class LogOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class LogSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class LogSource(str, Enum):
    """Component that produced a sync log entry."""

    RECONCILER = "reconciler"
    NOTIFICATION = "notification"
    INBOUND = "inbound"


_TEXT_FIELDS = ("animator", "title", "scene", "shot")
_FIELD_LABELS = {
    "animator": "Animator",
    "title": "Title",
    "scene": "Scene",
    "shot": "Shot",
}


class RecordInput(BaseModel):
    """Business fields of a production record.

    Attributes:
        animator: Name of the animator who submitted the shot.
        project_type: ``long-form`` (episode) or ``short-form``.
        title: Episode or short-form title.
        scene: Scene label, e.g. ``SC_01``.
        shot: Shot label, e.g. ``SH_01``.
        week_code: Monday of the submission week as ``YYYYMMDD``.
        status: Review status.
        notes: Free text.
    """

    animator: str
    project_type: ProjectType
    title: str
    scene: str
    shot: str
    week_code: str
    status: RecordStatus = RecordStatus.SUBMITTED
    notes: str = ""

    model_config = {"frozen": True}

    @field_validator(*_TEXT_FIELDS, "week_code", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        # Spreadsheets and older peers send numbers for scene/shot/week.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(int(value))
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator(*_TEXT_FIELDS)
    @classmethod
    def _require_text(cls, value: str, info) -> str:
        ok, msg = validate_required_text(_FIELD_LABELS[info.field_name], value)
        if not ok:
            raise ValueError(msg)
        return value

    @field_validator("week_code")
    @classmethod
    def _check_week(cls, value: str) -> str:
        ok, msg = validate_week_code(value)
        if not ok:
            raise ValueError(msg)
        return value

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_default(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def identity_key(self) -> IdentityKey:
        """De-duplication key ``(project_type, title, scene, shot)``."""
        return (self.project_type.value, self.title, self.scene, self.shot)

    def business_fields(self) -> RecordInput:
        """Return only the business fields as a ``RecordInput``."""
        return RecordInput(
            **self.model_dump(include=set(RecordInput.model_fields))
        )


class ProductionRecord(RecordInput):
    """A record as held by one node.

    Attributes:
        id: Local surrogate id (monotonic, never reused).  ``None`` only
            for records not stored yet; ``replace_all`` assigns one.
        peer_id: Surrogate id assigned by the other node, if known.
        created_at: When the record was first stored on this node.
        updated_at: Last business-field change on this node.
        last_synced_at: Last time this version was confirmed by the peer.
    """

    id: int | None = None
    peer_id: int | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    last_synced_at: datetime | None = None

    @property
    def is_synced(self) -> bool:
        """True when the peer has seen the current version."""
        return (
            self.last_synced_at is not None
            and self.last_synced_at >= self.updated_at
        )


class SyncLogEntry(BaseModel):
    """Append-only audit record of one sync outcome.

    Attributes:
        id: Assigned by the store on append.
        direction: Direction of the pass (or notification) that acted.
        action: What was done to the record set.
        outcome: ``success`` or ``failed``.
        local_id: Local record id, when the entry concerns one record.
        peer_id: Peer record id, when known.
        error: Error detail for failed entries.
        payload: Snapshot of the record or counts involved.
        severity: ``critical`` marks a pass that needs operator attention.
        source: Component that produced the entry.
        created_at: When the entry was recorded.
    """

    id: int | None = None
    direction: SyncDirection
    action: LogAction
    outcome: LogOutcome
    local_id: int | None = None
    peer_id: int | None = None
    error: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    severity: LogSeverity = LogSeverity.INFO
    source: LogSource = LogSource.RECONCILER
    created_at: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}


def build_record_input(data: dict[str, Any]) -> RecordInput:
    """Validate *data* into a ``RecordInput``.

    Raises:
        RecordValidationError: With the first failing field and a
            readable message.
    """
    try:
        return RecordInput(**data)
    except ValidationError as exc:
        first = exc.errors()[0]
        loc = first.get("loc") or ()
        field = str(loc[0]) if loc else None
        message = first.get("msg", str(exc))
        # pydantic prefixes messages raised from validators
        message = message.removeprefix("Value error, ")
        if field and field not in message.lower():
            message = f"{field}: {message}"
        raise RecordValidationError(message, field=field) from exc
