"""Pydantic models for reconciliation passes.

Defines the data contracts used across the sync modules:

- ``SyncTrigger``: What started a pass.
- ``SyncState``: Orchestrator state machine values.
- ``SnapshotDiff``: Added/updated/removed records between two snapshots.
- ``SyncResult``: Outcome of syncing one record.
- ``SyncReport``: Aggregate results for one pass.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from ..models import LogAction, ProductionRecord, SyncDirection


class SyncTrigger(str, Enum):
    """What started a reconciliation pass."""

    STARTUP = "startup"
    TIMER = "timer"
    MUTATION = "mutation"
    MANUAL = "manual"


class SyncState(str, Enum):
    """Orchestrator state for the current (or last) pass."""

    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SnapshotDiff(BaseModel):
    """Differences between the local set and an incoming snapshot.

    Attributes:
        added: Incoming records with no local counterpart.
        updated: Incoming records whose local counterpart differs.
        removed: Local records absent from the snapshot.
        unchanged: Number of records identical on both sides.
    """

    added: list[ProductionRecord] = []
    updated: list[ProductionRecord] = []
    removed: list[ProductionRecord] = []
    unchanged: int = 0

    model_config = {"frozen": True}

    @property
    def total_changes(self) -> int:
        return len(self.added) + len(self.updated) + len(self.removed)

    def counts(self) -> dict[str, int]:
        return {
            "added": len(self.added),
            "updated": len(self.updated),
            "removed": len(self.removed),
            "unchanged": self.unchanged,
        }


class SyncResult(BaseModel):
    """Result of syncing one record.

    Attributes:
        direction: Leg of the pass that produced the result.
        action: ``insert`` for a peer create, ``update`` for a peer update.
        success: Whether the peer accepted the record.
        local_id: Local record id.
        peer_id: Peer record id, when known.
        error: Error message if the operation failed.
    """

    direction: SyncDirection
    action: LogAction
    success: bool
    local_id: int | None = None
    peer_id: int | None = None
    error: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for one reconciliation pass.

    Attributes:
        direction: Direction the pass ran in.
        trigger: What started the pass.
        started_at: ISO 8601 timestamp when the pass started.
        completed_at: ISO 8601 timestamp when it finished.
        success: False when the pass failed as a whole.
        error: Pass-level error message.
        results: Per-record push results.
        added: Records added locally by the pull leg.
        updated: Records updated locally by the pull leg.
        removed: Records removed locally by the pull leg.
        critical: True when the pull leg wiped local data with an empty
            peer snapshot.
    """

    direction: SyncDirection
    trigger: SyncTrigger = SyncTrigger.MANUAL
    started_at: str
    completed_at: str | None = None
    success: bool = True
    error: str | None = None
    results: list[SyncResult] = []
    added: int = 0
    updated: int = 0
    removed: int = 0
    critical: bool = False

    model_config = {"frozen": True}

    @property
    def created_remote(self) -> list[SyncResult]:
        """Successful peer creates."""
        return [
            r
            for r in self.results
            if r.success and r.action == LogAction.INSERT
        ]

    @property
    def updated_remote(self) -> list[SyncResult]:
        """Successful peer updates."""
        return [
            r
            for r in self.results
            if r.success and r.action == LogAction.UPDATE
        ]

    @property
    def errors(self) -> list[SyncResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def pushed(self) -> int:
        return len(self.created_remote) + len(self.updated_remote)
