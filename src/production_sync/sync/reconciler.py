"""Reconciler: one pass of record reconciliation in an explicit direction.

Directions:

1. **pull** -- the peer's snapshot replaces local state.  Peer records
   are translated to local ids (see ``diff.translate_snapshot``), the
   differences are counted, and the store's ``replace_all`` swaps the
   whole set in one step.
2. **push** -- every locally unsynced record is created or updated on
   the peer.  Each record is committed independently; a rejected record
   is logged and the batch continues.  Transport and auth failures end
   the pass.
3. **bidirectional** -- push, then pull.  Local changes reach the peer
   first; whatever the peer holds afterwards wins.

A push create that the peer answers with 409 (it already has a record
for the identity key under its own id) is not overwritten: the peer id
is adopted and the record is logged as failed.  The next pull brings in
the peer's version; in push mode the next push updates it.

Every outcome is appended to the store's sync log.  Pass-level failures
raise ``SyncError`` with ``direction`` set after being logged.
"""

from __future__ import annotations

import logging
from typing import Any

from ..core.async_utils import run_sync
from ..core.client import PeerClient
from ..errors import (
    AuthError,
    ConflictError,
    NotFoundError,
    PartialBatchError,
    ProductionSyncError,
    SyncError,
    TransportError,
)
from ..mapper import parse_id, record_to_wire
from ..mirror import FlatFileMirror, refresh_mirror
from ..models import (
    LogAction,
    LogOutcome,
    LogSeverity,
    LogSource,
    ProductionRecord,
    SyncDirection,
    SyncLogEntry,
    utc_now,
)
from ..store.base import RecordStore
from .diff import detect_differences, translate_snapshot
from .models import SnapshotDiff, SyncReport, SyncResult, SyncTrigger

logger = logging.getLogger(__name__)


class Reconciler:
    """Run reconciliation passes between a local store and the peer.

    Args:
        store: Local record store.
        client: Peer transport.
        mirror: Flat-file mirror regenerated after a pull, if any.
    """

    def __init__(
        self,
        store: RecordStore,
        client: PeerClient,
        mirror: FlatFileMirror | None = None,
    ) -> None:
        self.store = store
        self.client = client
        self.mirror = mirror

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def run(
        self,
        direction: SyncDirection,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
    ) -> SyncReport:
        """Execute one pass.

        Args:
            direction: Which side is authoritative for this pass.
            trigger: What started the pass (recorded in the report).

        Returns:
            A ``SyncReport``.  Per-record push failures are listed in
            ``results`` and summarised in ``error`` while ``success``
            stays True.

        Raises:
            SyncError: The pass failed as a whole.  Records pushed before
                the failure stay committed.
        """
        direction = SyncDirection(direction)
        started_at = utc_now()
        logger.info("Starting %s pass (%s)", direction.value, trigger.value)

        results: list[SyncResult] = []
        diff = SnapshotDiff()
        critical = False
        try:
            if direction in (SyncDirection.PUSH, SyncDirection.BIDIRECTIONAL):
                results = await self._push(direction)
            if direction in (SyncDirection.PULL, SyncDirection.BIDIRECTIONAL):
                diff, critical = await self._pull(direction)
        except SyncError as exc:
            exc.with_direction(direction.value)
            self._log_pass_failure(direction, trigger, exc)
            raise
        except (ProductionSyncError, OSError) as exc:
            error = SyncError(
                f"{direction.value} pass failed: {exc}",
                direction=direction.value,
                cause=exc,
            )
            self._log_pass_failure(direction, trigger, error)
            raise error from exc

        failures = {
            r.local_id: r.error or "unknown error"
            for r in results
            if not r.success and r.local_id is not None
        }
        partial = (
            PartialBatchError(failures, direction=direction.value)
            if failures
            else None
        )
        if partial is not None:
            logger.warning("%s pass: %s", direction.value, partial)

        report = SyncReport(
            direction=direction,
            trigger=trigger,
            started_at=started_at.isoformat(),
            completed_at=utc_now().isoformat(),
            error=str(partial) if partial else None,
            results=results,
            added=len(diff.added),
            updated=len(diff.updated),
            removed=len(diff.removed),
            critical=critical,
        )
        logger.info(
            "Finished %s pass: %d pushed, %d added, %d updated, %d removed, %d errors",
            direction.value,
            report.pushed,
            report.added,
            report.updated,
            report.removed,
            len(report.errors),
        )
        return report

    # ------------------------------------------------------------------
    # Pull leg
    # ------------------------------------------------------------------

    async def _pull(self, direction: SyncDirection) -> tuple[SnapshotDiff, bool]:
        """Replace local state with the peer's snapshot.

        Returns:
            Tuple of (diff applied, whether local data was wiped by an
            empty snapshot).
        """
        peer_records = await run_sync(self.client.export_records)

        # No awaits from here to replace_all: the snapshot and the swap
        # see the same local state.
        synced_at = utc_now()
        local = self.store.get_all()
        translation = translate_snapshot(local, peer_records, synced_at)
        diff = detect_differences(local, translation.records)
        critical = not peer_records and bool(local)

        self.store.replace_all(translation.records)
        refresh_mirror(self.mirror, self.store)

        for peer_id, error in translation.failures:
            self._append(
                direction,
                LogAction.UPDATE,
                LogOutcome.FAILED,
                peer_id=peer_id,
                error=error,
                severity=LogSeverity.WARNING,
            )

        if critical:
            logger.critical(
                "Peer returned an empty snapshot: removed all %d local records",
                len(local),
            )
        self._append(
            direction,
            LogAction.FULL_REPLACE,
            LogOutcome.SUCCESS,
            payload={**diff.counts(), "peer_count": len(peer_records)},
            severity=LogSeverity.CRITICAL if critical else LogSeverity.INFO,
            error=(
                f"empty peer snapshot replaced {len(local)} local records"
                if critical
                else None
            ),
        )
        return diff, critical

    # ------------------------------------------------------------------
    # Push leg
    # ------------------------------------------------------------------

    async def _push(self, direction: SyncDirection) -> list[SyncResult]:
        """Push every unsynced record; see ``_push_one`` for failure rules."""
        pending = self.store.get_unsynced()
        if pending:
            logger.info("Pushing %d unsynced records", len(pending))
        results: list[SyncResult] = []
        for record in pending:
            results.append(await self._push_one(record, direction))
        return results

    async def _push_one(
        self, record: ProductionRecord, direction: SyncDirection
    ) -> SyncResult:
        """Create or update one record on the peer.

        Raises:
            TransportError: The peer is unreachable (aborts the batch).
            AuthError: The peer rejected our key (aborts the batch).
        """
        action = (
            LogAction.INSERT if record.peer_id is None else LogAction.UPDATE
        )
        payload = record_to_wire(record)
        try:
            action, stored = await self._send(record, payload)
            peer_id = parse_id(stored.get("id"))
        except (TransportError, AuthError) as exc:
            self._log_record(direction, action, record, error=str(exc))
            raise
        except ConflictError as exc:
            self._adopt_conflicting_id(record, exc)
            return self._record_failure(direction, action, record, exc)
        except (ProductionSyncError, ValueError) as exc:
            return self._record_failure(direction, action, record, exc)

        try:
            if peer_id is not None and peer_id != record.peer_id:
                self.store.assign_peer_id(record.id, peer_id)
            self.store.mark_synced([record.id], synced_at=record.updated_at)
        except NotFoundError:
            # Deleted locally while the push was in flight.
            logger.info("Record %d was deleted during push", record.id)

        self._log_record(direction, action, record, peer_id=peer_id, payload=payload)
        return SyncResult(
            direction=direction,
            action=action,
            success=True,
            local_id=record.id,
            peer_id=peer_id,
        )

    async def _send(
        self, record: ProductionRecord, payload: dict[str, Any]
    ) -> tuple[LogAction, dict[str, Any]]:
        """Create when unmapped, update otherwise; recreate if the peer lost it."""
        if record.peer_id is None:
            return LogAction.INSERT, await run_sync(
                self.client.create_record, payload
            )
        try:
            return LogAction.UPDATE, await run_sync(
                self.client.update_record, record.peer_id, payload
            )
        except NotFoundError:
            logger.info(
                "Peer record %d for local %d is gone; recreating",
                record.peer_id,
                record.id,
            )
            return LogAction.INSERT, await run_sync(
                self.client.create_record, payload
            )

    def _adopt_conflicting_id(
        self, record: ProductionRecord, exc: ConflictError
    ) -> None:
        existing = exc.existing if isinstance(exc.existing, dict) else {}
        try:
            peer_id = parse_id(existing.get("id"))
        except ProductionSyncError:
            peer_id = None
        if peer_id is None or peer_id == record.peer_id:
            return
        try:
            self.store.assign_peer_id(record.id, peer_id)
        except NotFoundError:
            return
        logger.info(
            "Peer already holds record %d as %d; mapped for the next pass",
            record.id,
            peer_id,
        )

    def _record_failure(
        self,
        direction: SyncDirection,
        action: LogAction,
        record: ProductionRecord,
        exc: Exception,
    ) -> SyncResult:
        logger.warning("Failed to push record %d: %s", record.id, exc)
        self._log_record(direction, action, record, error=str(exc))
        return SyncResult(
            direction=direction,
            action=action,
            success=False,
            local_id=record.id,
            peer_id=record.peer_id,
            error=str(exc),
        )

    # ------------------------------------------------------------------
    # Sync log helpers
    # ------------------------------------------------------------------

    def _log_record(
        self,
        direction: SyncDirection,
        action: LogAction,
        record: ProductionRecord,
        *,
        peer_id: int | None = None,
        payload: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        self._append(
            direction,
            action,
            LogOutcome.FAILED if error else LogOutcome.SUCCESS,
            local_id=record.id,
            peer_id=peer_id if peer_id is not None else record.peer_id,
            payload=payload or record_to_wire(record),
            error=error,
            severity=LogSeverity.WARNING if error else LogSeverity.INFO,
        )

    def _log_pass_failure(
        self,
        direction: SyncDirection,
        trigger: SyncTrigger,
        exc: SyncError,
    ) -> None:
        logger.error("%s pass failed: %s", direction.value, exc)
        self._append(
            direction,
            LogAction.FULL_REPLACE,
            LogOutcome.FAILED,
            error=str(exc),
            payload={"trigger": trigger.value, "retryable": exc.retryable},
            severity=LogSeverity.WARNING,
        )

    def _append(
        self,
        direction: SyncDirection,
        action: LogAction,
        outcome: LogOutcome,
        **fields: Any,
    ) -> None:
        self.store.append_sync_log(
            SyncLogEntry(
                direction=direction,
                action=action,
                outcome=outcome,
                source=LogSource.RECONCILER,
                **fields,
            )
        )
