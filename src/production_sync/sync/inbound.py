"""Receiving side of the peer protocol.

Applies changes sent by the other node (``POST /records``,
``PUT|DELETE /records/{id}``, ``POST /sync/apply``) and serves the
snapshot for its pull leg (``GET /records/export``).

Records written here are stored as already synced, because the sender
holds the same version.  Inbound writes regenerate the mirror but never
notify the peer back or start a reconciliation pass.
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import ConflictError, NotFoundError, ProductionSyncError
from ..mapper import parse_id, record_from_wire, record_to_wire
from ..mirror import FlatFileMirror, refresh_mirror
from ..models import (
    LogAction,
    LogOutcome,
    LogSeverity,
    LogSource,
    ProductionRecord,
    RecordInput,
    SyncDirection,
    SyncLogEntry,
)
from ..store.base import RecordStore

logger = logging.getLogger(__name__)

APPLY_ACTIONS = ("create", "update", "delete")


class InboundChanges:
    """Apply the peer's changes to the local store.

    Args:
        store: Local record store.
        mirror: Flat-file mirror regenerated after each write, if any.
    """

    def __init__(
        self, store: RecordStore, mirror: FlatFileMirror | None = None
    ) -> None:
        self.store = store
        self.mirror = mirror

    def export_snapshot(self) -> list[dict[str, Any]]:
        """Every local record in wire form."""
        return [record_to_wire(r) for r in self.store.get_all()]

    # ------------------------------------------------------------------
    # Record endpoints
    # ------------------------------------------------------------------

    def create(self, payload: dict[str, Any]) -> ProductionRecord:
        """Store a record created on the peer.

        A repeated create for a sender record we already hold (same
        ``payload['id']``) updates it instead.

        Raises:
            RecordValidationError: Invalid payload.
            ConflictError: Another record holds the identity key.
        """
        fields = record_from_wire(payload)
        sender_id = parse_id(payload.get("id"))
        known = (
            self.store.find_by_peer_id(sender_id)
            if sender_id is not None
            else None
        )
        if known is not None:
            logger.info("Peer re-sent record %d; updating #%d", sender_id, known.id)
            return self._write(LogAction.UPDATE, known.id, fields, sender_id)
        return self._write(LogAction.INSERT, None, fields, sender_id)

    def update(self, record_id: int, payload: dict[str, Any]) -> ProductionRecord:
        """Overwrite local record *record_id* with the peer's version.

        Raises:
            RecordValidationError: Invalid payload.
            NotFoundError: *record_id* does not exist.
            ConflictError: The new identity key belongs to another record.
        """
        fields = record_from_wire(payload)
        sender_id = parse_id(payload.get("id"))
        return self._write(LogAction.UPDATE, record_id, fields, sender_id)

    def delete(self, record_id: int) -> ProductionRecord | None:
        """Delete *record_id*; a missing id is a successful no-op."""
        try:
            removed = self.store.delete(record_id)
        except NotFoundError:
            logger.debug("Peer deleted #%d which is already gone", record_id)
            return None
        self._log(LogAction.DELETE, removed)
        refresh_mirror(self.mirror, self.store)
        return removed

    # ------------------------------------------------------------------
    # Change notifications
    # ------------------------------------------------------------------

    def apply(
        self, action: str, data: dict[str, Any]
    ) -> ProductionRecord | None:
        """Apply one change notification.

        The target is resolved by our id as the sender knows it
        (``data['peer_id']``), then by the sender's id, then by identity
        key.  ``create`` and ``update`` upsert; ``delete`` is idempotent.

        Returns:
            The stored (or removed) record, ``None`` when a delete found
            nothing.

        Raises:
            ValueError: Unknown action.
            RecordValidationError: Invalid payload for create/update.
            ConflictError: An upsert collided with another record's key.
        """
        if action not in APPLY_ACTIONS:
            raise ValueError(
                f"Invalid action '{action}': must be one of {', '.join(APPLY_ACTIONS)}"
            )
        sender_id = parse_id(data.get("id"))
        if action == "delete":
            target = self._resolve(data, sender_id, None)
            return self.delete(target.id) if target is not None else None

        fields = record_from_wire(data)
        target = self._resolve(data, sender_id, fields)
        if target is None:
            return self._write(LogAction.INSERT, None, fields, sender_id)
        return self._write(LogAction.UPDATE, target.id, fields, sender_id)

    def _resolve(
        self,
        data: dict[str, Any],
        sender_id: int | None,
        fields: RecordInput | None,
    ) -> ProductionRecord | None:
        local_id = parse_id(data.get("peer_id"), field="peer_id")
        if local_id is not None:
            try:
                return self.store.get(local_id)
            except NotFoundError:
                pass
        if sender_id is not None:
            found = self.store.find_by_peer_id(sender_id)
            if found is not None:
                return found
        if fields is None:
            try:
                fields = record_from_wire(data)
            except ProductionSyncError:
                return None
        return self.store.find_by_identity(fields.identity_key)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _write(
        self,
        action: LogAction,
        record_id: int | None,
        fields: RecordInput,
        sender_id: int | None,
    ) -> ProductionRecord:
        try:
            if record_id is None:
                record = self.store.insert(fields, peer_id=sender_id, synced=True)
            else:
                record = self.store.update(
                    record_id, fields, peer_id=sender_id, synced=True
                )
        except ConflictError as exc:
            logger.warning("Rejected inbound %s: %s", action.value, exc)
            self.store.append_sync_log(
                SyncLogEntry(
                    direction=SyncDirection.PULL,
                    action=action,
                    outcome=LogOutcome.FAILED,
                    local_id=record_id,
                    peer_id=sender_id,
                    error=str(exc),
                    severity=LogSeverity.WARNING,
                    source=LogSource.INBOUND,
                )
            )
            raise
        self._log(action, record)
        refresh_mirror(self.mirror, self.store)
        return record

    def _log(self, action: LogAction, record: ProductionRecord) -> None:
        self.store.append_sync_log(
            SyncLogEntry(
                direction=SyncDirection.PULL,
                action=action,
                outcome=LogOutcome.SUCCESS,
                local_id=record.id,
                peer_id=record.peer_id,
                payload=record_to_wire(record),
                source=LogSource.INBOUND,
            )
        )
