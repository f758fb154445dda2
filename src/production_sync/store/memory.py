"""In-memory record store.

State lives in a dict of frozen records.  Every mutation builds a new
dict and swaps the reference in ``_commit()``, so a reader holding the
old dict never observes a half-applied change and a failure before the
swap leaves the store untouched.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Sequence
from datetime import datetime

from ..errors import ConflictError, NotFoundError
from ..models import (
    IdentityKey,
    ProductionRecord,
    RecordInput,
    SyncLogEntry,
    utc_now,
)
from .base import RecordStore, build_replacement

logger = logging.getLogger(__name__)


class InMemoryRecordStore(RecordStore):
    """Thread-safe record store held entirely in memory.

    Args:
        records: Initial records (must carry ids).
        log: Initial sync log entries.
    """

    def __init__(
        self,
        records: Iterable[ProductionRecord] = (),
        log: Iterable[SyncLogEntry] = (),
    ) -> None:
        self._lock = threading.RLock()
        self._records: dict[int, ProductionRecord] = {
            r.id: r for r in records if r.id is not None
        }
        self._next_id = max(self._records, default=0) + 1
        self._log: list[SyncLogEntry] = list(log)
        self._next_log_id = (
            max((e.id or 0 for e in self._log), default=0) + 1
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_all(self) -> list[ProductionRecord]:
        with self._lock:
            records = list(self._records.values())
        return sorted(
            records, key=lambda r: (r.updated_at, r.id), reverse=True
        )

    def get(self, record_id: int) -> ProductionRecord:
        with self._lock:
            record = self._records.get(record_id)
        if record is None:
            raise NotFoundError(
                f"Record {record_id} not found", record_id=record_id
            )
        return record

    def find_by_identity(self, key: IdentityKey) -> ProductionRecord | None:
        with self._lock:
            return self._find_identity(key)

    def find_by_peer_id(self, peer_id: int) -> ProductionRecord | None:
        with self._lock:
            for record in self._records.values():
                if record.peer_id == peer_id:
                    return record
        return None

    def get_unsynced(self) -> list[ProductionRecord]:
        with self._lock:
            pending = [r for r in self._records.values() if not r.is_synced]
        return sorted(pending, key=lambda r: (r.updated_at, r.id))

    # ------------------------------------------------------------------
    # Point mutations
    # ------------------------------------------------------------------

    def insert(
        self,
        fields: RecordInput,
        *,
        peer_id: int | None = None,
        synced: bool = False,
    ) -> ProductionRecord:
        with self._lock:
            existing = self._find_identity(fields.identity_key)
            if existing is not None:
                raise ConflictError(
                    "A record already exists for "
                    + " / ".join(fields.identity_key),
                    existing=existing,
                )
            now = utc_now()
            record = ProductionRecord(
                **fields.business_fields().model_dump(),
                id=self._next_id,
                peer_id=peer_id,
                created_at=now,
                updated_at=now,
                last_synced_at=now if synced else None,
            )
            records = dict(self._records)
            records[record.id] = record
            self._commit(records, self._next_id + 1)
        logger.debug("Inserted record %d", record.id)
        return record

    def update(
        self,
        record_id: int,
        fields: RecordInput,
        *,
        peer_id: int | None = None,
        synced: bool = False,
    ) -> ProductionRecord:
        with self._lock:
            current = self.get(record_id)
            clash = self._find_identity(fields.identity_key)
            if clash is not None and clash.id != record_id:
                raise ConflictError(
                    "Another record already exists for "
                    + " / ".join(fields.identity_key),
                    existing=clash,
                )
            now = utc_now()
            changes = {**fields.business_fields().model_dump(), "updated_at": now}
            if peer_id is not None:
                changes["peer_id"] = peer_id
            if synced:
                changes["last_synced_at"] = now
            record = current.model_copy(update=changes)
            records = dict(self._records)
            records[record_id] = record
            self._commit(records, self._next_id)
        logger.debug("Updated record %d", record_id)
        return record

    def delete(self, record_id: int) -> ProductionRecord:
        with self._lock:
            removed = self.get(record_id)
            records = dict(self._records)
            del records[record_id]
            self._commit(records, self._next_id)
        logger.debug("Deleted record %d", record_id)
        return removed

    def replace_all(self, records: Sequence[ProductionRecord]) -> None:
        with self._lock:
            replacement, next_id = build_replacement(records, self._next_id)
            self._commit(replacement, next_id)
        logger.info("Replaced record set: %d records", len(replacement))

    # ------------------------------------------------------------------
    # Sync metadata
    # ------------------------------------------------------------------

    def mark_synced(
        self,
        record_ids: Iterable[int],
        *,
        synced_at: datetime | None = None,
    ) -> None:
        stamp = synced_at or utc_now()
        with self._lock:
            records = dict(self._records)
            changed = False
            for record_id in record_ids:
                record = records.get(record_id)
                if record is None:
                    continue
                records[record_id] = record.model_copy(
                    update={"last_synced_at": stamp}
                )
                changed = True
            if changed:
                self._commit(records, self._next_id)

    def assign_peer_id(self, record_id: int, peer_id: int) -> ProductionRecord:
        with self._lock:
            record = self.get(record_id).model_copy(update={"peer_id": peer_id})
            records = dict(self._records)
            records[record_id] = record
            self._commit(records, self._next_id)
        return record

    def append_sync_log(self, entry: SyncLogEntry) -> SyncLogEntry:
        with self._lock:
            stored = entry.model_copy(update={"id": self._next_log_id})
            self._persist_log_entry(stored)
            self._log.append(stored)
            self._next_log_id += 1
        return stored

    def get_sync_log(self, limit: int | None = None) -> list[SyncLogEntry]:
        with self._lock:
            entries = list(self._log)
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _find_identity(self, key: IdentityKey) -> ProductionRecord | None:
        for record in self._records.values():
            if record.identity_key == key:
                return record
        return None

    def _commit(self, records: dict[int, ProductionRecord], next_id: int) -> None:
        """Swap in a fully built record set.  Called with the lock held."""
        self._records = records
        self._next_id = next_id

    def _persist_log_entry(self, entry: SyncLogEntry) -> None:
        """Hook for durable backends; the in-memory log needs nothing."""
