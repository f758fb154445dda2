"""Record store contract.

Every backend implements ``RecordStore``.  Operations are synchronous and
guarded by an in-process lock; ``replace_all`` is all-or-nothing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from datetime import datetime

from ..errors import ConflictError
from ..models import (
    IdentityKey,
    ProductionRecord,
    RecordInput,
    SyncLogEntry,
)


class RecordStore(ABC):
    """Persistence abstraction for production records and the sync log."""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @abstractmethod
    def get_all(self) -> list[ProductionRecord]:
        """Return every record, most recently updated first."""

    @abstractmethod
    def get(self, record_id: int) -> ProductionRecord:
        """Return one record.

        Raises:
            NotFoundError: If *record_id* does not exist.
        """

    @abstractmethod
    def find_by_identity(self, key: IdentityKey) -> ProductionRecord | None:
        """Return the record holding identity *key*, if any."""

    @abstractmethod
    def find_by_peer_id(self, peer_id: int) -> ProductionRecord | None:
        """Return the record mapped to the peer's id *peer_id*, if any."""

    @abstractmethod
    def get_unsynced(self) -> list[ProductionRecord]:
        """Return records whose current version the peer has not seen.

        Ordered oldest change first.
        """

    # ------------------------------------------------------------------
    # Point mutations
    # ------------------------------------------------------------------

    @abstractmethod
    def insert(
        self,
        fields: RecordInput,
        *,
        peer_id: int | None = None,
        synced: bool = False,
    ) -> ProductionRecord:
        """Store a new record.

        Args:
            fields: Validated business fields.
            peer_id: The peer's id for this record, when it came from
                the peer.
            synced: Mark the new record as already known to the peer.

        Raises:
            ConflictError: If the identity key is taken.  The existing
                record is attached as ``existing``.
        """

    @abstractmethod
    def update(
        self,
        record_id: int,
        fields: RecordInput,
        *,
        peer_id: int | None = None,
        synced: bool = False,
    ) -> ProductionRecord:
        """Replace the business fields of a record.

        Raises:
            NotFoundError: If *record_id* does not exist.
            ConflictError: If the new identity key belongs to another
                record.
        """

    @abstractmethod
    def delete(self, record_id: int) -> ProductionRecord:
        """Remove a record and return what was removed.

        Raises:
            NotFoundError: If *record_id* does not exist.
        """

    @abstractmethod
    def replace_all(self, records: Sequence[ProductionRecord]) -> None:
        """Atomically replace the full record set.

        Records with ``id=None`` get a fresh id.  On any failure the
        store keeps its previous contents.

        Raises:
            ConflictError: If two records share an id or identity key.
        """

    # ------------------------------------------------------------------
    # Sync metadata
    # ------------------------------------------------------------------

    @abstractmethod
    def mark_synced(
        self,
        record_ids: Iterable[int],
        *,
        synced_at: datetime | None = None,
    ) -> None:
        """Set ``last_synced_at`` on each existing id (missing ids are skipped).

        Pass the ``updated_at`` of the version that was pushed as
        *synced_at* so a change made during the push stays unsynced.
        """

    @abstractmethod
    def assign_peer_id(self, record_id: int, peer_id: int) -> ProductionRecord:
        """Record the peer's id without touching ``updated_at``."""

    @abstractmethod
    def append_sync_log(self, entry: SyncLogEntry) -> SyncLogEntry:
        """Append *entry* and return it with its id assigned."""

    @abstractmethod
    def get_sync_log(self, limit: int | None = None) -> list[SyncLogEntry]:
        """Return log entries oldest first; the newest *limit* when given."""

    def close(self) -> None:
        """Release backend resources.  No-op by default."""


def build_replacement(
    records: Sequence[ProductionRecord], next_id: int
) -> tuple[dict[int, ProductionRecord], int]:
    """Validate a replacement set and assign ids to new records.

    Args:
        records: The full new record set.
        next_id: The store's next free id.

    Returns:
        Tuple of (records keyed by id, next free id after the set).

    Raises:
        ConflictError: On duplicate ids or identity keys.
    """
    explicit = [r.id for r in records if r.id is not None]
    if len(explicit) != len(set(explicit)):
        dupes = sorted({i for i in explicit if explicit.count(i) > 1})
        raise ConflictError(f"Duplicate record ids in replacement set: {dupes}")

    fresh = max([next_id, *(i + 1 for i in explicit)])
    by_id: dict[int, ProductionRecord] = {}
    by_key: dict[IdentityKey, ProductionRecord] = {}
    for record in records:
        if record.id is None:
            record = record.model_copy(update={"id": fresh})
            fresh += 1
        clash = by_key.get(record.identity_key)
        if clash is not None:
            raise ConflictError(
                "Duplicate identity key in replacement set: "
                + " / ".join(record.identity_key),
                existing=clash,
            )
        by_key[record.identity_key] = record
        by_id[record.id] = record
    return by_id, fresh
