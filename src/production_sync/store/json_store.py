"""JSON-file record store.

Persists the in-memory store to ``<data_dir>/records.json`` and appends
sync log entries to ``<data_dir>/sync_log.jsonl``.

Key design choices:

* **Write, then swap** -- ``_commit()`` writes the new snapshot to disk
  (temp file + ``os.replace()``) before swapping the in-memory
  reference.  A failed write raises and leaves both disk and memory as
  they were.
* **Append-only log** -- log entries are one JSON object per line and
  are never rewritten.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..file_handler import (
    append_json_line,
    read_json,
    read_json_lines,
    write_json_atomic,
)
from ..models import ProductionRecord, SyncLogEntry
from .memory import InMemoryRecordStore

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class JsonRecordStore(InMemoryRecordStore):
    """Record store persisted as a JSON snapshot plus a JSON-lines log.

    Args:
        data_dir: Directory holding ``records.json`` and ``sync_log.jsonl``.
            Created on first write.
    """

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = Path(data_dir)
        snapshot = read_json(self.records_path, default=None) or {}
        records = [
            ProductionRecord.model_validate(item)
            for item in snapshot.get("records", [])
        ]
        log = [
            SyncLogEntry.model_validate(item)
            for item in read_json_lines(self.log_path)
        ]
        super().__init__(records, log)
        # A deleted highest id must not be handed out again after a restart.
        self._next_id = max(self._next_id, int(snapshot.get("next_id", 1)))
        logger.info(
            "Loaded %d records and %d log entries from %s",
            len(records),
            len(log),
            self._data_dir,
        )

    @property
    def records_path(self) -> Path:
        return self._data_dir / "records.json"

    @property
    def log_path(self) -> Path:
        return self._data_dir / "sync_log.jsonl"

    def _commit(self, records: dict[int, ProductionRecord], next_id: int) -> None:
        write_json_atomic(
            self.records_path,
            {
                "version": SNAPSHOT_VERSION,
                "next_id": next_id,
                "records": [
                    r.model_dump(mode="json")
                    for r in sorted(records.values(), key=lambda r: r.id)
                ],
            },
        )
        super()._commit(records, next_id)

    def _persist_log_entry(self, entry: SyncLogEntry) -> None:
        append_json_line(self.log_path, entry.model_dump(mode="json"))
