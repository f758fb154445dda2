"""Client-facing record operations.

Every mutation follows the same path: validated fields go to the
record store (store errors propagate to the caller), the mirror is
regenerated, the change is sent to the peer, and an on-mutation
reconciliation pass runs.  The outcome of the sync part is reported as
metadata in ``MutationResult.sync_status`` and never fails the
mutation itself.
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel

from .errors import BusyError, NotFoundError, RecordValidationError
from .mirror import FlatFileMirror, refresh_mirror
from .models import ProductionRecord, RecordInput
from .store.base import RecordStore
from .sync.notifier import ChangeNotifier
from .sync.orchestrator import SyncOrchestrator
from .validators import validate_week_code

logger = logging.getLogger(__name__)


class SyncOutcome(str, Enum):
    """What happened to the sync part of a mutation."""

    COMPLETED = "completed"
    FAILED = "failed"
    BUSY = "busy"
    DISABLED = "disabled"


class MutationResult(BaseModel):
    """Result of a client mutation.

    Attributes:
        record: The stored record (the removed one for deletes).
        sync_status: Outcome of the on-mutation pass.
        sync_error: Error of a failed pass.
    """

    record: ProductionRecord
    sync_status: SyncOutcome
    sync_error: str | None = None

    model_config = {"frozen": True}


class RecordService:
    """CRUD for the data-entry frontend.

    Args:
        store: Local record store.
        mirror: Flat-file mirror, if configured.
        notifier: Change fan-out, ``None`` when no peer is configured or
            notifications are off.
        orchestrator: Runs the on-mutation pass; ``None`` disables it.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        mirror: FlatFileMirror | None = None,
        notifier: ChangeNotifier | None = None,
        orchestrator: SyncOrchestrator | None = None,
    ) -> None:
        self.store = store
        self.mirror = mirror
        self.notifier = notifier
        self.orchestrator = orchestrator

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_records(self) -> list[ProductionRecord]:
        return self.store.get_all()

    def get_record(self, record_id: int) -> ProductionRecord:
        return self.store.get(record_id)

    def records_for_week(self, week_code: str) -> list[ProductionRecord]:
        """Records submitted for the week starting on Monday *week_code*.

        Raises:
            RecordValidationError: If *week_code* is not a Monday code.
        """
        ok, msg = validate_week_code(week_code)
        if not ok:
            raise RecordValidationError(msg, field="week_code")
        return [r for r in self.store.get_all() if r.week_code == week_code]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(self, fields: RecordInput) -> MutationResult:
        """Insert a record.

        Raises:
            ConflictError: The identity key is taken; the existing
                record is left unchanged.
        """
        record = self.store.insert(fields)
        logger.info("Created record %d", record.id)
        return await self._after_mutation("create", record)

    async def update(self, record_id: int, fields: RecordInput) -> MutationResult:
        """Replace a record's business fields.

        Raises:
            NotFoundError: *record_id* does not exist.
            ConflictError: The new identity key belongs to another record.
        """
        record = self.store.update(record_id, fields)
        logger.info("Updated record %d", record_id)
        return await self._after_mutation("update", record)

    async def delete(self, record_id: int) -> MutationResult:
        """Delete a record.

        Raises:
            NotFoundError: *record_id* does not exist.
        """
        record = self.store.delete(record_id)
        logger.info("Deleted record %d", record_id)
        return await self._after_mutation("delete", record)

    async def _after_mutation(
        self, action: str, record: ProductionRecord
    ) -> MutationResult:
        refresh_mirror(self.mirror, self.store)

        notification = None
        if self.notifier is not None:
            notification = self.notifier.schedule(action, record)

        if self.orchestrator is None:
            return MutationResult(
                record=self._current(action, record),
                sync_status=SyncOutcome.DISABLED,
            )

        # The pass pulls the peer's snapshot: the change has to reach
        # the peer first or a delete would come straight back.
        if notification is not None:
            await notification

        try:
            report = await self.orchestrator.on_mutation()
        except BusyError as exc:
            return MutationResult(
                record=self._current(action, record),
                sync_status=SyncOutcome.BUSY,
                sync_error=str(exc),
            )
        if not report.success:
            return MutationResult(
                record=self._current(action, record),
                sync_status=SyncOutcome.FAILED,
                sync_error=report.error,
            )
        return MutationResult(
            record=self._current(action, record),
            sync_status=SyncOutcome.COMPLETED,
        )

    def _current(self, action: str, record: ProductionRecord) -> ProductionRecord:
        """Stored version of *record* after notification and pass.

        These may have set the peer id and sync time.  Deleted records,
        and records a pull has since removed, are returned as given.
        """
        if action == "delete":
            return record
        try:
            return self.store.get(record.id)
        except NotFoundError:
            return record

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def import_from_mirror(self) -> int:
        """Replace the store's records with the mirror's rows.

        Used when the spreadsheet is the authority at bootstrap.  Rows
        matching an existing record by identity key keep its id, peer id
        and creation time; every imported record is unsynced.

        Returns:
            Number of records imported.

        Raises:
            ValueError: No mirror is configured.
            RecordValidationError: A row is invalid (the store is left
                unchanged).
            ConflictError: Two rows share an identity key.
        """
        if self.mirror is None:
            raise ValueError("No mirror configured. Set MIRROR_PATH.")
        rows = self.mirror.read()
        current = {r.identity_key: r for r in self.store.get_all()}

        records: list[ProductionRecord] = []
        for fields in rows:
            match = current.get(fields.identity_key)
            if match is not None:
                records.append(
                    match.model_copy(
                        update={
                            **fields.model_dump(),
                            "last_synced_at": None,
                        }
                    )
                )
            else:
                records.append(ProductionRecord(**fields.model_dump()))

        self.store.replace_all(records)
        logger.info("Imported %d records from %s", len(records), self.mirror.path)
        return len(records)
