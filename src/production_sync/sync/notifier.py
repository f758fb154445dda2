"""Notification fan-out: push one local change to the peer right away.

After a client mutation the service calls ``schedule()``, which sends
the single changed record to the peer's ``/sync/apply`` endpoint in a
background task.  Failures are logged and written to the sync log with
``source=notification``; they never reach the caller.  The next
reconciliation pass covers anything a failed notification missed.
"""

from __future__ import annotations

import asyncio
import logging

from ..core.async_utils import run_sync_limited
from ..core.client import PeerClient
from ..errors import NotFoundError, ProductionSyncError, RecordValidationError
from ..mapper import parse_id, record_to_wire
from ..models import (
    LogAction,
    LogOutcome,
    LogSeverity,
    LogSource,
    ProductionRecord,
    SyncDirection,
    SyncLogEntry,
)
from ..store.base import RecordStore

logger = logging.getLogger(__name__)

_LOG_ACTIONS = {
    "create": LogAction.INSERT,
    "update": LogAction.UPDATE,
    "delete": LogAction.DELETE,
}


class ChangeNotifier:
    """Fire-and-forget change notifications to the peer.

    Args:
        store: Local store (for the sync log).
        client: Peer transport.
    """

    def __init__(self, store: RecordStore, client: PeerClient) -> None:
        self.store = store
        self.client = client
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def notify(self, action: str, record: ProductionRecord) -> bool:
        """Send one change and return whether the peer accepted it.

        Never raises for peer or validation failures.
        """
        log_action = _LOG_ACTIONS[action]
        payload = record_to_wire(record)
        try:
            body = await run_sync_limited(
                self.client.apply_change, action, payload
            )
        except (ProductionSyncError, ValueError) as exc:
            logger.warning(
                "Change notification (%s #%s) failed: %s", action, record.id, exc
            )
            self.store.append_sync_log(
                SyncLogEntry(
                    direction=SyncDirection.PUSH,
                    action=log_action,
                    outcome=LogOutcome.FAILED,
                    local_id=record.id,
                    peer_id=record.peer_id,
                    error=str(exc),
                    payload=payload,
                    severity=LogSeverity.WARNING,
                    source=LogSource.NOTIFICATION,
                )
            )
            return False

        peer_id = self._confirm(action, record, body.get("data"))
        logger.debug("Notified peer of %s #%s", action, record.id)
        self.store.append_sync_log(
            SyncLogEntry(
                direction=SyncDirection.PUSH,
                action=log_action,
                outcome=LogOutcome.SUCCESS,
                local_id=record.id,
                peer_id=peer_id,
                payload=payload,
                source=LogSource.NOTIFICATION,
            )
        )
        return True

    def _confirm(
        self, action: str, record: ProductionRecord, data: object
    ) -> int | None:
        """Adopt the peer id from the reply and mark the sent version synced."""
        if action == "delete" or not isinstance(data, dict):
            return record.peer_id
        try:
            peer_id = parse_id(data.get("id"))
            if peer_id is not None and peer_id != record.peer_id:
                self.store.assign_peer_id(record.id, peer_id)
            self.store.mark_synced([record.id], synced_at=record.updated_at)
        except NotFoundError:
            # Deleted locally while the notification was in flight.
            return record.peer_id
        except RecordValidationError as exc:
            logger.warning("Peer reply for #%s had a bad id: %s", record.id, exc)
            return record.peer_id
        return peer_id if peer_id is not None else record.peer_id

    def schedule(self, action: str, record: ProductionRecord) -> asyncio.Task:
        """Run ``notify()`` as a tracked background task."""
        if action not in _LOG_ACTIONS:
            raise ValueError(f"Invalid change action '{action}'")
        task = asyncio.create_task(self.notify(action, record))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every outstanding notification."""
        if self._tasks:
            logger.info("Waiting for %d change notifications", len(self._tasks))
            await asyncio.gather(*self._tasks, return_exceptions=True)
