"""Record reconciliation between two production-sync nodes.

Architecture
------------
Each pass runs in one explicit direction.  In **pull** the peer's
snapshot replaces local state wholesale; in **push** every unsynced
local record is sent to the peer and committed one by one;
**bidirectional** pushes and then pulls, so local edits reach the peer
before the peer's state wins.

Modules:

- ``reconciler``   -- ``Reconciler``: one pass in one direction.
- ``diff``         -- peer snapshot translation and difference counts.
- ``orchestrator`` -- ``SyncOrchestrator``: single-flight scheduling of
  startup, timer, mutation and manual passes.
- ``retry``        -- ``RetryPolicy``: bounded startup retries.
- ``state``        -- ``SyncStatusStore``: persisted orchestrator status.
- ``notifier``     -- ``ChangeNotifier``: per-change fan-out to the peer.
- ``inbound``      -- ``InboundChanges``: applies the peer's changes.
- ``models``       -- ``SyncTrigger``, ``SyncState``, ``SnapshotDiff``,
  ``SyncResult``, ``SyncReport``.
- ``reporter``     -- human-readable and JSON report formatting.

Usage example
-------------
::

    from production_sync.core.client import PeerClient
    from production_sync.models import SyncDirection
    from production_sync.store import InMemoryRecordStore
    from production_sync.sync import Reconciler, format_sync_report

    reconciler = Reconciler(InMemoryRecordStore(), PeerClient(config))
    report = await reconciler.run(SyncDirection.BIDIRECTIONAL)
    print(format_sync_report(report))
"""

from .diff import detect_differences, translate_snapshot
from .inbound import InboundChanges
from .models import SnapshotDiff, SyncReport, SyncResult, SyncState, SyncTrigger
from .notifier import ChangeNotifier
from .orchestrator import SyncOrchestrator
from .reconciler import Reconciler
from .reporter import format_sync_log, format_sync_report, report_to_json
from .retry import RetryPolicy
from .state import SyncStatusStore

__all__ = [
    "ChangeNotifier",
    "InboundChanges",
    "Reconciler",
    "RetryPolicy",
    "SnapshotDiff",
    "SyncOrchestrator",
    "SyncReport",
    "SyncResult",
    "SyncState",
    "SyncStatusStore",
    "SyncTrigger",
    "detect_differences",
    "format_sync_log",
    "format_sync_report",
    "report_to_json",
    "translate_snapshot",
]
