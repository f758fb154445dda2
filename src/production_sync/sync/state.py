"""Persisted orchestrator status.

Stores the last run timestamps and outcome in ``sync_status.json`` under
the data directory so ``GET /sync/status`` survives restarts.

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Dict-based state** -- the status is a plain ``dict`` so the
  orchestrator can update fields freely and persist once per pass.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..file_handler import read_json, write_json_atomic

logger = logging.getLogger(__name__)

STATUS_VERSION = 1


class SyncStatusStore:
    """Load and save the orchestrator status.

    Args:
        state_dir: Directory holding ``sync_status.json``.
    """

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = Path(state_dir)

    @property
    def path(self) -> Path:
        return self._state_dir / "sync_status.json"

    def load(self) -> dict:
        """Load the status from disk.

        Returns:
            The status dict.  If the file does not exist or is unreadable
            an empty status with ``version=1`` is returned.
        """
        empty = {
            "version": STATUS_VERSION,
            "last_run_at": None,
            "last_success_at": None,
            "last_outcome": None,
            "last_error": None,
            "last_report": None,
        }
        try:
            data = read_json(self.path, default=None)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable sync status %s: %s", self.path, exc)
            return empty
        if not isinstance(data, dict):
            return empty
        return {**empty, **data}

    def save(self, status: dict) -> None:
        """Persist *status* atomically, creating the directory if needed."""
        write_json_atomic(self.path, {**status, "version": STATUS_VERSION})
