"""Error taxonomy shared by the store, the peer client and the sync layer.

Hierarchy::

    ProductionSyncError
    ├── RecordValidationError   (also a ValueError)
    ├── ConflictError           identity-key collision
    ├── NotFoundError           operation on a missing id
    ├── BusyError               a reconciliation pass is already running
    └── SyncError               pass-level failure (direction + cause)
        ├── TransportError      peer unreachable / timeout (retryable)
        ├── AuthError           bad or missing shared secret
        └── PartialBatchError   some records in a batch failed

Store errors propagate to the caller.  ``SyncError`` and subclasses are
raised by the reconciler and caught by the orchestrator, which records
them in the sync status instead of re-raising.
"""

from __future__ import annotations

from typing import Any


class ProductionSyncError(Exception):
    """Base class for every error raised by this package."""


class RecordValidationError(ProductionSyncError, ValueError):
    """A record payload failed validation.

    Attributes:
        field: Name of the offending attribute, when known.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class ConflictError(ProductionSyncError):
    """A record with the same identity key already exists.

    Attributes:
        existing: The record already holding the key.  A
            ``ProductionRecord`` when raised by a store, the peer's wire
            dict when raised by the peer client.
    """

    def __init__(self, message: str, existing: Any = None) -> None:
        super().__init__(message)
        self.existing = existing


class NotFoundError(ProductionSyncError):
    """The requested record id does not exist."""

    def __init__(self, message: str, record_id: int | None = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class BusyError(ProductionSyncError):
    """A reconciliation pass is already running and the wait bound expired."""


class SyncError(ProductionSyncError):
    """A reconciliation pass (or one peer call inside it) failed.

    Attributes:
        direction: The pass direction (``pull``, ``push`` or
            ``bidirectional``) when known.
        cause: The underlying exception, if any.
        retryable: Whether retrying the same call may succeed.
    """

    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        direction: str | None = None,
        cause: BaseException | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.direction = direction
        self.cause = cause
        self.retryable = (
            self.default_retryable if retryable is None else retryable
        )

    def with_direction(self, direction: str) -> SyncError:
        """Stamp *direction* onto the error if it has none yet."""
        if self.direction is None:
            self.direction = direction
        return self


class TransportError(SyncError):
    """The peer could not be reached or did not answer in time."""

    default_retryable = True


class AuthError(SyncError):
    """The peer rejected the shared secret (401/403)."""


class PartialBatchError(SyncError):
    """Some records in a push batch failed while the rest succeeded.

    Attributes:
        failures: Mapping of local record id to error message.
    """

    def __init__(
        self,
        failures: dict[int, str],
        *,
        direction: str | None = None,
    ) -> None:
        ids = ", ".join(str(i) for i in sorted(failures))
        super().__init__(
            f"{len(failures)} record(s) failed to sync: {ids}",
            direction=direction,
        )
        self.failures = dict(failures)
