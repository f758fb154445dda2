"""Sync orchestrator: decides when reconciliation passes run.

Triggers:

- **startup** -- once at boot, retried per ``RetryPolicy``; after the
  burst a single deferred attempt runs in the background.
- **timer**   -- every ``sync_interval_minutes``; dropped while a pass
  is running.
- **mutation** -- after a client edit, via ``on_mutation()``.
- **manual**  -- operator request.

At most one pass runs at a time (``asyncio.Lock``).  Mutation and
manual triggers wait up to ``busy_wait_seconds`` for the lock and then
raise ``BusyError``.  Reconciler failures are caught here, recorded in
the status and returned as a failed ``SyncReport``; they never
propagate to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any

from ..errors import BusyError, SyncError
from ..models import SyncDirection, utc_now
from .models import SyncReport, SyncState, SyncTrigger
from .reconciler import Reconciler
from .reporter import report_to_json
from .retry import RetryPolicy
from .state import SyncStatusStore

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Single-flight scheduler around a ``Reconciler``.

    Args:
        reconciler: Runs the passes.
        direction: Configured direction for startup, timer and manual
            passes.
        interval_seconds: Timer period; ``None`` disables the timer.
        busy_wait_seconds: How long mutation and manual triggers wait
            for a running pass.
        retry_policy: Startup retry schedule.
        status_store: Persists the status across restarts, if given.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        direction: SyncDirection = SyncDirection.PULL,
        *,
        interval_seconds: float | None = 300.0,
        busy_wait_seconds: float = 1.0,
        retry_policy: RetryPolicy | None = None,
        status_store: SyncStatusStore | None = None,
    ) -> None:
        self.reconciler = reconciler
        self.direction = SyncDirection(direction)
        self.interval_seconds = interval_seconds
        self.busy_wait_seconds = busy_wait_seconds
        self.retry_policy = retry_policy or RetryPolicy()
        self.status_store = status_store

        self._lock = asyncio.Lock()
        self._state = SyncState.IDLE
        self._timer_task: asyncio.Task | None = None
        self._deferred_task: asyncio.Task | None = None
        self._next_run_at: datetime | None = None
        self._status = (
            status_store.load()
            if status_store is not None
            else {
                "last_run_at": None,
                "last_success_at": None,
                "last_outcome": None,
                "last_error": None,
                "last_report": None,
            }
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def next_run_at(self) -> datetime | None:
        return self._next_run_at

    def status(self) -> dict[str, Any]:
        """Snapshot of the orchestrator for ``GET /sync/status``."""
        return {
            **self._status,
            "state": self._state.value,
            "direction": self.direction.value,
            "running": self.is_running,
            "interval_seconds": self.interval_seconds,
            "next_run_at": (
                self._next_run_at.isoformat() if self._next_run_at else None
            ),
        }

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def trigger(
        self,
        trigger: SyncTrigger,
        direction: SyncDirection | None = None,
    ) -> SyncReport | None:
        """Run one pass for *trigger*.

        Args:
            trigger: What is asking for the pass.
            direction: Overrides the configured direction.

        Returns:
            The report, or ``None`` when a timer tick was dropped
            because a pass was already running.

        Raises:
            BusyError: A mutation or manual trigger could not get the
                lock within ``busy_wait_seconds``.
        """
        direction = SyncDirection(direction or self.direction)
        if trigger == SyncTrigger.TIMER:
            if self._lock.locked():
                logger.info("Sync already running; skipping timer pass")
                return None
            await self._lock.acquire()
        else:
            try:
                await asyncio.wait_for(
                    self._lock.acquire(), timeout=self.busy_wait_seconds
                )
            except asyncio.TimeoutError:
                logger.info(
                    "Sync busy; rejecting %s trigger after %.1fs",
                    trigger.value,
                    self.busy_wait_seconds,
                )
                raise BusyError(
                    "A sync pass is already running; try again shortly"
                ) from None

        try:
            report, _ = await self._run_locked(direction, trigger)
            return report
        finally:
            self._lock.release()

    async def run_once(
        self, direction: SyncDirection | None = None
    ) -> SyncReport:
        """Manual pass (may raise ``BusyError``)."""
        return self._required(await self.trigger(SyncTrigger.MANUAL, direction))

    async def on_mutation(self) -> SyncReport:
        """Bidirectional pass after a client edit (may raise ``BusyError``)."""
        return self._required(
            await self.trigger(SyncTrigger.MUTATION, SyncDirection.BIDIRECTIONAL)
        )

    @staticmethod
    def _required(report: SyncReport | None) -> SyncReport:
        # Only timer triggers drop a pass
        if report is None:
            raise RuntimeError("Sync pass was skipped unexpectedly")
        return report

    async def run_startup(self) -> SyncReport:
        """Startup pass with bounded retry.

        Retryable failures are retried per the policy.  If the burst
        ends in failure a single deferred attempt is scheduled in the
        background; until then the node runs on local data.
        """
        attempt = 1
        while True:
            report, error = await asyncio.shield(self._startup_pass())
            if report.success:
                return report
            if error is None or not self.retry_policy.should_retry(attempt, error):
                break
            delay = self.retry_policy.delay_for(attempt)
            logger.warning(
                "Startup sync attempt %d/%d failed; retrying in %.1fs",
                attempt,
                self.retry_policy.max_attempts,
                delay,
            )
            await asyncio.sleep(delay)
            attempt += 1

        if (
            error is not None
            and error.retryable
            and self.retry_policy.deferred_delay_seconds is not None
        ):
            self._schedule_deferred(self.retry_policy.deferred_delay_seconds)
        else:
            logger.warning("Startup sync failed; continuing with local data")
        return report

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic timer (no-op without an interval)."""
        if self.interval_seconds is None or self._timer_task is not None:
            return
        self._next_run_at = utc_now() + timedelta(seconds=self.interval_seconds)
        self._timer_task = asyncio.create_task(self._timer_loop())
        logger.info(
            "Auto-sync every %.0f seconds (%s)",
            self.interval_seconds,
            self.direction.value,
        )

    async def stop(self) -> None:
        """Cancel timer and deferred tasks, then wait for a running pass."""
        for task in (self._timer_task, self._deferred_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._timer_task = None
        self._deferred_task = None
        self._next_run_at = None
        # Passes are never cancelled mid-flight
        async with self._lock:
            pass

    async def _timer_loop(self) -> None:
        assert self.interval_seconds is not None
        while True:
            self._next_run_at = utc_now() + timedelta(
                seconds=self.interval_seconds
            )
            await asyncio.sleep(self.interval_seconds)
            try:
                # Shielded: stop() must not cancel a pass mid-flight
                await asyncio.shield(self.trigger(SyncTrigger.TIMER))
            except Exception:
                logger.exception("Timer sync pass crashed")

    def _schedule_deferred(self, delay: float) -> None:
        logger.warning(
            "Startup sync failed; one more attempt in %.0f seconds", delay
        )

        async def _deferred() -> None:
            await asyncio.sleep(delay)
            report, _ = await asyncio.shield(self._startup_pass())
            if not report.success:
                logger.warning("Deferred startup sync failed; running on local data")

        self._deferred_task = asyncio.create_task(_deferred())

    # ------------------------------------------------------------------
    # Pass execution (lock held)
    # ------------------------------------------------------------------

    async def _startup_pass(self) -> tuple[SyncReport, SyncError | None]:
        async with self._lock:
            return await self._run_locked(self.direction, SyncTrigger.STARTUP)

    async def _run_locked(
        self, direction: SyncDirection, trigger: SyncTrigger
    ) -> tuple[SyncReport, SyncError | None]:
        self._state = SyncState.RUNNING
        started_at = utc_now()
        error: SyncError | None = None
        try:
            report = await self.reconciler.run(direction, trigger)
        except SyncError as exc:
            error = exc
        except Exception as exc:
            logger.exception("Unexpected error in %s sync pass", direction.value)
            error = SyncError(
                f"Unexpected error during sync: {exc}",
                direction=direction.value,
                cause=exc,
            )
        finally:
            # A pass never leaves the orchestrator stuck in RUNNING
            self._state = SyncState.IDLE
        if error is not None:
            report = SyncReport(
                direction=direction,
                trigger=trigger,
                started_at=started_at.isoformat(),
                completed_at=utc_now().isoformat(),
                success=False,
                error=str(error),
            )
        self._record(report)
        return report, error

    def _record(self, report: SyncReport) -> None:
        outcome = SyncState.SUCCEEDED if report.success else SyncState.FAILED
        self._status.update(
            last_run_at=report.completed_at,
            last_outcome=outcome.value,
            last_error=report.error,
            last_report=report_to_json(report),
        )
        if report.success:
            self._status["last_success_at"] = report.completed_at
        if self.status_store is not None:
            try:
                self.status_store.save(self._status)
            except OSError as exc:
                logger.warning("Failed to persist sync status: %s", exc)
