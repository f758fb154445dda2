"""Retry and backoff policy for startup reconciliation passes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..errors import SyncError

if TYPE_CHECKING:
    from ..config import Config

BACKOFF_STRATEGIES = ("none", "fixed", "exponential")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry schedule.

    Attributes:
        max_attempts: Total attempts in the immediate burst (first try
            included).
        delay_seconds: Base delay between attempts.
        backoff_strategy: ``none``, ``fixed`` or ``exponential``.
        deferred_delay_seconds: Delay before one last attempt after the
            burst is exhausted; ``None`` disables it.
    """

    max_attempts: int = 3
    delay_seconds: float = 2.0
    backoff_strategy: str = "fixed"
    deferred_delay_seconds: float | None = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1.")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0.")
        if self.backoff_strategy not in BACKOFF_STRATEGIES:
            raise ValueError("backoff_strategy must be valid.")
        if self.deferred_delay_seconds is not None and self.deferred_delay_seconds < 0:
            raise ValueError("deferred_delay_seconds must be >= 0.")

    @staticmethod
    def from_config(config: Config) -> RetryPolicy:
        """Build the startup retry policy from node configuration."""
        return RetryPolicy(
            max_attempts=config.startup_retry_attempts,
            delay_seconds=config.startup_retry_delay_seconds,
            deferred_delay_seconds=config.deferred_retry_seconds,
        )

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        """Return whether *error* on attempt number *attempt* deserves another try."""
        if not isinstance(error, SyncError) or not error.retryable:
            return False
        return attempt < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds after failed attempt number *attempt* (1-based)."""
        if attempt <= 0:
            raise ValueError("attempt must be >= 1.")
        if self.backoff_strategy == "none":
            return 0.0
        if self.backoff_strategy == "fixed":
            return self.delay_seconds
        return self.delay_seconds * (2 ** (attempt - 1))
