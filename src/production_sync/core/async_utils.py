"""Thread bridges for the blocking peer client.

``PeerClient`` is built on ``requests`` and blocks, so every call from
a coroutine goes through one of the helpers below:

- ``run_sync``         -- one call in a worker thread.  Reconciliation
  passes use it; the orchestrator already serializes them.
- ``run_sync_limited`` -- the same, but holding a slot of the process
  wide semaphore set up by ``init_semaphore()``.  Change notifications
  use it so a burst of edits cannot open unbounded connections.
"""

import asyncio
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

# Set by the server lifespan; None means "no limit"
_semaphore: asyncio.Semaphore | None = None


def init_semaphore(max_parallel: int = 5) -> None:
    """Bound concurrent ``run_sync_limited`` calls to *max_parallel*."""
    global _semaphore
    _semaphore = asyncio.Semaphore(max_parallel)
    logger.info("Peer request limit set: max_parallel=%d", max_parallel)


async def run_sync(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Await ``func(*args, **kwargs)`` executed in a worker thread.

    Example:
        records = await run_sync(client.export_records)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_sync_limited(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Like ``run_sync`` but waits for a semaphore slot first.

    Without ``init_semaphore()`` (tests, CLI one-shots) the call is not
    limited.
    """
    semaphore = _semaphore
    if semaphore is None:
        return await run_sync(func, *args, **kwargs)
    async with semaphore:
        return await run_sync(func, *args, **kwargs)
