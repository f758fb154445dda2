"""Peer transport shared by the reconciler, the notifier and the CLI."""

from .async_utils import run_sync, run_sync_limited
from .client import PeerClient

__all__ = ["PeerClient", "run_sync", "run_sync_limited"]
