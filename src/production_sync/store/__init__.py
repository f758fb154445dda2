"""Record store backends.

- ``base``       -- ``RecordStore`` contract and replacement-set validation.
- ``memory``     -- ``InMemoryRecordStore``: copy-then-swap dict store.
- ``json_store`` -- ``JsonRecordStore``: in-memory store persisted to JSON.
- ``sql_store``  -- ``SqlRecordStore``: SQLAlchemy ORM backend.

``create_store()`` picks the backend named by ``Config.store_backend``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ..config import STORE_BACKENDS
from .base import RecordStore
from .json_store import JsonRecordStore
from .memory import InMemoryRecordStore
from .sql_store import SqlRecordStore

if TYPE_CHECKING:
    from ..config import Config

logger = logging.getLogger(__name__)


def create_store(config: Config) -> RecordStore:
    """Build the record store selected by *config*.

    Raises:
        ValueError: If the backend name is unknown.
    """
    backend = config.store_backend
    logger.info("Using %s record store", backend)
    if backend == "memory":
        return InMemoryRecordStore()
    if backend == "json":
        return JsonRecordStore(Path(config.data_dir))
    if backend == "sql":
        url = config.database_url or f"sqlite:///{Path(config.data_dir) / 'records.db'}"
        return SqlRecordStore(url)
    raise ValueError(
        f"Unknown store backend '{backend}': expected one of {', '.join(STORE_BACKENDS)}"
    )


__all__ = [
    "STORE_BACKENDS",
    "InMemoryRecordStore",
    "JsonRecordStore",
    "RecordStore",
    "SqlRecordStore",
    "create_store",
]
