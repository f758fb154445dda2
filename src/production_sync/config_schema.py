"""Unified configuration schema for production_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the peer connection, sync scheduling, storage, the HTTP
server, and logging.  ``to_config_fallbacks()`` flattens a validated
``UnifiedConfig`` into the field names of the ``Config`` dataclass so
it can be passed to ``load_config()`` as YAML fallbacks.

Usage:
    from production_sync.config_schema import build_config, to_config_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_config_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class PeerConfig(BaseModel):
    """Connection to the other node.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(default=None, description="Peer base URL")
    api_key: str | None = Field(
        default=None, description="Shared secret sent as x-api-key"
    )
    timeout_seconds: float | None = Field(
        default=None,
        ge=1,
        le=300,
        description="Bound on every peer request in seconds (1-300)",
    )
    insecure: bool | None = Field(
        default=None,
        description="Disable SSL verification (development only)",
    )
    max_parallel_requests: int | None = Field(
        default=None,
        ge=1,
        le=100,
        description="Maximum concurrent requests to the peer (1-100)",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Reconciliation scheduling and authority."""

    direction: Literal["pull", "push", "bidirectional"] | None = Field(
        default=None, description="Authority mode of scheduled passes"
    )
    enable_auto_sync: bool | None = Field(
        default=None, description="Run startup and timer passes"
    )
    interval_minutes: int | None = Field(
        default=None, ge=1, le=1440, description="Timer interval in minutes"
    )
    on_mutation: bool | None = Field(
        default=None,
        description="Run a bidirectional pass after each client edit",
    )
    notify_on_mutation: bool | None = Field(
        default=None, description="Push each client edit immediately"
    )
    startup_retry_attempts: int | None = Field(default=None, ge=1, le=10)
    startup_retry_delay_seconds: float | None = Field(default=None, ge=0)
    deferred_retry_seconds: float | None = Field(default=None, ge=0)
    busy_wait_seconds: float | None = Field(default=None, ge=0)

    model_config = {"frozen": True}


class StorageConfig(BaseModel):
    """Record store and derived file locations."""

    backend: Literal["memory", "json", "sql"] | None = Field(
        default=None, description="Record store backend"
    )
    data_dir: str | None = Field(default=None, description="Data directory")
    database_url: str | None = Field(
        default=None, description="SQLAlchemy URL for the sql backend"
    )
    mirror_path: str | None = Field(
        default=None, description="CSV mirror regenerated on every change"
    )
    structure_root: str | None = Field(
        default=None, description="Production directory to scan"
    )

    model_config = {"frozen": True}


class ServerConfig(BaseModel):
    """HTTP server settings."""

    host: str | None = Field(default=None, description="Bind address")
    port: int | None = Field(default=None, ge=1, le=65535)
    api_secret: str | None = Field(
        default=None, description="Shared secret expected from callers"
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: Literal["text", "json"] = Field(
        default="text", description="Log line format"
    )

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    peer: PeerConfig = Field(default_factory=PeerConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> Config field names
# ---------------------------------------------------------------------------

# (section, key) -> Config field
_FIELD_SOURCES: dict[tuple[str, str], str] = {
    ("peer", "url"): "peer_url",
    ("peer", "api_key"): "peer_api_key",
    ("peer", "timeout_seconds"): "peer_timeout_seconds",
    ("peer", "insecure"): "insecure",
    ("peer", "max_parallel_requests"): "max_parallel_requests",
    ("sync", "direction"): "sync_direction",
    ("sync", "enable_auto_sync"): "enable_auto_sync",
    ("sync", "interval_minutes"): "sync_interval_minutes",
    ("sync", "on_mutation"): "sync_on_mutation",
    ("sync", "notify_on_mutation"): "notify_on_mutation",
    ("sync", "startup_retry_attempts"): "startup_retry_attempts",
    ("sync", "startup_retry_delay_seconds"): "startup_retry_delay_seconds",
    ("sync", "deferred_retry_seconds"): "deferred_retry_seconds",
    ("sync", "busy_wait_seconds"): "busy_wait_seconds",
    ("storage", "backend"): "store_backend",
    ("storage", "data_dir"): "data_dir",
    ("storage", "database_url"): "database_url",
    ("storage", "mirror_path"): "mirror_path",
    ("storage", "structure_root"): "structure_root",
    ("server", "host"): "host",
    ("server", "port"): "port",
    ("server", "api_secret"): "api_secret",
}


def to_config_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten the non-None values of *unified* into ``Config`` field names.

    Args:
        unified: The unified config produced by ``build_config()``.

    Returns:
        Dict suitable for ``load_config(yaml_fallbacks=...)``.
    """
    dumped = unified.model_dump()
    fallbacks: dict[str, Any] = {}
    for (section, key), field in _FIELD_SOURCES.items():
        value = dumped[section].get(key)
        if value is not None:
            fallbacks[field] = value
    return fallbacks
