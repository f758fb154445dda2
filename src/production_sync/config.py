"""Runtime configuration for a production-sync node.

Reads settings from CLI args, environment variables, .env files, and
YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    PEER_URL: Base URL of the other node (optional; sync is disabled without it)
    PEER_API_KEY: Shared secret sent to the peer as x-api-key
    API_SECRET: Shared secret this node expects from callers (unset disables auth)
    SYNC_DIRECTION: pull | push | bidirectional (default: pull)
    ENABLE_AUTO_SYNC: Run startup and timer passes (default: true)
    SYNC_INTERVAL_MINUTES: Timer interval (default: 5)
    SYNC_ON_MUTATION: Run a bidirectional pass after each client edit (default: true)
    NOTIFY_ON_MUTATION: Push each client edit to the peer immediately (default: true)
    PEER_TIMEOUT_SECONDS: Bound on every peer request (default: 10)
    PEER_INSECURE: Skip SSL verification towards the peer (default: false)
    MAX_PARALLEL_REQUESTS: Concurrent peer requests (default: 5)
    STORE_BACKEND: memory | json | sql (default: json)
    DATA_DIR: Directory for the JSON store, SQLite file and sync status
    DATABASE_URL: SQLAlchemy URL for the sql backend
    MIRROR_PATH: CSV file regenerated after every change (optional)
    STRUCTURE_ROOT: Production directory scanned for episodes/shots (optional)
    HOST / PORT: Bind address of the HTTP server
"""

import logging
import os
from dataclasses import dataclass, fields
from urllib.parse import urlparse

from .models import SyncDirection

logger = logging.getLogger(__name__)

STORE_BACKENDS = ("memory", "json", "sql")


@dataclass
class Config:
    peer_url: str | None = None
    peer_api_key: str | None = None
    api_secret: str | None = None
    sync_direction: str = "pull"
    enable_auto_sync: bool = True
    sync_interval_minutes: int = 5
    sync_on_mutation: bool = True
    notify_on_mutation: bool = True
    peer_timeout_seconds: float = 10.0
    insecure: bool = False
    debug: bool = False
    max_parallel_requests: int = 5
    startup_retry_attempts: int = 3
    startup_retry_delay_seconds: float = 2.0
    deferred_retry_seconds: float = 30.0
    busy_wait_seconds: float = 1.0
    store_backend: str = "json"
    data_dir: str = "data"
    database_url: str | None = None
    mirror_path: str | None = None
    structure_root: str | None = None
    host: str = "127.0.0.1"
    port: int = 3000

    @property
    def direction(self) -> SyncDirection:
        return SyncDirection(self.sync_direction)

    @property
    def sync_enabled(self) -> bool:
        """True when a peer is configured."""
        return bool(self.peer_url)


# Config field -> environment variable
ENV_VARS: dict[str, str] = {
    "peer_url": "PEER_URL",
    "peer_api_key": "PEER_API_KEY",
    "api_secret": "API_SECRET",
    "sync_direction": "SYNC_DIRECTION",
    "enable_auto_sync": "ENABLE_AUTO_SYNC",
    "sync_interval_minutes": "SYNC_INTERVAL_MINUTES",
    "sync_on_mutation": "SYNC_ON_MUTATION",
    "notify_on_mutation": "NOTIFY_ON_MUTATION",
    "peer_timeout_seconds": "PEER_TIMEOUT_SECONDS",
    "insecure": "PEER_INSECURE",
    "debug": "PRODUCTION_SYNC_DEBUG",
    "max_parallel_requests": "MAX_PARALLEL_REQUESTS",
    "store_backend": "STORE_BACKEND",
    "data_dir": "DATA_DIR",
    "database_url": "DATABASE_URL",
    "mirror_path": "MIRROR_PATH",
    "structure_root": "STRUCTURE_ROOT",
    "host": "HOST",
    "port": "PORT",
}

# Inclusive bounds for numeric fields
_RANGES: dict[str, tuple[float, float]] = {
    "sync_interval_minutes": (1, 1440),
    "peer_timeout_seconds": (1, 300),
    "max_parallel_requests": (1, 100),
    "startup_retry_attempts": (1, 10),
    "startup_retry_delay_seconds": (0, 300),
    "deferred_retry_seconds": (0, 3600),
    "busy_wait_seconds": (0, 60),
    "port": (1, 65535),
}


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the peer URL, direction, backend or a numeric
            value is invalid.
    """
    if config.peer_url:
        # Normalize URL: strip whitespace
        config.peer_url = config.peer_url.strip()

        if not config.peer_url.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid peer URL '{config.peer_url}': must start with http:// or https://"
            )

        parsed = urlparse(config.peer_url)
        if not parsed.hostname:
            raise ValueError(
                f"Invalid peer URL '{config.peer_url}': URL must include a hostname"
            )

        # Strip trailing slash after validation (safe now that scheme/host are verified)
        config.peer_url = config.peer_url.removesuffix("/")

    valid_directions = [d.value for d in SyncDirection]
    if config.sync_direction not in valid_directions:
        raise ValueError(
            f"Invalid sync direction '{config.sync_direction}': "
            f"must be one of {', '.join(valid_directions)}"
        )

    if config.store_backend not in STORE_BACKENDS:
        raise ValueError(
            f"Invalid store backend '{config.store_backend}': "
            f"must be one of {', '.join(STORE_BACKENDS)}"
        )

    for name, (low, high) in _RANGES.items():
        value = getattr(config, name)
        if not (low <= value <= high):
            raise ValueError(
                f"Invalid {name} '{value}': must be a number between {low:g} and {high:g}"
            )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _coerce(kind: type, raw: object, source: str) -> object:
    if kind is bool:
        if isinstance(raw, str):
            return raw.lower() in ("true", "1", "yes", "on")
        return bool(raw)
    if kind in (int, float):
        try:
            return kind(raw)
        except (TypeError, ValueError):
            raise ValueError(
                f"Invalid {source} '{raw}': must be a number"
            ) from None
    return str(raw).strip() if raw is not None else None


def load_config(
    cli_overrides: dict | None = None,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI override > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        cli_overrides: Dict keyed by ``Config`` field name.  ``None``
            values are ignored.
        yaml_fallbacks: Dict keyed by ``Config`` field name, usually from
            ``config_schema.to_config_fallbacks()``.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If any value is malformed or out of range.
    """
    overrides = {
        k: v for k, v in (cli_overrides or {}).items() if v is not None
    }
    fb = yaml_fallbacks or {}
    defaults = Config()
    resolved: dict[str, object] = {}

    for field in fields(Config):
        name = field.name
        kind = type(getattr(defaults, name))
        if getattr(defaults, name) is None:
            kind = str
        env_key = ENV_VARS.get(name)
        env_val = os.getenv(env_key) if env_key else None

        if name in overrides:
            resolved[name] = _coerce(kind, overrides[name], name)
        elif env_val is not None and env_val != "":
            resolved[name] = _coerce(kind, env_val, env_key)
        elif fb.get(name) is not None:
            resolved[name] = _coerce(kind, fb[name], name)
        else:
            resolved[name] = getattr(defaults, name)

    config = Config(**resolved)
    validate_config(config)
    return config
