"""
YAML configuration files for production-sync.

Up to three files are consulted, highest precedence first:

1. the file named by ``PRODUCTION_SYNC_CONFIG``;
2. ``.production_sync/config.yml`` (or ``.yaml``) in the working
   directory;
3. ``~/.config/production_sync/config.yml``.

Top-level sections of a higher file replace the same sections of a
lower one.  After merging, ``${VAR}`` / ``${VAR:-default}`` references
in string values are expanded from the environment, so secrets can stay
in ``.env``.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Iterator

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PRODUCTION_SYNC_CONFIG"
CONFIG_DIR_NAME = ".production_sync"
CONFIG_FILE_NAMES = ("config.yml", "config.yaml")
GLOBAL_CONFIG_DIR = Path(".config") / "production_sync"

# ${NAME} or ${NAME:-fallback}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def _env_ref_value(match: re.Match) -> str:
    name, fallback = match.group(1), match.group(2)
    value = os.environ.get(name, "")
    if value:
        return value
    return fallback or ""


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` in *value*.

    An unset or empty variable expands to its default, or to ``""``
    without one.  An unterminated ``${`` is kept as is.
    """
    return _ENV_REF.sub(_env_ref_value, value)


def _interpolate_recursive(obj: Any) -> Any:
    """Expand env references in every string of a nested dict/list."""
    if isinstance(obj, dict):
        return {key: _interpolate_recursive(item) for key, item in obj.items()}
    if isinstance(obj, list):
        return list(map(_interpolate_recursive, obj))
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    return obj


def _candidate_paths() -> Iterator[Path]:
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        yield Path(explicit).expanduser().resolve()
    project_dir = Path.cwd() / CONFIG_DIR_NAME
    for name in CONFIG_FILE_NAMES:
        yield project_dir / name
    yield Path.home() / GLOBAL_CONFIG_DIR / CONFIG_FILE_NAMES[0]


def discover_config_files() -> list[Path]:
    """Existing config files, highest precedence first."""
    return [path for path in _candidate_paths() if path.is_file()]


_STARTER_CONFIG = """\
# production-sync configuration
#
# Every value can also be set via environment variables
# (PEER_URL, PEER_API_KEY, API_SECRET, SYNC_DIRECTION, STORE_BACKEND, ...).
# ${VAR} and ${VAR:-default} are expanded from the environment.
#
# peer:
#   url: https://records.example.com/api
#   api_key: ${PEER_API_KEY}
#   timeout_seconds: 10
#
# sync:
#   direction: pull          # pull | push | bidirectional
#   enable_auto_sync: true
#   interval_minutes: 5
#   on_mutation: true
#   notify_on_mutation: true
#
# storage:
#   backend: json            # memory | json | sql
#   data_dir: data
#   database_url: sqlite:///data/records.db
#   mirror_path: data/production_data.csv
#   structure_root: /srv/production
#
# server:
#   host: 127.0.0.1
#   port: 3000
#   api_secret: ${API_SECRET}
#
# logging:
#   level: INFO
#   file: null
#   format: text
"""


def resolve_config_path() -> Path:
    """The config file in effect, or the project-level default path.

    Nothing is created here; see ``ensure_config()``.
    """
    found = discover_config_files()
    return found[0] if found else Path.cwd() / CONFIG_DIR_NAME / CONFIG_FILE_NAMES[0]


def ensure_config(target: Path | None = None) -> Path:
    """Return the config file in effect, writing a starter file if none exists.

    Args:
        target: Where to write the starter file.  Defaults to
            ``resolve_config_path()``.  Ignored when a config file
            already exists.
    """
    found = discover_config_files()
    if found:
        logger.debug("Using existing config file %s", found[0])
        return found[0]

    path = target or resolve_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Wrote starter config to %s", path)
    return path


def _read_sections(path: Path) -> dict[str, Any]:
    with path.open(encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(
            "Ignoring %s: top level is a %s, not a mapping",
            path,
            type(data).__name__,
        )
        return {}
    return data


def load_hierarchical_config() -> dict[str, Any]:
    """Merged, env-expanded contents of every discovered config file.

    Returns:
        Section name -> section dict; ``{}`` when no file exists.

    Raises:
        yaml.YAMLError: A config file is not valid YAML.
    """
    merged: dict[str, Any] = {}
    # Lowest precedence first so higher files overwrite whole sections
    for path in reversed(discover_config_files()):
        logger.debug("Reading config file %s", path)
        try:
            merged.update(_read_sections(path))
        except yaml.YAMLError:
            logger.error("Invalid YAML in config file %s", path)
            raise
    return _interpolate_recursive(merged)
