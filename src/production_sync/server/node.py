"""Wiring of one production-sync node.

``load_node_config()`` resolves configuration from every source and
``build_node()`` assembles the store, mirror, peer client, reconciler,
orchestrator, notifier and services from it.  The HTTP app and the CLI
commands share this wiring.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from ..config import Config, load_config
from ..config_loader import discover_config_files, load_hierarchical_config
from ..config_schema import LoggingConfig, build_config, to_config_fallbacks
from ..core.client import PeerClient
from ..mirror import FlatFileMirror, create_mirror
from ..service import RecordService
from ..store import RecordStore, create_store
from ..structure import StructureProvider
from ..sync.inbound import InboundChanges
from ..sync.notifier import ChangeNotifier
from ..sync.orchestrator import SyncOrchestrator
from ..sync.reconciler import Reconciler
from ..sync.retry import RetryPolicy
from ..sync.state import SyncStatusStore

logger = logging.getLogger(__name__)


def load_node_config(
    cli_overrides: dict[str, Any] | None = None,
) -> tuple[Config, LoggingConfig]:
    """Resolve configuration: CLI > env vars (.env) > YAML > defaults.

    Returns:
        Tuple of (node config, logging section of the YAML config).

    Raises:
        ValueError: If any value is invalid.
    """
    # .env first so ${VAR} interpolation in YAML can use its values
    load_dotenv()

    unified = build_config(load_hierarchical_config())
    config_files = discover_config_files()
    if config_files:
        logger.info("Config file: %s", config_files[0])

    config = load_config(
        cli_overrides=cli_overrides,
        yaml_fallbacks=to_config_fallbacks(unified),
    )
    return config, unified.logging


@dataclass
class Node:
    """Everything one node runs on.

    ``client``, ``orchestrator`` and ``notifier`` are ``None`` when no
    peer is configured (standalone mode).
    """

    config: Config
    store: RecordStore
    service: RecordService
    inbound: InboundChanges
    mirror: FlatFileMirror | None = None
    structure: StructureProvider | None = None
    client: PeerClient | None = None
    orchestrator: SyncOrchestrator | None = None
    notifier: ChangeNotifier | None = None

    @property
    def sync_enabled(self) -> bool:
        return self.orchestrator is not None

    def close(self) -> None:
        self.store.close()


def build_node(
    config: Config,
    *,
    store: RecordStore | None = None,
    client: PeerClient | None = None,
) -> Node:
    """Assemble a node from *config*.

    Args:
        config: Validated node configuration.
        store: Use this store instead of the configured backend.
        client: Use this peer client instead of one built from
            ``config.peer_url``.
    """
    store = store if store is not None else create_store(config)
    mirror = create_mirror(config.mirror_path)
    structure = (
        StructureProvider(Path(config.structure_root))
        if config.structure_root
        else None
    )

    if client is None and config.sync_enabled:
        client = PeerClient(config)

    orchestrator = None
    notifier = None
    if client is not None:
        status_store = (
            SyncStatusStore(Path(config.data_dir))
            if config.store_backend != "memory"
            else None
        )
        orchestrator = SyncOrchestrator(
            Reconciler(store, client, mirror),
            config.direction,
            interval_seconds=(
                config.sync_interval_minutes * 60
                if config.enable_auto_sync
                else None
            ),
            busy_wait_seconds=config.busy_wait_seconds,
            retry_policy=RetryPolicy.from_config(config),
            status_store=status_store,
        )
        if config.notify_on_mutation:
            notifier = ChangeNotifier(store, client)
    else:
        logger.warning("No peer configured: running standalone, sync disabled")

    service = RecordService(
        store,
        mirror=mirror,
        notifier=notifier,
        orchestrator=orchestrator if config.sync_on_mutation else None,
    )
    return Node(
        config=config,
        store=store,
        service=service,
        inbound=InboundChanges(store, mirror),
        mirror=mirror,
        structure=structure,
        client=client,
        orchestrator=orchestrator,
        notifier=notifier,
    )
