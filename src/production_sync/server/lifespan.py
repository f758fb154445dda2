"""Lifespan management for HTTP server startup and shutdown."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..core.async_utils import init_semaphore
from .node import Node, build_node, load_node_config

logger = logging.getLogger(__name__)


@asynccontextmanager
async def server_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Build the node from configuration unless one was injected
      (``create_app(node=...)``)
    - Initialize the peer request semaphore
    - Start the startup sync pass in the background (with retry) and
      the periodic timer, when auto-sync is enabled

    On shutdown:
    - Stop the timer and wait for a running pass to finish
    - Wait for outstanding change notifications
    - Close the record store

    Raises:
        RuntimeError: If configuration is invalid.
    """
    logger.info("production-sync server starting...")

    node: Node | None = app.state.node
    if node is None:
        try:
            config, _ = load_node_config(app.state.config_overrides)
        except ValueError as e:
            logger.error("Configuration error: %s", e)
            raise RuntimeError(f"Configuration error: {e}") from e
        node = build_node(config)
        app.state.node = node

    config = node.config
    init_semaphore(config.max_parallel_requests)
    logger.info(
        "Store: %s; peer: %s; direction: %s",
        config.store_backend,
        config.peer_url or "none",
        config.sync_direction,
    )

    startup_task: asyncio.Task | None = None
    if node.orchestrator is not None and config.enable_auto_sync:
        startup_task = asyncio.create_task(node.orchestrator.run_startup())
        node.orchestrator.start()

    yield

    logger.info("production-sync server shutting down")
    if startup_task is not None and not startup_task.done():
        startup_task.cancel()
        try:
            await startup_task
        except asyncio.CancelledError:
            pass
    if node.orchestrator is not None:
        await node.orchestrator.stop()
    if node.notifier is not None:
        await node.notifier.drain()
    node.close()
