"""Tests for production_sync.server.lifespan: server startup/shutdown lifecycle.

Tests the server_lifespan() async context manager which:
- Builds the node from configuration unless one was injected
- Initializes the peer request semaphore
- Starts the startup pass and the timer when auto-sync is enabled
- Stops the orchestrator, drains notifications and closes the store
- Fails fast on config errors
"""

import asyncio
import dataclasses
from unittest.mock import MagicMock, patch

import pytest

import production_sync.core.async_utils as async_utils
from conftest import make_input
from production_sync.config import Config
from production_sync.config_schema import LoggingConfig
from production_sync.server.app import create_app
from production_sync.server.lifespan import server_lifespan
from production_sync.server.node import Node, build_node


@pytest.fixture(autouse=True)
def restore_semaphore():
    """The lifespan installs a process-wide semaphore; undo it per test."""
    original = async_utils._semaphore
    yield
    async_utils._semaphore = original


class TestInjectedNode:
    """Lifespan with a node passed to create_app()."""

    async def test_semaphore_uses_max_parallel_from_config(
        self, node_config, local_store, peer
    ):
        config = dataclasses.replace(node_config, max_parallel_requests=12)
        app = create_app(node=build_node(config, store=local_store, client=peer))

        with patch("production_sync.server.lifespan.init_semaphore") as mock_init_sem:
            async with server_lifespan(app):
                mock_init_sem.assert_called_once_with(12)

    async def test_no_passes_without_auto_sync(self, node_config, local_store, peer):
        node = build_node(node_config, store=local_store, client=peer)
        app = create_app(node=node)

        async with server_lifespan(app):
            assert node.orchestrator._timer_task is None
        assert peer.calls == []

    async def test_startup_pass_and_timer(self, node_config, local_store, peer, peer_store):
        peer_store.insert(make_input(shot="SH_07"))
        config = dataclasses.replace(node_config, enable_auto_sync=True)
        node = build_node(config, store=local_store, client=peer)
        app = create_app(node=node)

        async with server_lifespan(app):
            assert node.orchestrator._timer_task is not None
            for _ in range(200):
                if local_store.get_all():
                    break
                await asyncio.sleep(0.01)
            assert [r.shot for r in local_store.get_all()] == ["SH_07"]

        assert node.orchestrator._timer_task is None
        assert node.orchestrator.next_run_at is None

    async def test_shutdown_closes_node(self, node_config):
        node = MagicMock(spec=Node)
        node.config = node_config
        node.orchestrator = None
        node.notifier = None
        app = create_app(node=node)

        async with server_lifespan(app):
            node.close.assert_not_called()
        node.close.assert_called_once()


class TestConfiguredNode:
    """Lifespan building the node itself."""

    async def test_builds_node_from_config(self, tmp_path):
        config = Config(store_backend="memory", data_dir=str(tmp_path))
        app = create_app(config_overrides={"store_backend": "memory"})

        with patch(
            "production_sync.server.lifespan.load_node_config",
            return_value=(config, LoggingConfig()),
        ) as mock_load:
            async with server_lifespan(app):
                assert isinstance(app.state.node, Node)
                assert not app.state.node.sync_enabled

        mock_load.assert_called_once_with({"store_backend": "memory"})

    async def test_config_error_raises_runtime_error(self):
        app = create_app()

        with patch(
            "production_sync.server.lifespan.load_node_config",
            side_effect=ValueError("Invalid peer URL 'x'"),
        ):
            with pytest.raises(RuntimeError, match="Configuration error"):
                async with server_lifespan(app):
                    pass
