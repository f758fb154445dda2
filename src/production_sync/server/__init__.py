"""HTTP surface and CLI of a production-sync node.

- ``app``       -- ``create_app()``: FastAPI factory.
- ``node``      -- ``build_node()``: wiring shared by the app and the CLI.
- ``lifespan``  -- startup sync, timer and shutdown.
- ``peer``      -- peer protocol routes.
- ``operator``  -- health and sync routes.
- ``frontend``  -- data-entry routes.
- ``cli``       -- ``production-sync`` command.
"""

from .app import create_app
from .node import Node, build_node, load_node_config

__all__ = ["Node", "build_node", "create_app", "load_node_config"]
