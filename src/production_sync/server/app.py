"""FastAPI application factory."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from .errors import install_error_handlers
from .frontend import router as frontend_router
from .lifespan import server_lifespan
from .node import Node
from .operator import router as operator_router
from .peer import router as peer_router


def create_app(
    node: Node | None = None,
    config_overrides: dict[str, Any] | None = None,
) -> FastAPI:
    """Build the HTTP app.

    Args:
        node: Pre-built node.  When omitted, the lifespan builds one from
            configuration (CLI overrides > env > YAML > defaults).
        config_overrides: CLI overrides keyed by ``Config`` field name.
    """
    app = FastAPI(
        title="production-sync",
        version=__version__,
        lifespan=server_lifespan,
    )
    app.state.node = node
    app.state.config_overrides = config_overrides

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    app.include_router(operator_router)
    app.include_router(peer_router)
    app.include_router(frontend_router)
    return app
