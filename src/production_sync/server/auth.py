"""Shared-secret authentication for the peer protocol and operator routes."""

from __future__ import annotations

import logging
import secrets

from fastapi import HTTPException, Request, status

from .node import Node

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"
API_KEY_QUERY = "apiKey"

_warned_open = False


def get_node(request: Request) -> Node:
    """FastAPI dependency: the node installed on the app."""
    node = request.app.state.node
    if node is None:
        raise RuntimeError("Node not initialized. Server lifespan not started.")
    return node


def require_api_key(request: Request) -> None:
    """FastAPI dependency: check the ``x-api-key`` header (or ``apiKey`` query).

    With no ``API_SECRET`` configured, authentication is disabled and a
    warning is logged once.

    Raises:
        HTTPException: 401 when the key is missing or wrong.
    """
    global _warned_open
    secret = get_node(request).config.api_secret
    if not secret:
        if not _warned_open:
            logger.warning("API_SECRET not set: peer endpoints are unauthenticated")
            _warned_open = True
        return

    provided = request.headers.get(API_KEY_HEADER) or request.query_params.get(
        API_KEY_QUERY
    )
    if not provided or not secrets.compare_digest(
        provided.encode(), secret.encode()
    ):
        logger.warning("Rejected request to %s: bad API key", request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
