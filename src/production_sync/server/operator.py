"""Operator endpoints: health, sync status, manual passes and the sync log."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .. import __version__
from ..models import SyncDirection
from ..sync.reporter import report_to_json
from .auth import get_node, require_api_key
from .node import Node

router = APIRouter(tags=["Operator"])


@router.get("/health")
async def health(node: Node = Depends(get_node)) -> dict[str, Any]:
    """Liveness plus a short summary of the node."""
    return {
        "status": "ok",
        "version": __version__,
        "records": len(node.store.get_all()),
        "store_backend": node.config.store_backend,
        "sync_enabled": node.sync_enabled,
        "direction": node.config.sync_direction,
    }


@router.get("/sync/status", dependencies=[Depends(require_api_key)])
async def sync_status(node: Node = Depends(get_node)) -> dict[str, Any]:
    if node.orchestrator is None:
        return {"success": True, "data": {"enabled": False}}
    return {"success": True, "data": {"enabled": True, **node.orchestrator.status()}}


@router.post("/sync/run", dependencies=[Depends(require_api_key)])
async def run_sync_pass(
    direction: SyncDirection | None = Query(
        None, description="Override the configured direction"
    ),
    node: Node = Depends(get_node),
) -> dict[str, Any]:
    """Run one pass now (409 while another pass is running)."""
    if node.orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Sync is disabled: no peer configured",
        )
    report = await node.orchestrator.run_once(direction)
    return {"success": report.success, "data": report_to_json(report)}


@router.get("/sync/log", dependencies=[Depends(require_api_key)])
async def sync_log(
    limit: int = Query(50, ge=1, le=1000),
    node: Node = Depends(get_node),
) -> dict[str, Any]:
    """Newest *limit* sync log entries, oldest first."""
    entries = node.store.get_sync_log(limit)
    return {
        "success": True,
        "data": [e.model_dump(mode="json") for e in entries],
        "count": len(entries),
    }
