"""Peer protocol endpoints (called by the other node)."""

from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel

from ..mapper import record_to_wire
from ..models import utc_now
from .auth import get_node, require_api_key
from .node import Node

router = APIRouter(tags=["Peer protocol"], dependencies=[Depends(require_api_key)])


class ApplyRequest(BaseModel):
    action: Literal["create", "update", "delete"]
    data: dict[str, Any]


@router.get("/records/export")
async def export_records(node: Node = Depends(get_node)) -> dict[str, Any]:
    """Full snapshot for the peer's pull leg."""
    records = node.inbound.export_snapshot()
    return {
        "success": True,
        "data": records,
        "count": len(records),
        "timestamp": utc_now().isoformat(),
    }


@router.post("/records", status_code=status.HTTP_201_CREATED)
async def create_record(
    payload: dict[str, Any] = Body(...),
    node: Node = Depends(get_node),
) -> dict[str, Any]:
    """Store a record created on the peer (409 with ``existing`` on a key clash)."""
    record = node.inbound.create(payload)
    return {"success": True, "data": record_to_wire(record)}


@router.put("/records/{record_id}")
async def update_record(
    record_id: int,
    payload: dict[str, Any] = Body(...),
    node: Node = Depends(get_node),
) -> dict[str, Any]:
    record = node.inbound.update(record_id, payload)
    return {"success": True, "data": record_to_wire(record)}


@router.delete("/records/{record_id}")
async def delete_record(
    record_id: int, node: Node = Depends(get_node)
) -> dict[str, Any]:
    """Delete; a repeated delete succeeds with ``data: null``."""
    removed = node.inbound.delete(record_id)
    return {
        "success": True,
        "data": record_to_wire(removed) if removed is not None else None,
    }


@router.post("/sync/apply")
async def apply_change(
    request: ApplyRequest, node: Node = Depends(get_node)
) -> dict[str, Any]:
    """Apply one change notification from the peer."""
    record = node.inbound.apply(request.action, request.data)
    return {
        "success": True,
        "action": request.action,
        "data": record_to_wire(record) if record is not None else None,
    }
