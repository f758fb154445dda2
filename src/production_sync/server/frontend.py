"""Data-entry frontend endpoints.

Records are exchanged with the frontend's labels (``Episode/Title``,
``Week (YYYYMMDD)``, ...); mutations report the on-mutation sync
outcome next to the record.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, status

from ..core.async_utils import run_sync
from ..mapper import record_from_frontend, record_to_frontend
from ..service import MutationResult
from ..validators import recent_monday_codes
from .auth import get_node
from .node import Node

router = APIRouter(tags=["Frontend"])


def _mutation_reply(result: MutationResult) -> dict[str, Any]:
    reply: dict[str, Any] = {
        "success": True,
        "data": record_to_frontend(result.record),
        "sync_status": result.sync_status.value,
    }
    if result.sync_error:
        reply["sync_error"] = result.sync_error
    return reply


@router.get("/production-data")
async def list_production_data(node: Node = Depends(get_node)) -> dict[str, Any]:
    records = node.service.list_records()
    return {
        "success": True,
        "data": [record_to_frontend(r) for r in records],
        "count": len(records),
    }


@router.get("/production-data/week/{week_code}")
async def week_production_data(
    week_code: str, node: Node = Depends(get_node)
) -> dict[str, Any]:
    records = node.service.records_for_week(week_code)
    return {
        "success": True,
        "week": week_code,
        "data": [record_to_frontend(r) for r in records],
        "count": len(records),
    }


@router.post("/production-data", status_code=status.HTTP_201_CREATED)
async def create_production_data(
    payload: dict[str, Any] = Body(...),
    node: Node = Depends(get_node),
) -> dict[str, Any]:
    """Submit a shot (409 with ``existing`` if already submitted)."""
    result = await node.service.create(record_from_frontend(payload))
    return _mutation_reply(result)


@router.put("/production-data/{record_id}")
async def update_production_data(
    record_id: int,
    payload: dict[str, Any] = Body(...),
    node: Node = Depends(get_node),
) -> dict[str, Any]:
    result = await node.service.update(record_id, record_from_frontend(payload))
    return _mutation_reply(result)


@router.delete("/production-data/{record_id}")
async def delete_production_data(
    record_id: int, node: Node = Depends(get_node)
) -> dict[str, Any]:
    result = await node.service.delete(record_id)
    return _mutation_reply(result)


@router.get("/structure")
async def production_structure(node: Node = Depends(get_node)) -> dict[str, Any]:
    """Episodes, short forms, scenes and shots from the production tree."""
    if node.structure is None:
        return {
            "success": True,
            "data": {"episodes": [], "short_forms": [], "scanned_at": None},
        }
    structure = await run_sync(node.structure.scan)
    return {
        "success": structure.error is None,
        "data": structure.model_dump(mode="json"),
    }


@router.get("/weeks")
async def recent_weeks() -> dict[str, Any]:
    """The ten most recent Monday week codes, newest first."""
    return {"success": True, "data": recent_monday_codes(10)}
