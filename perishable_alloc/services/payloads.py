"""Serialize engine models into the documents the external services expect."""

from datetime import datetime
from typing import Any, Dict, Optional

from perishable_alloc.models import Batch, Node, Request
from perishable_alloc.shelf_life import freshness_pct


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def node_document(node: Node, include_capacity: bool = False) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "_id": node.id,
        "nodeId": node.id,
        "type": "warehouse" if node.is_warehouse else "ngo",
        "name": node.name,
        "district": node.district,
        "state": node.state or node.region_id or "Unknown",
        "regionId": node.region_id,
        "location": (
            {"type": "Point", "coordinates": [node.location.lon, node.location.lat]}
            if node.location is not None else None
        ),
    }
    if include_capacity:
        doc["capacity_kg"] = node.capacity_kg or 0
    return doc


def batch_document(batch: Batch, at: Optional[datetime] = None,
                   avg_temp_c: Optional[float] = None) -> Dict[str, Any]:
    """Batch document; ``freshnessPct`` is filled only when ``at`` is given."""
    doc: Dict[str, Any] = {
        "_id": batch.id,
        "batchId": batch.id,
        "foodType": batch.food_type,
        "originNode": batch.origin_node,
        "currentNode": batch.current_node,
        "quantity_kg": batch.quantity_kg,
        "original_quantity_kg": batch.original_quantity_kg,
        "status": batch.status.value,
        "manufacture_date": _iso(batch.manufacture_date),
        "shelf_life_hours": batch.shelf_life_hours,
        "freshnessPct": None,
    }
    if at is not None:
        doc["freshnessPct"] = (
            freshness_pct(batch, at, avg_temp_c) if avg_temp_c is not None
            else freshness_pct(batch, at)
        )
    return doc


def request_document(request: Request) -> Dict[str, Any]:
    return {
        "requestId": request.id,
        "requesterNode": request.requester_node,
        "items": [
            {"foodType": item.food_type, "required_kg": item.required_kg}
            for item in request.items
        ],
        "requiredBy_iso": _iso(request.required_by),
        "status": request.status,
    }
