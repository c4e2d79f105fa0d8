"""
Boundary coercion of raw planning records into engine models.

Architecture:
    Raw records (dicts or models) → coerce_* (VALIDATION) → Allocators

Key Principles:
    1. Fail Fast on shape: a top-level input that is not a list of records is fatal
    2. Degrade per record: a malformed node, batch, request or line item is
       skipped with a warning and never aborts the run
    3. Aliases: the camelCase field names of upstream documents are accepted
"""

import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError

from perishable_alloc.errors import AllocationInputError
from perishable_alloc.models import Batch, Node, NodeKind, Request, RequestItem
from perishable_alloc.network import CoordinateExtractionError, extract_coordinates

logger = logging.getLogger(__name__)

_NODE_KIND_ALIASES = {
    "warehouse": NodeKind.WAREHOUSE,
    "demand_site": NodeKind.DEMAND_SITE,
    "ngo": NodeKind.DEMAND_SITE,
}


def _first(record: Mapping, *keys: str) -> Any:
    """Value of the first key present with a non-None value."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def _as_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _capacity(value: Any) -> Optional[float]:
    """Positive finite capacity, or None so the warehouse default applies."""
    if value is None or isinstance(value, bool):
        return None
    try:
        capacity = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring unparseable capacity {value!r}")
        return None
    return capacity if math.isfinite(capacity) and capacity > 0 else None


def ensure_record_list(raw: Any, name: str) -> List[Any]:
    """
    Check that a top-level input is a list of records.

    Raises:
        AllocationInputError: If ``raw`` is not a non-string sequence
    """
    if isinstance(raw, (str, bytes, Mapping)) or not isinstance(raw, Sequence):
        raise AllocationInputError(
            f"{name} must be a list of records",
            context={"input": name, "received_type": type(raw).__name__},
        )
    return list(raw)


def _node_from_record(record: Mapping) -> Node:
    node_id = _as_id(_first(record, "id", "_id", "nodeId"))
    raw_kind = str(_first(record, "kind", "type") or "").strip().lower()
    kind = _NODE_KIND_ALIASES.get(raw_kind)
    if kind is None:
        raise ValueError(f"unknown node type {raw_kind!r}")

    try:
        location = extract_coordinates(record)
    except CoordinateExtractionError as e:
        logger.warning(f"Node {node_id} has no usable coordinates and is excluded from ranking: {e}")
        location = None

    return Node(
        id=node_id,
        name=record.get("name"),
        kind=kind,
        location=location,
        capacity_kg=_capacity(_first(record, "capacity_kg", "capacityKg")),
        state=record.get("state"),
        district=record.get("district"),
        region_id=_as_id(_first(record, "region_id", "regionId")),
    )


def coerce_nodes(raw: Any) -> List[Node]:
    """Coerce node records; malformed ones are skipped."""
    nodes = []
    for index, record in enumerate(ensure_record_list(raw, "nodes")):
        if isinstance(record, Node):
            nodes.append(record)
            continue
        if not isinstance(record, Mapping):
            logger.warning(f"Skipping node #{index}: not a record ({type(record).__name__})")
            continue
        try:
            nodes.append(_node_from_record(record))
        except (ValidationError, ValueError) as e:
            logger.warning(f"Skipping node #{index}: {e}")
    return nodes


def _batch_from_record(record: Mapping) -> Batch:
    return Batch(
        id=_as_id(_first(record, "id", "_id", "batchId")),
        food_type=_first(record, "food_type", "foodType"),
        quantity_kg=_first(record, "quantity_kg", "quantityKg"),
        original_quantity_kg=_first(record, "original_quantity_kg", "originalQuantityKg"),
        origin_node=_as_id(_first(record, "origin_node", "originNode")),
        current_node=_as_id(_first(record, "current_node", "currentNode")),
        status=record.get("status") or "stored",
        manufacture_date=_first(record, "manufacture_date", "manufactureDate"),
        created_at=_first(record, "created_at", "createdAt"),
        shelf_life_hours=_first(record, "shelf_life_hours", "shelfLifeHours"),
        initial_temp_c=_first(record, "initial_temp_c", "initialTempC"),
        parent_batch_id=_as_id(_first(record, "parent_batch_id", "parentBatchId")),
    )


def coerce_batches(raw: Any) -> List[Batch]:
    """Coerce batch records; malformed ones and duplicate ids are skipped."""
    batches = []
    seen = set()
    for index, record in enumerate(ensure_record_list(raw, "batches")):
        try:
            if isinstance(record, Batch):
                batch = record
            elif isinstance(record, Mapping):
                batch = _batch_from_record(record)
            else:
                logger.warning(f"Skipping batch #{index}: not a record ({type(record).__name__})")
                continue
        except (ValidationError, ValueError) as e:
            logger.warning(f"Skipping batch #{index}: {e}")
            continue

        if batch.id in seen:
            logger.warning(f"Skipping batch #{index}: duplicate id {batch.id}")
            continue
        seen.add(batch.id)
        batches.append(batch)
    return batches


def _items_from_record(request_id: Any, raw_items: Iterable) -> List[RequestItem]:
    items = []
    for index, raw_item in enumerate(raw_items or []):
        if isinstance(raw_item, RequestItem):
            items.append(raw_item)
            continue
        if not isinstance(raw_item, Mapping):
            logger.warning(f"Skipping item #{index} of request {request_id}: not a record")
            continue
        try:
            items.append(RequestItem(
                food_type=_first(raw_item, "food_type", "foodType"),
                required_kg=_first(raw_item, "required_kg", "requiredKg"),
            ))
        except ValidationError as e:
            logger.warning(f"Skipping item #{index} of request {request_id}: {e}")
    return items


def _request_from_record(record: Mapping) -> Request:
    request_id = _as_id(_first(record, "id", "requestId", "requestID", "_id"))
    raw_items = record.get("items")
    if raw_items is not None and (
        isinstance(raw_items, (str, bytes, Mapping)) or not isinstance(raw_items, Sequence)
    ):
        raise ValueError(f"items of request {request_id} must be a list")

    return Request(
        id=request_id,
        requester_node=_as_id(_first(record, "requester_node", "requesterNode")),
        items=_items_from_record(request_id, raw_items),
        created_on=_first(record, "created_on", "createdOn"),
        required_by=_first(record, "required_by", "requiredBy", "requiredBefore", "requiredBy_iso"),
        status=record.get("status") or "pending",
        dispatch_time=_first(record, "dispatch_time", "dispatchTime"),
    )


def coerce_requests(raw: Any) -> List[Request]:
    """Coerce request records; malformed requests and line items are skipped."""
    requests = []
    for index, record in enumerate(ensure_record_list(raw, "requests")):
        if isinstance(record, Request):
            requests.append(record)
            continue
        if not isinstance(record, Mapping):
            logger.warning(f"Skipping request #{index}: not a record ({type(record).__name__})")
            continue
        try:
            requests.append(_request_from_record(record))
        except (ValidationError, ValueError) as e:
            logger.warning(f"Skipping request #{index}: {e}")
    return requests
