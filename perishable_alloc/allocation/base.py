"""Shared machinery for the allocation strategies.

Both strategies walk the requests in order, resolve the requesting demand
site, rank warehouses by great-circle distance, and consume batches greedily
until a line item is filled or the chosen stock runs out.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from perishable_alloc.constants import QUANTITY_EPSILON
from perishable_alloc.models import (
    AllocatedBatch,
    AllocationConfig,
    Batch,
    InventorySnapshot,
    Node,
    Request,
)
from perishable_alloc.models.timestamps import utc_now
from perishable_alloc.network import estimate_travel_hours, haversine_distance_km
from perishable_alloc.shelf_life import freshness_pct, remaining_shelf_life_hours

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class SkipReason:
    UNKNOWN_REQUESTER = "unknown_requester"
    REQUESTER_NOT_DEMAND_SITE = "requester_not_demand_site"
    REQUESTER_MISSING_COORDINATES = "requester_missing_coordinates"
    NO_WAREHOUSES = "no_warehouses"
    NO_ELIGIBLE_STOCK = "no_eligible_stock"


class SkipRecord(BaseModel):
    """A request or line item that produced no allocation, and why."""
    request_id: str
    food_type: Optional[str] = None
    reason: str


@dataclass
class BatchView:
    """A batch as seen from one warehouse for one dispatch."""
    batch: Batch
    remaining_hours: float
    freshness_at_dispatch: float
    freshness_at_delivery: float


@dataclass
class RankedWarehouse:
    node: Node
    distance_km: float
    travel_hours: float


@dataclass
class AllocatorOutput:
    allocations: list = field(default_factory=list)
    skipped: List[SkipRecord] = field(default_factory=list)


def availability_sort_time(batch: Batch) -> float:
    """Manufacture (or creation) time as a sort key; unknown sorts first."""
    available_from = batch.availability_time
    return available_from.timestamp() if available_from is not None else 0.0


class BaseAllocator:
    """
    Common request handling for the allocation strategies.

    Args:
        nodes: Warehouses and demand sites of the network
        config: Run configuration
        clock: Returns "now" for requests that carry no timestamp
    """

    strategy = None

    def __init__(self, nodes: Sequence[Node], config: AllocationConfig,
                 clock: Optional[Clock] = None):
        self.config = config
        self.clock = clock or utc_now
        self.nodes_by_id: Dict[str, Node] = {}
        for node in nodes:
            self.nodes_by_id.setdefault(node.id, node)
        self.warehouses = [n for n in self.nodes_by_id.values() if n.is_warehouse]

    def allocate(self, requests: Sequence[Request], snapshot: InventorySnapshot) -> AllocatorOutput:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Request resolution
    # ------------------------------------------------------------------

    def resolve_dispatch_time(self, request: Request, use_reference_date: bool = False) -> datetime:
        """
        Dispatch timestamp of ``request``.

        Starts from the request's explicit dispatch time or creation time
        (falling back to the clock), optionally replaced by the configured
        reference date when no dispatch window is set, then clamped into
        ``[dispatch_time_floor, dispatch_time_ceil]``.
        """
        cfg = self.config
        dispatch_time = request.requested_time or self.clock()
        if use_reference_date and cfg.reference_date is not None and not cfg.has_dispatch_window:
            dispatch_time = cfg.reference_date
        if cfg.dispatch_time_floor is not None and dispatch_time < cfg.dispatch_time_floor:
            dispatch_time = cfg.dispatch_time_floor
        if cfg.dispatch_time_ceil is not None and dispatch_time > cfg.dispatch_time_ceil:
            dispatch_time = cfg.dispatch_time_ceil
        return dispatch_time

    def resolve_demand_site(self, request: Request, skipped: List[SkipRecord]) -> Optional[Node]:
        """The requesting demand site, or None after recording why it cannot be served."""
        node = self.nodes_by_id.get(request.requester_node)
        reason = None
        if node is None:
            reason = SkipReason.UNKNOWN_REQUESTER
        elif not node.is_demand_site:
            reason = SkipReason.REQUESTER_NOT_DEMAND_SITE
        elif node.location is None:
            reason = SkipReason.REQUESTER_MISSING_COORDINATES

        if reason is not None:
            logger.warning(f"Skipping request {request.id}: {reason} ({request.requester_node})")
            skipped.append(SkipRecord(request_id=request.id, reason=reason))
            return None
        return node

    def rank_warehouses(self, demand_site: Node) -> List[RankedWarehouse]:
        """Warehouses with coordinates, nearest first (ties broken by id)."""
        ranked = []
        for warehouse in self.warehouses:
            if warehouse.location is None:
                continue
            distance = haversine_distance_km(warehouse.location, demand_site.location)
            ranked.append(RankedWarehouse(warehouse, distance, self.travel_hours(distance)))
        ranked.sort(key=lambda r: (r.distance_km, r.node.id))
        return ranked

    def travel_hours(self, distance_km: float) -> float:
        cfg = self.config
        return estimate_travel_hours(
            distance_km, cfg.avg_speed_kmh, cfg.rest_break_every_hours, cfg.rest_break_hours
        )

    # ------------------------------------------------------------------
    # Batch evaluation and consumption
    # ------------------------------------------------------------------

    def view_batches(self, snapshot: InventorySnapshot, warehouse: RankedWarehouse,
                     food_type: str, dispatch_time: datetime) -> List[BatchView]:
        """Stored batches of ``food_type`` at the warehouse that exist and are unexpired at dispatch."""
        delivery_time = dispatch_time + timedelta(hours=warehouse.travel_hours)
        avg_temp_c = self.config.avg_temp_c

        views = []
        for batch in snapshot.stored_at(warehouse.node.id, food_type):
            if not batch.available_at(dispatch_time):
                continue
            remaining = remaining_shelf_life_hours(batch, dispatch_time, avg_temp_c)
            if not remaining > 0:
                continue
            views.append(BatchView(
                batch=batch,
                remaining_hours=remaining,
                freshness_at_dispatch=freshness_pct(batch, dispatch_time, avg_temp_c),
                freshness_at_delivery=freshness_pct(batch, delivery_time, avg_temp_c),
            ))
        return views

    def consume(self, views: Sequence[BatchView], required_kg: float, dispatch_time: datetime,
                request_id: str) -> Tuple[List[AllocatedBatch], float]:
        """
        Take stock from ``views`` in order until ``required_kg`` is met.

        Returns:
            Per-batch records and the total quantity allocated
        """
        picked = []
        remaining = required_kg
        for view in views:
            if remaining <= QUANTITY_EPSILON:
                break
            take = min(view.batch.quantity_kg, remaining)
            if take <= 0:
                continue
            view.batch.consume(take, dispatch_time, note=f"Allocated to request {request_id}")
            picked.append(AllocatedBatch(
                batch_id=view.batch.id,
                quantity_kg=take,
                freshness_pct=view.freshness_at_dispatch,
                freshness_at_delivery_pct=view.freshness_at_delivery,
            ))
            remaining -= take

        allocated = min(required_kg, sum(p.quantity_kg for p in picked))
        return picked, allocated

