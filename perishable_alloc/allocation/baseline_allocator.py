"""
Rule-based baseline allocation: nearest warehouse with eligible stock.

For each line item the nearest warehouse holding at least one eligible batch
is chosen. Within it, batches are consumed soonest-to-expire first (ties go
to the earliest manufactured), which ships stock before it spoils rather than
strictly oldest-first.
"""

import logging
from typing import List, Sequence

from perishable_alloc.allocation.base import (
    AllocatorOutput,
    BaseAllocator,
    BatchView,
    RankedWarehouse,
    SkipReason,
    SkipRecord,
    availability_sort_time,
)
from perishable_alloc.models import (
    Allocation,
    InventorySnapshot,
    Request,
    RequestItem,
    Strategy,
)

logger = logging.getLogger(__name__)


class BaselineAllocator(BaseAllocator):
    """Nearest-available allocator used as the comparison reference."""

    strategy = Strategy.BASELINE

    def allocate(self, requests: Sequence[Request], snapshot: InventorySnapshot) -> AllocatorOutput:
        """
        Allocate ``requests`` in input order against ``snapshot``.

        Args:
            requests: Requests to serve
            snapshot: Inventory owned by this run; consumed quantities are deducted in place

        Returns:
            Allocations with ``allocated_kg > 0`` and one skip record per unserved item
        """
        output = AllocatorOutput()
        for request in requests:
            demand_site = self.resolve_demand_site(request, output.skipped)
            if demand_site is None:
                continue

            dispatch_time = self.resolve_dispatch_time(request)
            ranked = self.rank_warehouses(demand_site)
            for item in request.items:
                allocation = self._allocate_item(request, item, ranked, snapshot, dispatch_time,
                                                 output.skipped)
                if allocation is not None:
                    output.allocations.append(allocation)

        logger.info(
            f"Baseline allocator produced {len(output.allocations)} allocations "
            f"({len(output.skipped)} skipped)"
        )
        return output

    def eligible_batches(self, snapshot: InventorySnapshot, warehouse: RankedWarehouse,
                         food_type: str, dispatch_time) -> List[BatchView]:
        """Eligible batches at one warehouse, in consumption order."""
        views = [
            v for v in self.view_batches(snapshot, warehouse, food_type, dispatch_time)
            if v.freshness_at_dispatch > 0
            and (self.config.allow_spoiled_delivery or v.freshness_at_delivery > 0)
        ]
        views.sort(key=lambda v: (v.remaining_hours, availability_sort_time(v.batch)))
        return views

    def _allocate_item(self, request: Request, item: RequestItem, ranked: List[RankedWarehouse],
                       snapshot: InventorySnapshot, dispatch_time,
                       skipped: List[SkipRecord]):
        if not ranked:
            skipped.append(SkipRecord(
                request_id=request.id, food_type=item.food_type, reason=SkipReason.NO_WAREHOUSES,
            ))
            return None

        for warehouse in ranked:
            views = self.eligible_batches(snapshot, warehouse, item.food_type, dispatch_time)
            if not views:
                continue

            picked, allocated = self.consume(views, item.required_kg, dispatch_time, request.id)
            if allocated <= 0:
                break
            return Allocation(
                request_id=request.id,
                food_type=item.food_type,
                required_kg=item.required_kg,
                allocated_kg=allocated,
                warehouse_id=warehouse.node.id,
                warehouse_name=warehouse.node.name,
                distance_km=warehouse.distance_km,
                batches=picked,
                dispatch_time=dispatch_time,
                strategy=self.strategy,
            )

        logger.debug(f"No eligible {item.food_type} stock for request {request.id}")
        skipped.append(SkipRecord(
            request_id=request.id, food_type=item.food_type, reason=SkipReason.NO_ELIGIBLE_STOCK,
        ))
        return None
