"""Strategy metrics and baseline-versus-scored comparison.

Delivered freshness is projected from each allocation's dispatch time plus
the estimated travel time for its distance. A batch delivered at zero
freshness counts as spoiled; one delivered below 20% counts as at risk.
"""

from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Dict, List, Mapping, Optional, Sequence

import pandas as pd

from perishable_alloc.constants import AT_RISK_FRESHNESS_PCT
from perishable_alloc.models import Allocation, AllocationConfig, Batch, Request
from perishable_alloc.network import estimate_travel_hours
from perishable_alloc.shelf_life import freshness_pct

DATAFRAME_COLUMNS = [
    'request_id', 'food_type', 'strategy', 'tier', 'warehouse_id', 'warehouse_name',
    'distance_km', 'dispatch_time', 'required_kg', 'allocated_kg',
    'batch_id', 'quantity_kg', 'freshness_pct', 'freshness_at_delivery_pct',
]


@dataclass
class StrategyMetrics:
    """Summary of one strategy's allocations. All values rounded to 2 decimals."""
    total_requests: int = 0
    fulfilled_requests: int = 0
    total_required_kg: float = 0.0
    total_allocated_kg: float = 0.0
    fulfillment_rate: float = 0.0
    total_distance_km: float = 0.0
    avg_distance_km: float = 0.0
    avg_freshness: float = 0.0
    delivered_kg: float = 0.0
    delivered_avg_freshness: float = 0.0
    delivered_spoiled_kg: float = 0.0
    delivered_at_risk_kg: float = 0.0

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class StrategyImprovements:
    """Scored strategy relative to the baseline."""
    fulfillment_delta: float = 0.0
    distance_reduction_pct: float = 0.0
    freshness_delta: float = 0.0
    spoilage_reduction_pct: float = 0.0
    kg_saved: float = 0.0

    def to_dict(self) -> Dict:
        return asdict(self)


class MetricsAggregator:
    """
    Computes delivered-freshness, spoilage and fulfilment statistics.

    Args:
        config: Run configuration (temperature and travel assumptions)
        batches_by_id: Batch definitions used to recompute delivered freshness;
            allocations of batches not found here fall back to the freshness
            recorded on the allocation
    """

    def __init__(self, config: Optional[AllocationConfig] = None,
                 batches_by_id: Optional[Mapping[str, Batch]] = None):
        self.config = config or AllocationConfig()
        self.batches_by_id = dict(batches_by_id or {})

    def delivered_freshness(self, allocation: Allocation, batch_id: str,
                            recorded_pct: float) -> float:
        """Freshness of one batch line at its projected delivery time."""
        batch = self.batches_by_id.get(batch_id)
        if batch is None:
            return recorded_pct
        cfg = self.config
        travel = estimate_travel_hours(
            allocation.distance_km, cfg.avg_speed_kmh, cfg.rest_break_every_hours, cfg.rest_break_hours
        )
        delivery_time = allocation.dispatch_time + timedelta(hours=travel)
        return freshness_pct(batch, delivery_time, cfg.avg_temp_c)

    def compute(self, allocations: Sequence[Allocation],
                requests: Sequence[Request] = ()) -> StrategyMetrics:
        """
        Summarize ``allocations``.

        Args:
            allocations: Allocations produced by one strategy
            requests: Requests of the run; their count is reported as ``total_requests``

        Returns:
            StrategyMetrics, all zeros when there are no allocations
        """
        if not allocations:
            return StrategyMetrics()

        total_required = sum(a.required_kg for a in allocations)
        total_allocated = sum(a.allocated_kg for a in allocations)
        fulfillment_rate = (total_allocated / total_required) * 100 if total_required > 0 else 0.0

        allocated_by_request: Dict[str, float] = {}
        for a in allocations:
            allocated_by_request[a.request_id] = allocated_by_request.get(a.request_id, 0.0) + a.allocated_kg
        fulfilled_requests = sum(1 for kg in allocated_by_request.values() if kg > 0)

        total_distance = sum(a.distance_km for a in allocations)
        avg_distance = total_distance / len(allocations)

        batch_means = [
            sum(b.freshness_pct for b in a.batches) / len(a.batches)
            for a in allocations if a.batches
        ]
        avg_freshness = sum(batch_means) / len(allocations)

        delivered_kg = 0.0
        delivered_weighted = 0.0
        spoiled_kg = 0.0
        at_risk_kg = 0.0
        for a in allocations:
            for line in a.batches:
                recorded = (
                    line.freshness_at_delivery_pct
                    if line.freshness_at_delivery_pct is not None else line.freshness_pct
                )
                fresh = self.delivered_freshness(a, line.batch_id, recorded)
                delivered_kg += line.quantity_kg
                delivered_weighted += fresh * line.quantity_kg
                if fresh <= 0:
                    spoiled_kg += line.quantity_kg
                elif fresh < AT_RISK_FRESHNESS_PCT:
                    at_risk_kg += line.quantity_kg

        delivered_avg = delivered_weighted / delivered_kg if delivered_kg > 0 else 0.0

        return StrategyMetrics(
            total_requests=len(requests),
            fulfilled_requests=fulfilled_requests,
            total_required_kg=round(total_required, 2),
            total_allocated_kg=round(total_allocated, 2),
            fulfillment_rate=round(fulfillment_rate, 2),
            total_distance_km=round(total_distance, 2),
            avg_distance_km=round(avg_distance, 2),
            avg_freshness=round(avg_freshness, 2),
            delivered_kg=round(delivered_kg, 2),
            delivered_avg_freshness=round(delivered_avg, 2),
            delivered_spoiled_kg=round(spoiled_kg, 2),
            delivered_at_risk_kg=round(at_risk_kg, 2),
        )

    def annotate_delivered_freshness(self, allocations: Sequence[Allocation]) -> List[Allocation]:
        """Copies of ``allocations`` with every batch line's delivered freshness filled in."""
        annotated = []
        for a in allocations:
            lines = []
            for line in a.batches:
                recorded = (
                    line.freshness_at_delivery_pct
                    if line.freshness_at_delivery_pct is not None else line.freshness_pct
                )
                fresh = self.delivered_freshness(a, line.batch_id, recorded)
                lines.append(line.model_copy(update={'freshness_at_delivery_pct': fresh}))
            annotated.append(a.model_copy(update={'batches': lines}))
        return annotated


def compute_improvements(baseline: StrategyMetrics, scored: StrategyMetrics) -> StrategyImprovements:
    """Deltas of the scored strategy over the baseline; zero where the baseline is zero."""
    distance_reduction = (
        (baseline.avg_distance_km - scored.avg_distance_km) / baseline.avg_distance_km * 100
        if baseline.avg_distance_km > 0 else 0.0
    )
    spoilage_reduction = (
        (baseline.delivered_spoiled_kg - scored.delivered_spoiled_kg) / baseline.delivered_spoiled_kg * 100
        if baseline.delivered_spoiled_kg > 0 else 0.0
    )
    return StrategyImprovements(
        fulfillment_delta=round(scored.fulfillment_rate - baseline.fulfillment_rate, 2),
        distance_reduction_pct=round(distance_reduction, 2),
        freshness_delta=round(scored.avg_freshness - baseline.avg_freshness, 2),
        spoilage_reduction_pct=round(spoilage_reduction, 2),
        kg_saved=round(baseline.delivered_spoiled_kg - scored.delivered_spoiled_kg, 2),
    )


def format_summary(improvements: StrategyImprovements) -> str:
    """One-line human summary of a comparison."""
    imp = improvements
    return (
        f"Scored allocation shows {round(abs(imp.fulfillment_delta))}% "
        f"{'better' if imp.fulfillment_delta >= 0 else 'worse'} fulfillment, "
        f"{round(abs(imp.distance_reduction_pct))}% "
        f"{'less' if imp.distance_reduction_pct >= 0 else 'more'} distance, "
        f"{round(abs(imp.freshness_delta))}% "
        f"{'fresher' if imp.freshness_delta >= 0 else 'less fresh'} inventory at dispatch, and "
        f"{round(abs(imp.spoilage_reduction_pct))}% "
        f"{'less' if imp.spoilage_reduction_pct >= 0 else 'more'} spoilage at delivery "
        f"(~{imp.kg_saved:.2f} kg saved)."
    )


def allocations_to_dataframe(allocations: Sequence[Allocation]) -> pd.DataFrame:
    """Flatten allocations to one row per batch line."""
    rows = []
    for a in allocations:
        base = {
            'request_id': a.request_id,
            'food_type': a.food_type,
            'strategy': a.strategy.value,
            'tier': a.tier.value if a.tier is not None else None,
            'warehouse_id': a.warehouse_id,
            'warehouse_name': a.warehouse_name,
            'distance_km': a.distance_km,
            'dispatch_time': a.dispatch_time,
            'required_kg': a.required_kg,
            'allocated_kg': a.allocated_kg,
        }
        for line in a.batches:
            rows.append({
                **base,
                'batch_id': line.batch_id,
                'quantity_kg': line.quantity_kg,
                'freshness_pct': line.freshness_pct,
                'freshness_at_delivery_pct': line.freshness_at_delivery_pct,
            })
    return pd.DataFrame(rows, columns=DATAFRAME_COLUMNS)
