"""
Scored allocation: composite warehouse scoring over a widened candidate set.

Each warehouse within the hard distance cap is scored on distance, delivered
freshness, expiry pressure and fulfilment, after filtering its batches into
freshness-at-delivery tiers:

    strict    delivered freshness >= preferred threshold
    relaxed   delivered freshness >= relaxed threshold   (score x 0.98)
    fallback  delivered freshness >  0                   (score x 0.95)

The nearest top-K warehouses are scored first; the rest of the in-cap set is
scored only when that wave yields no candidate or none reaching the widening
threshold. A candidate inside the preferred radius wins when it can fulfil a
meaningful share of the line item; otherwise the best candidate overall does.

When a transfer planner is attached it rebalances the run's snapshot before
allocation, or periodically as simulated dispatch time advances.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from perishable_alloc.allocation.base import (
    AllocatorOutput,
    BaseAllocator,
    BatchView,
    Clock,
    RankedWarehouse,
    SkipReason,
    SkipRecord,
)
from perishable_alloc.constants import EXPIRY_PRESSURE_SCALE_HOURS
from perishable_alloc.distribution.transfer_planner import TransferPlanner, TransferSchedule
from perishable_alloc.models import (
    Allocation,
    AllocationConfig,
    EligibilityTier,
    InventorySnapshot,
    Node,
    Request,
    RequestItem,
    Strategy,
)
from perishable_alloc.services.demand_signal import RegionalSignal

logger = logging.getLogger(__name__)


@dataclass
class CandidateEvaluation:
    """Score of one warehouse for one line item."""
    warehouse: RankedWarehouse
    tier: EligibilityTier
    views: List[BatchView]
    score: float
    fulfillment_ratio: float
    weighted_freshness: float
    weighted_expiry_pressure: float


def _by_delivered_freshness(view: BatchView):
    return (-view.freshness_at_delivery, view.remaining_hours)


class ScoredAllocator(BaseAllocator):
    """
    Freshness-aware allocator.

    Args:
        nodes: Warehouses and demand sites of the network
        config: Run configuration
        clock: Returns "now" for requests that carry no timestamp
        signals: Regional demand signals keyed by "state-district"
        transfer_planner: Optional planner applied to the run's snapshot
    """

    strategy = Strategy.SCORED

    def __init__(self, nodes: Sequence[Node], config: AllocationConfig,
                 clock: Optional[Clock] = None,
                 signals: Optional[Dict[str, RegionalSignal]] = None,
                 transfer_planner: Optional[TransferPlanner] = None):
        super().__init__(nodes, config, clock)
        self.signals = signals or {}
        self.transfer_planner = transfer_planner

    def allocate(self, requests: Sequence[Request], snapshot: InventorySnapshot) -> AllocatorOutput:
        cfg = self.config
        output = AllocatorOutput()

        schedule = None
        ordered = list(requests)
        if self.transfer_planner is not None:
            if cfg.uses_transfer_cron:
                schedule = TransferSchedule(
                    self.transfer_planner, cfg.transfer_cron_hours, cfg.transfer_cron_max_runs
                )
                # Periodic rebalancing needs requests in simulated-time order
                ordered.sort(key=lambda r: r.requested_time.timestamp() if r.requested_time else 0.0)
            else:
                self.transfer_planner.run(snapshot, "one-shot", cfg.reference_date or self.clock())

        anchor = None
        for request in ordered:
            demand_site = self.resolve_demand_site(request, output.skipped)
            if demand_site is None:
                continue

            dispatch_time = self.resolve_dispatch_time(request, use_reference_date=True)
            if schedule is not None:
                if anchor is None:
                    anchor = cfg.reference_date or cfg.dispatch_time_floor or dispatch_time
                schedule.advance(snapshot, dispatch_time, anchor)

            boost = self.urgency_boost(demand_site)
            ranked = [
                r for r in self.rank_warehouses(demand_site)
                if r.distance_km <= cfg.hard_max_distance_km
            ]
            for item in request.items:
                allocation = self._allocate_item(request, item, ranked, snapshot, dispatch_time,
                                                 boost, output.skipped)
                if allocation is not None:
                    output.allocations.append(allocation)

        logger.info(
            f"Scored allocator produced {len(output.allocations)} allocations "
            f"({len(output.skipped)} skipped)"
        )
        return output

    def urgency_boost(self, demand_site: Node) -> float:
        signal = self.signals.get(demand_site.region_key)
        if signal is not None and signal.is_anomaly:
            return self.config.anomaly_urgency_boost
        return 1.0

    def select_tier(self, views: List[BatchView]):
        """
        Pick the first non-empty freshness tier.

        Returns:
            Tuple of (tier, penalty, views in consumption order), or None
        """
        cfg = self.config
        tiers = [
            (EligibilityTier.STRICT, 1.0,
             [v for v in views if v.freshness_at_delivery >= cfg.preferred_min_delivered_freshness_pct]),
            (EligibilityTier.RELAXED, cfg.relaxed_tier_penalty,
             [v for v in views if v.freshness_at_delivery >= cfg.relaxed_min_delivered_freshness_pct]),
            (EligibilityTier.FALLBACK, cfg.fallback_tier_penalty,
             [v for v in views if v.freshness_at_delivery > 0]),
        ]
        if cfg.allow_spoiled_delivery:
            tiers.append((EligibilityTier.OVERRIDE, cfg.fallback_tier_penalty, list(views)))

        for tier, penalty, eligible in tiers:
            if eligible:
                return tier, penalty, sorted(eligible, key=_by_delivered_freshness)
        return None

    def evaluate(self, warehouse: RankedWarehouse, snapshot: InventorySnapshot,
                 food_type: str, required_kg: float, dispatch_time: datetime,
                 boost: float) -> Optional[CandidateEvaluation]:
        """Score one warehouse for one line item, or None when it has no eligible stock."""
        cfg = self.config
        selected = self.select_tier(self.view_batches(snapshot, warehouse, food_type, dispatch_time))
        if selected is None:
            return None
        tier, penalty, views = selected

        cumulative = 0.0
        weighted_freshness = 0.0
        weighted_pressure = 0.0
        for view in views:
            usable = min(view.batch.quantity_kg, required_kg - cumulative)
            if usable <= 0:
                break
            weight = usable / required_kg
            weighted_freshness += view.freshness_at_delivery * weight
            weighted_pressure += weight / (1.0 + view.remaining_hours / EXPIRY_PRESSURE_SCALE_HOURS)
            cumulative += usable
            if cumulative >= required_kg:
                break

        total_available = sum(v.batch.quantity_kg for v in views)
        fulfillment = min(1.0, total_available / required_kg)

        weights = cfg.score_weights
        score = (
            math.exp(-warehouse.distance_km / cfg.distance_decay_km) * weights.distance
            + (weighted_freshness / 100.0) * weights.freshness
            + weighted_pressure * weights.expiry_pressure
            + fulfillment * weights.fulfillment
        ) * boost * penalty

        return CandidateEvaluation(
            warehouse=warehouse,
            tier=tier,
            views=views,
            score=score,
            fulfillment_ratio=fulfillment,
            weighted_freshness=weighted_freshness,
            weighted_expiry_pressure=weighted_pressure,
        )

    def choose_candidate(self, ranked: List[RankedWarehouse], snapshot: InventorySnapshot,
                         food_type: str, required_kg: float, dispatch_time: datetime,
                         boost: float) -> Optional[CandidateEvaluation]:
        """Best warehouse for one line item among the in-cap ``ranked`` warehouses."""
        cfg = self.config
        best_overall: Optional[CandidateEvaluation] = None
        best_in_cap: Optional[CandidateEvaluation] = None

        def score_wave(wave: List[RankedWarehouse]):
            nonlocal best_overall, best_in_cap
            for warehouse in wave:
                candidate = self.evaluate(warehouse, snapshot, food_type, required_kg,
                                          dispatch_time, boost)
                if candidate is None:
                    continue
                if best_overall is None or candidate.score > best_overall.score:
                    best_overall = candidate
                if warehouse.distance_km <= cfg.max_preferred_distance_km and (
                    best_in_cap is None or candidate.score > best_in_cap.score
                ):
                    best_in_cap = candidate

        top_k = cfg.top_k_warehouses
        score_wave(ranked[:top_k])
        if len(ranked) > top_k and (
            best_overall is None or best_overall.fulfillment_ratio < cfg.widen_below_fulfillment
        ):
            logger.debug(f"Widening {food_type} search to {len(ranked)} warehouses")
            score_wave(ranked[top_k:])

        if best_in_cap is not None and best_in_cap.fulfillment_ratio >= cfg.min_in_cap_fulfillment:
            return best_in_cap
        return best_overall

    def _allocate_item(self, request: Request, item: RequestItem, ranked: List[RankedWarehouse],
                       snapshot: InventorySnapshot, dispatch_time: datetime, boost: float,
                       skipped: List[SkipRecord]) -> Optional[Allocation]:
        if not ranked:
            skipped.append(SkipRecord(
                request_id=request.id, food_type=item.food_type, reason=SkipReason.NO_WAREHOUSES,
            ))
            return None

        best = self.choose_candidate(ranked, snapshot, item.food_type, item.required_kg,
                                     dispatch_time, boost)
        if best is None:
            skipped.append(SkipRecord(
                request_id=request.id, food_type=item.food_type, reason=SkipReason.NO_ELIGIBLE_STOCK,
            ))
            return None

        picked, allocated = self.consume(best.views, item.required_kg, dispatch_time, request.id)
        if best.tier == EligibilityTier.OVERRIDE:
            logger.warning(f"Request {request.id} allocated {item.food_type} under the spoiled-delivery override")

        return Allocation(
            request_id=request.id,
            food_type=item.food_type,
            required_kg=item.required_kg,
            allocated_kg=allocated,
            warehouse_id=best.warehouse.node.id,
            warehouse_name=best.warehouse.node.name,
            distance_km=best.warehouse.distance_km,
            batches=picked,
            dispatch_time=dispatch_time,
            strategy=self.strategy,
            tier=best.tier,
            score=round(best.score, 6),
        )
