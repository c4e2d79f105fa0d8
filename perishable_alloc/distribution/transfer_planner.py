"""
Warehouse-to-warehouse rebalancing ahead of scored allocation.

The planner measures per-warehouse utilization, asks an external source for
source/target suggestions when the network is imbalanced, and applies them
to the run's inventory snapshot by moving or splitting batches. Lots closest
to expiry move first; larger lots break ties to reduce splitting.

Suggestions are advisory. Every failure of the source is recorded in the
trace and the run continues with the stock picture unchanged.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import numpy as np
from pydantic import BaseModel, Field

from perishable_alloc.constants import QUANTITY_EPSILON
from perishable_alloc.errors import ExternalServiceError
from perishable_alloc.models import (
    AllocationConfig,
    AppliedTransfer,
    InventorySnapshot,
    Node,
    TransferSuggestion,
)
from perishable_alloc.services.transfer_suggestions import TransferSuggestionSource
from perishable_alloc.shelf_life import remaining_shelf_life_hours

logger = logging.getLogger(__name__)


class ImbalanceStats(BaseModel):
    """Utilization summary of the warehouse network at one instant."""
    overstock_ratio: float
    understock_ratio: float
    target_ratio: float
    min_transfer_kg: float
    warehouses: int = 0
    over_count: int = 0
    under_count: int = 0
    max_util: Optional[float] = None
    min_util: Optional[float] = None
    util_p50: Optional[float] = None
    util_p90: Optional[float] = None
    util_p95: Optional[float] = None

    @property
    def is_imbalanced(self) -> bool:
        """At least one overstocked and one understocked warehouse."""
        return self.over_count >= 1 and self.under_count >= 1


class TransferError(BaseModel):
    message: str
    status: Optional[int] = None


class TransferRunRecord(BaseModel):
    """One timeline entry of the transfer trace."""
    at: Optional[datetime] = None
    reason: Optional[str] = None
    skipped: bool = False
    attempted: bool = True
    suggested_count: int = 0
    applied_count: int = 0
    applied_kg: float = 0.0
    error: Optional[TransferError] = None
    imbalance: Optional[ImbalanceStats] = None


class TransferTrace(BaseModel):
    """Debug trace of every planner run during one allocation."""
    enabled: bool = False
    cron_hours: Optional[float] = None
    attempted_runs: int = 0
    runs: int = 0
    skipped_runs: int = 0
    error_runs: int = 0
    last_error: Optional[TransferError] = None
    suggested_transfers: int = 0
    applied_transfers: int = 0
    last_applied: List[AppliedTransfer] = Field(default_factory=list)
    last_suggested_count: int = 0
    imbalance: Optional[ImbalanceStats] = None
    timeline: List[TransferRunRecord] = Field(default_factory=list)


def _utilization_percentile(utils: np.ndarray, p: float) -> Optional[float]:
    # Lower-rank percentile: element at floor(p * (n - 1)) of the sorted values
    if utils.size == 0:
        return None
    return round(float(np.quantile(utils, p, method="lower")), 3)


class TransferPlanner:
    """
    Applies external transfer suggestions to an inventory snapshot.

    Args:
        source: Transfer-suggestion source
        warehouses: Warehouse nodes of the network
        config: Run configuration (tuning, default capacity, temperature)
    """

    def __init__(self, source: TransferSuggestionSource, warehouses: Sequence[Node],
                 config: AllocationConfig):
        self.source = source
        self.warehouses = [w for w in warehouses if w.is_warehouse]
        self.config = config
        self.tuning = config.transfer_tuning
        self._warehouse_ids = {w.id for w in self.warehouses}
        self.trace = TransferTrace(enabled=True, cron_hours=config.transfer_cron_hours)

    def measure_imbalance(self, snapshot: InventorySnapshot) -> ImbalanceStats:
        """Compute per-warehouse utilization statistics for ``snapshot``."""
        stored = snapshot.stored_kg_by_node(self._warehouse_ids)

        utils = []
        over_count = under_count = 0
        for warehouse in self.warehouses:
            capacity = warehouse.effective_capacity_kg(self.config.default_warehouse_capacity_kg)
            util = stored.get(warehouse.id, 0.0) / capacity
            utils.append(util)
            if util >= self.tuning.overstock_ratio:
                over_count += 1
            if util <= self.tuning.understock_ratio:
                under_count += 1

        arr = np.sort(np.asarray(utils, dtype=float))
        return ImbalanceStats(
            overstock_ratio=self.tuning.overstock_ratio,
            understock_ratio=self.tuning.understock_ratio,
            target_ratio=self.tuning.target_ratio,
            min_transfer_kg=self.tuning.min_transfer_kg,
            warehouses=len(self.warehouses),
            over_count=over_count,
            under_count=under_count,
            max_util=round(float(arr.max()), 3) if arr.size else None,
            min_util=round(float(arr.min()), 3) if arr.size else None,
            util_p50=_utilization_percentile(arr, 0.5),
            util_p90=_utilization_percentile(arr, 0.9),
            util_p95=_utilization_percentile(arr, 0.95),
        )

    def should_run(self, snapshot: InventorySnapshot) -> bool:
        stats = self.measure_imbalance(snapshot)
        self.trace.imbalance = stats
        return stats.is_imbalanced

    def apply_suggestions(self, snapshot: InventorySnapshot,
                          suggestions: Sequence[TransferSuggestion],
                          at: datetime) -> List[AppliedTransfer]:
        """
        Move stock between warehouses as suggested.

        A suggestion is skipped when it lacks a source, target or positive
        quantity, names the same warehouse twice, names a node that is not a
        known warehouse, or finds nothing to move at the source.

        Returns:
            One record per suggestion that moved stock
        """
        applied = []
        for suggestion in suggestions:
            source_id = suggestion.source_node_id
            target_id = suggestion.target_node_id
            qty = suggestion.suggested_quantity_kg
            if not source_id or not target_id or qty is None or not qty > 0:
                continue
            if source_id == target_id:
                continue
            if source_id not in self._warehouse_ids or target_id not in self._warehouse_ids:
                logger.warning(f"Skipping transfer {source_id} -> {target_id}: unknown warehouse")
                continue

            moved_ids, total_taken = self._move_stock(snapshot, source_id, target_id, qty, at)
            if total_taken <= 0:
                continue

            applied.append(AppliedTransfer(
                kind=suggestion.kind,
                source_warehouse_id=source_id,
                target_warehouse_id=target_id,
                suggested_quantity_kg=qty,
                applied_quantity_kg=round(total_taken, 2),
                distance_km=suggestion.distance_km,
                batch_ids=moved_ids,
            ))
        return applied

    def _move_stock(self, snapshot: InventorySnapshot, source_id: str, target_id: str,
                    qty: float, at: datetime):
        avg_temp_c = self.config.avg_temp_c
        candidates = sorted(
            snapshot.stored_at(source_id),
            key=lambda b: (remaining_shelf_life_hours(b, at, avg_temp_c), -b.quantity_kg),
        )

        note = f"Rebalanced {source_id} -> {target_id}"
        moved_ids = []
        remaining = qty
        for batch in candidates:
            if remaining <= 0:
                break
            available = batch.quantity_kg
            take = min(available, remaining)
            if take >= available - QUANTITY_EPSILON:
                batch.move_to(target_id, at, note=note)
                moved_ids.append(batch.id)
            else:
                child = batch.split(take, snapshot.next_child_id(batch.id, "xfer"), at)
                child.move_to(target_id, at, note=note)
                snapshot.add(child)
                moved_ids.append(child.id)
            remaining -= take
        return moved_ids, qty - remaining

    def run(self, snapshot: InventorySnapshot, reason: str, at: datetime) -> List[AppliedTransfer]:
        """Run the planner if the network is imbalanced, recording the outcome."""
        if not self.should_run(snapshot):
            self.trace.skipped_runs += 1
            self.trace.timeline.append(TransferRunRecord(
                at=at, reason=reason, skipped=True, attempted=False,
                imbalance=self.trace.imbalance,
            ))
            logger.debug(f"Transfer planner skipped (no imbalance; {reason})")
            return []
        return self._attempt(snapshot, reason, at)

    def _attempt(self, snapshot: InventorySnapshot, reason: str, at: datetime) -> List[AppliedTransfer]:
        self.trace.attempted_runs += 1
        batches = [b for b in snapshot if b.quantity_kg > 0]
        try:
            suggestions = self.source.plan_transfers(self.warehouses, batches, self.tuning, at)
        except ExternalServiceError as e:
            error = TransferError(message=e.message or "transfer planner error", status=e.status)
            self.trace.error_runs += 1
            self.trace.last_error = error
            self.trace.timeline.append(TransferRunRecord(at=at, reason=reason, error=error))
            logger.warning(f"Transfer planner failed ({reason}): {e}")
            return []

        applied = self.apply_suggestions(snapshot, suggestions, at)
        applied_kg = round(sum(t.applied_quantity_kg for t in applied), 2)

        self.trace.runs += 1
        self.trace.suggested_transfers += len(suggestions)
        self.trace.last_suggested_count = len(suggestions)
        self.trace.applied_transfers += len(applied)
        self.trace.last_applied = applied
        self.trace.timeline.append(TransferRunRecord(
            at=at, reason=reason,
            suggested_count=len(suggestions),
            applied_count=len(applied),
            applied_kg=applied_kg,
        ))
        logger.info(f"Transfer planner applied {len(applied)} transfers ({applied_kg} kg, {reason})")
        return applied


class TransferSchedule:
    """
    Re-runs the planner as simulated dispatch time advances.

    The first call anchors the schedule and runs once immediately. Each later
    call runs one tick per full interval elapsed since the previous tick, up
    to ``max_runs`` runs in total.
    """

    def __init__(self, planner: TransferPlanner, interval_hours: float, max_runs: int):
        self.planner = planner
        self.interval = timedelta(hours=interval_hours)
        self.label = f"{interval_hours:g}h"
        self.max_runs = max_runs
        self.runs = 0
        self.next_run_at: Optional[datetime] = None

    def advance(self, snapshot: InventorySnapshot, dispatch_time: datetime,
                anchor: datetime) -> None:
        if self.next_run_at is None:
            self.next_run_at = anchor
            if self.runs < self.max_runs:
                self.runs += 1
                self.planner.run(snapshot, f"cron init ({self.label})", self.next_run_at)

        while self.runs < self.max_runs and dispatch_time >= self.next_run_at + self.interval:
            self.next_run_at = self.next_run_at + self.interval
            self.runs += 1
            self.planner.run(snapshot, f"cron tick ({self.label})", self.next_run_at)

