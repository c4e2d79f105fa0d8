"""
Entry points of the allocation engine.

``AllocationEngine.allocate`` runs one strategy over a cloned inventory
snapshot; ``AllocationEngine.compare`` runs both strategies on independent
clones and reports their metrics side by side. The caller's batches are never
mutated.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Union

from perishable_alloc.allocation.base import Clock, SkipRecord
from perishable_alloc.allocation.baseline_allocator import BaselineAllocator
from perishable_alloc.allocation.scored_allocator import ScoredAllocator
from perishable_alloc.analysis.metrics import (
    MetricsAggregator,
    StrategyImprovements,
    StrategyMetrics,
    compute_improvements,
    format_summary,
)
from perishable_alloc.distribution.transfer_planner import TransferPlanner, TransferTrace
from perishable_alloc.errors import AllocationInputError, ExternalServiceError
from perishable_alloc.models import (
    Allocation,
    AllocationConfig,
    Batch,
    InventorySnapshot,
    Node,
    Request,
    Strategy,
)
from perishable_alloc.models.timestamps import utc_now
from perishable_alloc.services.demand_signal import (
    DemandSignalSource,
    HttpDemandSignalClient,
    NullDemandSignalSource,
    signals_by_region,
)
from perishable_alloc.services.settings import ServiceSettings
from perishable_alloc.services.transfer_suggestions import (
    HttpTransferSuggestionClient,
    NullTransferSuggestionSource,
    TransferSuggestionSource,
)
from perishable_alloc.validation.boundary import coerce_batches, coerce_nodes, coerce_requests

logger = logging.getLogger(__name__)


@dataclass
class AllocationResult:
    """
    Outcome of one strategy run.

    Attributes:
        strategy: Strategy that ran
        allocations: Allocations in processing order
        transfer_trace: Transfer-planner trace (disabled for the baseline)
        skipped: Requests and line items that produced no allocation
        demand_signal_status: "disabled", "ok" or "unavailable: <reason>"
        inventory: The run's snapshot after allocation
    """
    strategy: Strategy
    allocations: List[Allocation] = field(default_factory=list)
    transfer_trace: TransferTrace = field(default_factory=TransferTrace)
    skipped: List[SkipRecord] = field(default_factory=list)
    demand_signal_status: str = "disabled"
    inventory: Optional[InventorySnapshot] = None

    @property
    def total_allocated_kg(self) -> float:
        return sum(a.allocated_kg for a in self.allocations)


@dataclass
class ComparisonResult:
    """Baseline and scored runs over the same inputs."""
    baseline: AllocationResult
    scored: AllocationResult
    baseline_metrics: StrategyMetrics
    scored_metrics: StrategyMetrics
    improvements: StrategyImprovements
    summary: str


class AllocationEngine:
    """
    Runs allocation strategies over caller-supplied inventory.

    Args:
        demand_signal_source: Optional regional demand-signal source
        transfer_suggestion_source: Optional transfer-suggestion source
        clock: Returns "now" for requests without timestamps
    """

    def __init__(self, demand_signal_source: Optional[DemandSignalSource] = None,
                 transfer_suggestion_source: Optional[TransferSuggestionSource] = None,
                 clock: Optional[Clock] = None):
        self.demand_signal_source = demand_signal_source or NullDemandSignalSource()
        self.transfer_suggestion_source = transfer_suggestion_source or NullTransferSuggestionSource()
        self.clock = clock or utc_now

    @classmethod
    def from_settings(cls, settings: Optional[ServiceSettings] = None,
                      clock: Optional[Clock] = None) -> "AllocationEngine":
        """Engine wired to the HTTP services named in ``settings`` (or the environment)."""
        settings = settings or ServiceSettings()
        return cls(
            demand_signal_source=HttpDemandSignalClient(
                settings.demand_signal_url, settings.demand_signal_timeout_s
            ),
            transfer_suggestion_source=HttpTransferSuggestionClient(
                settings.transfer_planner_url, settings.transfer_planner_timeout_s
            ),
            clock=clock,
        )

    def allocate(self, requests: Sequence[Any], batches: Sequence[Any], nodes: Sequence[Any],
                 config: Optional[AllocationConfig] = None,
                 strategy: Union[Strategy, str] = Strategy.SCORED) -> AllocationResult:
        """
        Allocate ``requests`` with one strategy.

        Args:
            requests: Request models or raw request records
            batches: Batch models or raw batch records (never mutated)
            nodes: Node models or raw node records
            config: Run configuration (defaults apply when omitted)
            strategy: "baseline" or "scored"

        Returns:
            AllocationResult for the run

        Raises:
            AllocationInputError: If an input is not a list or the strategy is unknown
        """
        strategy = self._resolve_strategy(strategy)
        req_list, batch_list, node_list = self._coerce_inputs(requests, batches, nodes)
        return self._run(strategy, req_list, batch_list, node_list, config or AllocationConfig())

    def compare(self, requests: Sequence[Any], batches: Sequence[Any], nodes: Sequence[Any],
                config: Optional[AllocationConfig] = None,
                baseline_config: Optional[AllocationConfig] = None,
                parallel: bool = False) -> ComparisonResult:
        """
        Run both strategies on independent clones and compare them.

        Args:
            requests: Request models or raw request records
            batches: Batch models or raw batch records (never mutated)
            nodes: Node models or raw node records
            config: Configuration of the scored run
            baseline_config: Configuration of the baseline run (defaults to ``config``)
            parallel: Run the two strategies on a two-worker thread pool

        Returns:
            ComparisonResult with both runs, their metrics and the improvements
        """
        config = config or AllocationConfig()
        baseline_config = baseline_config or config
        req_list, batch_list, node_list = self._coerce_inputs(requests, batches, nodes)

        if parallel:
            with ThreadPoolExecutor(max_workers=2) as executor:
                baseline_future = executor.submit(
                    self._run, Strategy.BASELINE, req_list, batch_list, node_list, baseline_config
                )
                scored_future = executor.submit(
                    self._run, Strategy.SCORED, req_list, batch_list, node_list, config
                )
                baseline = baseline_future.result()
                scored = scored_future.result()
        else:
            baseline = self._run(Strategy.BASELINE, req_list, batch_list, node_list, baseline_config)
            scored = self._run(Strategy.SCORED, req_list, batch_list, node_list, config)

        batches_by_id = {b.id: b for b in batch_list}
        baseline_metrics = MetricsAggregator(baseline_config, batches_by_id).compute(
            baseline.allocations, req_list
        )
        scored_metrics = MetricsAggregator(config, batches_by_id).compute(scored.allocations, req_list)
        improvements = compute_improvements(baseline_metrics, scored_metrics)
        summary = format_summary(improvements)
        logger.info(summary)

        return ComparisonResult(
            baseline=baseline,
            scored=scored,
            baseline_metrics=baseline_metrics,
            scored_metrics=scored_metrics,
            improvements=improvements,
            summary=summary,
        )

    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_strategy(strategy: Union[Strategy, str]) -> Strategy:
        try:
            return Strategy(strategy)
        except ValueError as e:
            raise AllocationInputError(
                f"Unknown strategy {strategy!r}",
                context={"valid_strategies": [s.value for s in Strategy]},
            ) from e

    @staticmethod
    def _coerce_inputs(requests, batches, nodes):
        return coerce_requests(requests), coerce_batches(batches), coerce_nodes(nodes)

    def _run(self, strategy: Strategy, requests: List[Request], batches: List[Batch],
             nodes: List[Node], config: AllocationConfig) -> AllocationResult:
        snapshot = InventorySnapshot.from_batches(batches)
        logger.info(
            f"Running {strategy.value} allocation: {len(requests)} requests, {snapshot}"
        )

        if strategy == Strategy.BASELINE:
            output = BaselineAllocator(nodes, config, self.clock).allocate(requests, snapshot)
            return AllocationResult(
                strategy=strategy,
                allocations=output.allocations,
                transfer_trace=TransferTrace(enabled=False, cron_hours=config.transfer_cron_hours),
                skipped=output.skipped,
                inventory=snapshot,
            )

        signal_status, signals = self._fetch_signals(nodes, requests, snapshot)

        planner = None
        if config.enable_transfer_planner:
            warehouses = [n for n in nodes if n.is_warehouse]
            planner = TransferPlanner(self.transfer_suggestion_source, warehouses, config)

        allocator = ScoredAllocator(nodes, config, self.clock, signals=signals,
                                    transfer_planner=planner)
        output = allocator.allocate(requests, snapshot)

        trace = planner.trace if planner is not None else TransferTrace(
            enabled=False, cron_hours=config.transfer_cron_hours
        )
        return AllocationResult(
            strategy=strategy,
            allocations=output.allocations,
            transfer_trace=trace,
            skipped=output.skipped,
            demand_signal_status=signal_status,
            inventory=snapshot,
        )

    def _fetch_signals(self, nodes: List[Node], requests: List[Request],
                       snapshot: InventorySnapshot):
        if isinstance(self.demand_signal_source, NullDemandSignalSource):
            return "disabled", {}
        try:
            signals = self.demand_signal_source.predict(nodes, requests, snapshot.batches)
        except ExternalServiceError as e:
            logger.warning(f"Demand signals unavailable, allocating without urgency boost: {e}")
            return f"unavailable: {e}", {}
        return "ok", signals_by_region(signals)
