"""Analysis utilities for allocation results."""

from .metrics import (
    DATAFRAME_COLUMNS,
    MetricsAggregator,
    StrategyImprovements,
    StrategyMetrics,
    allocations_to_dataframe,
    compute_improvements,
    format_summary,
)

__all__ = [
    'DATAFRAME_COLUMNS',
    'MetricsAggregator',
    'StrategyImprovements',
    'StrategyMetrics',
    'allocations_to_dataframe',
    'compute_improvements',
    'format_summary',
]
