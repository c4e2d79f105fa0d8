"""Perishable inventory allocation engine.

Allocates warehouse batches to demand-site requests under freshness decay and
distance cost, with a rule-based baseline and a scored strategy that can
rebalance stock between warehouses.
"""

__version__ = "1.0.0"

from .engine import AllocationEngine, AllocationResult, ComparisonResult
from .errors import AllocationInputError, ExternalServiceError
from .models import (
    Allocation,
    AllocationConfig,
    Batch,
    Node,
    NodeKind,
    Request,
    RequestItem,
    Strategy,
)

__all__ = [
    "AllocationEngine",
    "AllocationResult",
    "ComparisonResult",
    "AllocationInputError",
    "ExternalServiceError",
    "Allocation",
    "AllocationConfig",
    "Batch",
    "Node",
    "NodeKind",
    "Request",
    "RequestItem",
    "Strategy",
]
