"""Data models for the allocation engine."""

from .node import Node, NodeKind, GeoPoint
from .batch import Batch, BatchStatus, BatchHistoryEntry
from .request import Request, RequestItem
from .allocation import (
    Allocation,
    AllocatedBatch,
    AppliedTransfer,
    EligibilityTier,
    Strategy,
    TransferSuggestion,
)
from .config import AllocationConfig, ScoreWeights, TransferTuning
from .snapshot import InventorySnapshot

__all__ = [
    # Network
    "Node",
    "NodeKind",
    "GeoPoint",
    # Inventory
    "Batch",
    "BatchStatus",
    "BatchHistoryEntry",
    "InventorySnapshot",
    # Demand
    "Request",
    "RequestItem",
    # Engine output
    "Allocation",
    "AllocatedBatch",
    "AppliedTransfer",
    "EligibilityTier",
    "Strategy",
    "TransferSuggestion",
    # Configuration
    "AllocationConfig",
    "ScoreWeights",
    "TransferTuning",
]
