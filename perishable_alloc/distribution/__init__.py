"""Inventory rebalancing between warehouses."""

from .transfer_planner import (
    ImbalanceStats,
    TransferError,
    TransferPlanner,
    TransferRunRecord,
    TransferSchedule,
    TransferTrace,
)

__all__ = [
    'ImbalanceStats',
    'TransferError',
    'TransferPlanner',
    'TransferRunRecord',
    'TransferSchedule',
    'TransferTrace',
]
