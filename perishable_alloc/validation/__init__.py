"""Validation of raw inputs at the engine boundary."""

from .boundary import coerce_batches, coerce_nodes, coerce_requests, ensure_record_list

__all__ = [
    'coerce_batches',
    'coerce_nodes',
    'coerce_requests',
    'ensure_record_list',
]
