"""Allocation strategies for perishable inventory."""

from .base import AllocatorOutput, BaseAllocator, SkipReason, SkipRecord
from .baseline_allocator import BaselineAllocator
from .scored_allocator import CandidateEvaluation, ScoredAllocator

__all__ = [
    'AllocatorOutput',
    'BaseAllocator',
    'BaselineAllocator',
    'CandidateEvaluation',
    'ScoredAllocator',
    'SkipReason',
    'SkipRecord',
]
