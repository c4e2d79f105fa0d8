"""
Freshness engine for perishable batches.

This module computes time- and temperature-decayed freshness, spoilage
checks and remaining shelf life used by every allocation strategy.
"""

from .freshness import (
    elapsed_hours,
    freshness_pct,
    is_spoiled,
    remaining_shelf_life_hours,
    temperature_factor,
)

__all__ = [
    'elapsed_hours',
    'freshness_pct',
    'is_spoiled',
    'remaining_shelf_life_hours',
    'temperature_factor',
]
