"""Time- and temperature-based freshness decay for perishable batches.

Freshness is a derived quality score in [0, 100]:

    temp_factor = 1 + max(0, (avg_temp_c - 20) / 10) * 0.5
    freshness   = 100 - (elapsed_hours / shelf_life_hours) * 100 * temp_factor

A batch without a manufacture date or without a positive shelf life is
treated as non-perishable and always reports 100.
"""

import math
from datetime import datetime

from perishable_alloc.constants import (
    DEFAULT_AVG_TEMP_C,
    TEMP_BASELINE_C,
    TEMP_FACTOR_PER_10C,
)
from perishable_alloc.models.batch import Batch
from perishable_alloc.models.timestamps import ensure_aware

_SECONDS_PER_HOUR = 3600.0


def temperature_factor(avg_temp_c: float = DEFAULT_AVG_TEMP_C) -> float:
    """Spoilage acceleration for temperatures above the 20C baseline."""
    return 1.0 + max(0.0, (avg_temp_c - TEMP_BASELINE_C) / 10.0) * TEMP_FACTOR_PER_10C


def elapsed_hours(batch: Batch, at: datetime) -> float:
    """Hours between the batch's manufacture date and ``at``."""
    return (ensure_aware(at) - batch.manufacture_date).total_seconds() / _SECONDS_PER_HOUR


def freshness_pct(batch: Batch, at: datetime, avg_temp_c: float = DEFAULT_AVG_TEMP_C) -> float:
    """
    Freshness percentage of ``batch`` at time ``at``.

    Args:
        batch: Batch with manufacture_date and shelf_life_hours
        at: Timestamp to evaluate at
        avg_temp_c: Average ambient temperature in Celsius

    Returns:
        Freshness clamped to [0, 100], rounded to 2 decimals
    """
    if not batch.is_perishable:
        return 100.0

    decayed = (elapsed_hours(batch, at) / batch.shelf_life_hours) * 100.0 * temperature_factor(avg_temp_c)
    return round(min(100.0, max(0.0, 100.0 - decayed)), 2)


def is_spoiled(batch: Batch, at: datetime, avg_temp_c: float = DEFAULT_AVG_TEMP_C) -> bool:
    return freshness_pct(batch, at, avg_temp_c) <= 0


def remaining_shelf_life_hours(batch: Batch, at: datetime,
                               avg_temp_c: float = DEFAULT_AVG_TEMP_C) -> float:
    """
    Hours left before ``batch`` reaches zero freshness.

    Non-perishable batches return ``math.inf`` so that, used as a sort key,
    they never crowd out time-critical stock.
    """
    if not batch.is_perishable:
        return math.inf
    effective_life = batch.shelf_life_hours / temperature_factor(avg_temp_c)
    return max(0.0, effective_life - elapsed_hours(batch, at))
