"""Run configuration for the allocation engine.

Every knob that the allocators and the transfer planner read is a field
here, defaulted from ``perishable_alloc.constants``. A config is passed
explicitly into each ``allocate`` call so behaviour is test-injectable.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from perishable_alloc import constants
from perishable_alloc.models.timestamps import ensure_aware


class ScoreWeights(BaseModel):
    """Weights of the scored allocator's composite score."""
    distance: float = Field(default=constants.DISTANCE_WEIGHT, ge=0)
    freshness: float = Field(default=constants.FRESHNESS_WEIGHT, ge=0)
    expiry_pressure: float = Field(default=constants.EXPIRY_PRESSURE_WEIGHT, ge=0)
    fulfillment: float = Field(default=constants.FULFILLMENT_WEIGHT, ge=0)

    model_config = ConfigDict(frozen=True)


class TransferTuning(BaseModel):
    """Tuning forwarded to the transfer-suggestion service."""
    max_pairs: int = Field(default=constants.TRANSFER_MAX_PAIRS, ge=1)
    min_transfer_kg: float = Field(default=constants.TRANSFER_MIN_TRANSFER_KG, ge=0)
    overstock_ratio: float = Field(default=constants.TRANSFER_OVERSTOCK_RATIO, gt=0)
    understock_ratio: float = Field(default=constants.TRANSFER_UNDERSTOCK_RATIO, ge=0)
    target_ratio: float = Field(default=constants.TRANSFER_TARGET_RATIO, gt=0)
    mode: str = Field(default=constants.TRANSFER_MODE)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_ratios(self) -> "TransferTuning":
        if self.understock_ratio >= self.overstock_ratio:
            raise ValueError(
                f"understock_ratio ({self.understock_ratio}) must be below "
                f"overstock_ratio ({self.overstock_ratio})"
            )
        return self


class AllocationConfig(BaseModel):
    """
    Configuration of one allocation run.

    Attributes are grouped by concern: freshness and travel, the dispatch
    window, scored-allocator thresholds and transfer planning.

    ``reference_date`` makes the scored strategy dispatch as-of that time when
    no floor/ceiling window is set, and anchors the transfer schedule.
    ``allow_spoiled_delivery`` lets allocators pick batches that would arrive
    with zero freshness; it is off unless explicitly requested.
    """
    # Freshness and travel
    avg_temp_c: float = constants.DEFAULT_AVG_TEMP_C
    avg_speed_kmh: float = Field(default=constants.DEFAULT_AVG_SPEED_KMH, gt=0)
    rest_break_every_hours: float = Field(default=constants.REST_BREAK_EVERY_HOURS, gt=0)
    rest_break_hours: float = Field(default=constants.REST_BREAK_HOURS, ge=0)

    # Dispatch window
    dispatch_time_floor: Optional[datetime] = None
    dispatch_time_ceil: Optional[datetime] = None
    reference_date: Optional[datetime] = None

    # Scored allocator
    preferred_min_delivered_freshness_pct: float = Field(
        default=constants.PREFERRED_MIN_DELIVERED_FRESHNESS_PCT, ge=0, le=100
    )
    relaxed_min_delivered_freshness_pct: float = Field(
        default=constants.RELAXED_MIN_DELIVERED_FRESHNESS_PCT, ge=0, le=100
    )
    relaxed_tier_penalty: float = Field(default=constants.RELAXED_TIER_PENALTY, gt=0)
    fallback_tier_penalty: float = Field(default=constants.FALLBACK_TIER_PENALTY, gt=0)
    max_preferred_distance_km: float = Field(default=constants.MAX_PREFERRED_DISTANCE_KM, ge=0)
    hard_max_distance_km: float = Field(default=constants.HARD_MAX_DISTANCE_KM, ge=0)
    distance_decay_km: float = Field(default=constants.DISTANCE_DECAY_KM, gt=0)
    top_k_warehouses: int = Field(default=constants.TOP_K_WAREHOUSES, ge=1)
    widen_below_fulfillment: float = Field(default=constants.WIDEN_BELOW_FULFILLMENT, ge=0, le=1)
    min_in_cap_fulfillment: float = Field(default=constants.MIN_IN_CAP_FULFILLMENT, ge=0, le=1)
    score_weights: ScoreWeights = Field(default_factory=ScoreWeights)
    anomaly_urgency_boost: float = Field(default=constants.ANOMALY_URGENCY_BOOST, gt=0)

    # Explicit override of the no-spoiled-on-delivery rule
    allow_spoiled_delivery: bool = False

    # Transfer planning
    enable_transfer_planner: bool = False
    transfer_cron_hours: Optional[float] = None
    transfer_cron_max_runs: int = Field(default=constants.TRANSFER_CRON_MAX_RUNS, ge=0)
    transfer_tuning: TransferTuning = Field(default_factory=TransferTuning)
    default_warehouse_capacity_kg: float = Field(
        default=constants.DEFAULT_WAREHOUSE_CAPACITY_KG, gt=0
    )

    model_config = ConfigDict(frozen=True)

    @field_validator("dispatch_time_floor", "dispatch_time_ceil", "reference_date")
    @classmethod
    def _aware_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(v)

    @field_validator("transfer_cron_hours")
    @classmethod
    def _positive_cron(cls, v: Optional[float]) -> Optional[float]:
        # Zero or negative intervals mean "one-shot only"
        if v is None or not v > 0:
            return None
        return v

    @model_validator(mode="after")
    def _check_consistency(self) -> "AllocationConfig":
        if self.relaxed_min_delivered_freshness_pct > self.preferred_min_delivered_freshness_pct:
            raise ValueError("relaxed freshness threshold cannot exceed the preferred threshold")
        if (
            self.dispatch_time_floor is not None
            and self.dispatch_time_ceil is not None
            and self.dispatch_time_floor > self.dispatch_time_ceil
        ):
            raise ValueError("dispatch_time_floor must not be after dispatch_time_ceil")
        return self

    @property
    def has_dispatch_window(self) -> bool:
        return self.dispatch_time_floor is not None or self.dispatch_time_ceil is not None

    @property
    def uses_transfer_cron(self) -> bool:
        return self.enable_transfer_planner and self.transfer_cron_hours is not None
