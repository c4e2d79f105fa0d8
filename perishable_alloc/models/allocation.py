"""Allocation and transfer records produced by the engine.

These records are produced fresh on every engine invocation; they carry no
persistence responsibility.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from perishable_alloc.models.timestamps import ensure_aware

_QUANTITY_TOLERANCE = 1e-6


class Strategy(str, Enum):
    """Allocation strategy tag."""
    BASELINE = "baseline"
    SCORED = "scored"


class EligibilityTier(str, Enum):
    """Delivered-freshness tier a scored allocation drew from."""
    STRICT = "strict"
    RELAXED = "relaxed"
    FALLBACK = "fallback"
    OVERRIDE = "override"


class AllocatedBatch(BaseModel):
    """Quantity taken from one batch for an allocation."""
    batch_id: str = Field(..., description="Batch ID")
    quantity_kg: float = Field(..., description="Quantity taken in kg", gt=0)
    freshness_pct: float = Field(..., description="Freshness at dispatch", ge=0, le=100)
    freshness_at_delivery_pct: Optional[float] = Field(
        None, description="Projected freshness at delivery", ge=0, le=100
    )


class Allocation(BaseModel):
    """
    One line item's allocation from a single source warehouse.

    Partial fulfilment is normal: ``allocated_kg`` may be below ``required_kg``.

    Attributes:
        request_id: Request the line item belongs to
        food_type: Food type of the line item
        required_kg: Quantity the line item asked for
        allocated_kg: Quantity allocated
        warehouse_id: Source warehouse
        warehouse_name: Source warehouse name
        distance_km: Great-circle distance from warehouse to demand site
        batches: Per-batch quantities
        dispatch_time: When the shipment leaves the warehouse
        strategy: Strategy that produced the allocation
        tier: Eligibility tier used (scored strategy only)
        score: Composite score of the winning warehouse (scored strategy only)
    """
    request_id: str
    food_type: str
    required_kg: float = Field(..., gt=0)
    allocated_kg: float = Field(..., ge=0)
    warehouse_id: str
    warehouse_name: Optional[str] = None
    distance_km: float = Field(..., ge=0)
    batches: List[AllocatedBatch] = Field(default_factory=list)
    dispatch_time: datetime
    strategy: Strategy
    tier: Optional[EligibilityTier] = None
    score: Optional[float] = None

    @field_validator("dispatch_time")
    @classmethod
    def _aware_dispatch(cls, v: datetime) -> datetime:
        return ensure_aware(v)

    @model_validator(mode="after")
    def _check_bounds(self) -> "Allocation":
        if self.allocated_kg > self.required_kg + _QUANTITY_TOLERANCE:
            raise ValueError(
                f"allocated_kg ({self.allocated_kg}) exceeds required_kg ({self.required_kg})"
            )
        batch_total = sum(b.quantity_kg for b in self.batches)
        if self.allocated_kg > batch_total + _QUANTITY_TOLERANCE:
            raise ValueError(
                f"allocated_kg ({self.allocated_kg}) exceeds batch total ({batch_total})"
            )
        return self

    @property
    def shortfall_kg(self) -> float:
        return max(0.0, self.required_kg - self.allocated_kg)


class TransferSuggestion(BaseModel):
    """A source-to-target rebalancing suggestion from the external planner."""
    source_node_id: Optional[str] = Field(None, description="Overstocked warehouse")
    target_node_id: Optional[str] = Field(None, description="Understocked warehouse")
    suggested_quantity_kg: Optional[float] = Field(None, description="Suggested quantity in kg")
    distance_km: Optional[float] = Field(None, description="Distance between the warehouses")
    kind: str = Field(default="warehouse_to_warehouse", description="Suggestion type")


class AppliedTransfer(BaseModel):
    """A suggestion as it was actually applied to the snapshot."""
    kind: str = "warehouse_to_warehouse"
    source_warehouse_id: str
    target_warehouse_id: str
    suggested_quantity_kg: float
    applied_quantity_kg: float
    distance_km: Optional[float] = None
    batch_ids: List[str] = Field(default_factory=list)
