"""Fulfillment request data model."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from perishable_alloc.models.timestamps import ensure_aware


class RequestItem(BaseModel):
    """One line item of a request."""
    food_type: str = Field(..., description="Requested food type", min_length=1)
    required_kg: float = Field(..., description="Required quantity in kg", gt=0)


class Request(BaseModel):
    """
    A fulfillment request raised by a demand site.

    The engine treats requests as read-only. ``dispatch_time`` may be set by a
    caller that has already decided when the shipment leaves.

    Attributes:
        id: Unique request identifier
        requester_node: ID of the requesting demand-site node
        items: Line items
        created_on: Creation timestamp
        required_by: Optional deadline
        status: Request status (pending, fulfilled, ...)
        dispatch_time: Optional explicit dispatch timestamp
    """
    id: str = Field(..., description="Unique request identifier", min_length=1)
    requester_node: str = Field(..., description="Requesting node ID", min_length=1)
    items: List[RequestItem] = Field(default_factory=list, description="Line items")
    created_on: Optional[datetime] = Field(None, description="Creation timestamp")
    required_by: Optional[datetime] = Field(None, description="Required-by deadline")
    status: str = Field(default="pending", description="Request status")
    dispatch_time: Optional[datetime] = Field(None, description="Explicit dispatch timestamp")

    @field_validator("created_on", "required_by", "dispatch_time")
    @classmethod
    def _aware_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(v)

    @property
    def requested_time(self) -> Optional[datetime]:
        """Timestamp the request asks to be dispatched at, if any."""
        return self.dispatch_time or self.created_on
