"""Batch data model for perishable inventory lots.

A batch is a physical lot of one food type with its own perishability clock.
Batches are only ever quantity-reduced, moved or split; they are never
deleted. A batch reduced to zero stays in the snapshot as a retired lot.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from perishable_alloc.models.timestamps import ensure_aware


class BatchStatus(str, Enum):
    """Lifecycle status of a batch."""
    STORED = "stored"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    SPOILED = "spoiled"


class BatchHistoryEntry(BaseModel):
    """One append-only entry of a batch's movement log."""
    time: datetime = Field(..., description="When the action happened")
    action: str = Field(..., description="Action name (split, transfer, allocated, ...)")
    from_node: Optional[str] = Field(None, description="Node the batch left")
    to_node: Optional[str] = Field(None, description="Node the batch reached")
    note: Optional[str] = Field(None, description="Free-text note")

    @field_validator("time")
    @classmethod
    def _aware_time(cls, v: datetime) -> datetime:
        return ensure_aware(v)


class Batch(BaseModel):
    """
    A lot of a single food type held at a node.

    Attributes:
        id: Unique batch identifier
        food_type: Food type of the lot (e.g., "rice")
        quantity_kg: Current quantity in kilograms
        original_quantity_kg: Quantity at creation (defaults to quantity_kg)
        origin_node: Node where the lot entered the network
        current_node: Node currently holding the lot
        status: Lifecycle status
        manufacture_date: Start of the perishability clock
        created_at: Availability timestamp used when manufacture_date is absent
        shelf_life_hours: Shelf life; absent means non-perishable
        initial_temp_c: Ambient temperature at creation
        parent_batch_id: Set on lots produced by a split
        history: Append-only movement log
    """
    id: str = Field(..., description="Unique batch identifier", min_length=1)
    food_type: str = Field(..., description="Food type", min_length=1)
    quantity_kg: float = Field(..., description="Current quantity in kg", ge=0)
    original_quantity_kg: Optional[float] = Field(None, description="Quantity at creation", ge=0)
    origin_node: Optional[str] = Field(None, description="Origin node ID")
    current_node: Optional[str] = Field(None, description="Current node ID")
    status: BatchStatus = Field(default=BatchStatus.STORED, description="Lifecycle status")
    manufacture_date: Optional[datetime] = Field(None, description="Manufacture timestamp")
    created_at: Optional[datetime] = Field(None, description="Record creation timestamp")
    shelf_life_hours: Optional[float] = Field(None, description="Shelf life in hours")
    initial_temp_c: Optional[float] = Field(None, description="Initial ambient temperature")
    parent_batch_id: Optional[str] = Field(None, description="Parent batch for split lots")
    history: List[BatchHistoryEntry] = Field(default_factory=list, description="Movement log")

    @field_validator("manufacture_date", "created_at")
    @classmethod
    def _aware_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(v)

    @model_validator(mode="after")
    def _default_original_quantity(self) -> "Batch":
        if self.original_quantity_kg is None:
            self.original_quantity_kg = self.quantity_kg
        if self.current_node is None:
            self.current_node = self.origin_node
        return self

    @property
    def is_perishable(self) -> bool:
        """True when both a manufacture date and a positive shelf life are known."""
        return (
            self.manufacture_date is not None
            and self.shelf_life_hours is not None
            and self.shelf_life_hours > 0
        )

    @property
    def availability_time(self) -> Optional[datetime]:
        """Timestamp from which the lot can be dispatched."""
        return self.manufacture_date or self.created_at

    def available_at(self, at: datetime) -> bool:
        """Check whether the lot exists by ``at`` (no timestamp means always)."""
        available_from = self.availability_time
        return available_from is None or available_from <= at

    def is_stored_at(self, node_id: str) -> bool:
        return (
            self.status == BatchStatus.STORED
            and self.current_node == node_id
            and self.quantity_kg > 0
        )

    def record(self, at: datetime, action: str, from_node: Optional[str] = None,
               to_node: Optional[str] = None, note: Optional[str] = None) -> None:
        """Append a history entry."""
        self.history.append(BatchHistoryEntry(
            time=at, action=action, from_node=from_node, to_node=to_node, note=note,
        ))

    def consume(self, quantity_kg: float, at: datetime, note: Optional[str] = None) -> float:
        """
        Reduce the lot by ``quantity_kg``.

        Args:
            quantity_kg: Quantity to remove; must be positive and not exceed the lot
            at: Timestamp recorded in the history
            note: Optional history note

        Returns:
            Quantity remaining in the lot

        Raises:
            ValueError: If quantity_kg is non-positive or larger than the lot
        """
        if quantity_kg <= 0:
            raise ValueError(f"Consumed quantity must be positive: {quantity_kg}")
        if quantity_kg > self.quantity_kg + 1e-9:
            raise ValueError(
                f"Cannot consume {quantity_kg} kg from batch {self.id} holding {self.quantity_kg} kg"
            )
        self.quantity_kg = max(0.0, self.quantity_kg - quantity_kg)
        self.record(at, "allocated", from_node=self.current_node, note=note)
        return self.quantity_kg

    def move_to(self, node_id: str, at: datetime, note: Optional[str] = None) -> None:
        """Reassign the whole lot to ``node_id``."""
        previous = self.current_node
        self.current_node = node_id
        self.record(at, "transfer", from_node=previous, to_node=node_id, note=note)

    def split(self, quantity_kg: float, child_id: str, at: datetime,
              note: Optional[str] = None) -> "Batch":
        """
        Split ``quantity_kg`` off into a new child lot at the same node.

        The parent keeps ``Q - k`` and the child receives the rest of ``Q``, so
        retained plus child is exactly the parent's quantity before the split.
        The child inherits every perishability attribute unchanged.

        Args:
            quantity_kg: Quantity for the child; strictly between 0 and the lot size
            child_id: Identifier of the new lot
            at: Timestamp recorded in both histories
            note: Optional history note

        Returns:
            The new child batch

        Raises:
            ValueError: If quantity_kg is not strictly inside (0, quantity_kg)
        """
        total = self.quantity_kg
        if not 0 < quantity_kg < total:
            raise ValueError(
                f"Split quantity must be between 0 and {total} kg for batch {self.id}: {quantity_kg}"
            )
        retained = total - quantity_kg
        child_quantity = total - retained

        child = self.model_copy(deep=True, update={
            "id": child_id,
            "quantity_kg": child_quantity,
            "parent_batch_id": self.id,
        })
        self.quantity_kg = retained

        self.record(at, "split", from_node=self.current_node, to_node=self.current_node,
                    note=note or f"Reduced by {child_quantity} kg (child: {child_id})")
        child.record(at, "split", from_node=self.current_node, to_node=self.current_node,
                     note=note or f"Split from batch {self.id}")
        return child

    def __str__(self) -> str:
        return (
            f"Batch {self.id}: {self.quantity_kg:.2f} kg of {self.food_type} "
            f"at {self.current_node} [{self.status.value}]"
        )
