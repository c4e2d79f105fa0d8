"""Node data model for warehouses and demand sites."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from perishable_alloc.constants import DEFAULT_WAREHOUSE_CAPACITY_KG


class NodeKind(str, Enum):
    """Role of a node in the distribution network."""
    WAREHOUSE = "warehouse"
    DEMAND_SITE = "demand_site"


class GeoPoint(BaseModel):
    """Canonical latitude/longitude pair."""
    lat: float = Field(..., description="Latitude in degrees", ge=-90, le=90)
    lon: float = Field(..., description="Longitude in degrees", ge=-180, le=180)

    model_config = ConfigDict(frozen=True)


class Node(BaseModel):
    """
    A warehouse or demand site.

    Nodes are immutable for the duration of an allocation run. A node whose
    coordinates could not be extracted keeps ``location=None`` and is left
    out of every distance ranking.

    Attributes:
        id: Unique node identifier
        name: Human-readable name
        kind: Warehouse or demand site
        location: Coordinates, if they could be extracted
        capacity_kg: Storage capacity in kilograms (warehouses)
        state: Region state, used for demand-signal lookups
        district: Region district, used for demand-signal lookups
        region_id: Fallback region identifier when state is missing
    """
    id: str = Field(..., description="Unique node identifier", min_length=1)
    name: Optional[str] = Field(None, description="Node name")
    kind: NodeKind = Field(..., description="Node role")
    location: Optional[GeoPoint] = Field(None, description="Node coordinates")
    capacity_kg: Optional[float] = Field(None, description="Storage capacity in kg")
    state: Optional[str] = Field(None, description="Region state")
    district: Optional[str] = Field(None, description="Region district")
    region_id: Optional[str] = Field(None, description="Fallback region identifier")

    model_config = ConfigDict(frozen=True)

    @property
    def is_warehouse(self) -> bool:
        return self.kind == NodeKind.WAREHOUSE

    @property
    def is_demand_site(self) -> bool:
        return self.kind == NodeKind.DEMAND_SITE

    @property
    def region_key(self) -> str:
        """Key used to match regional demand signals ("state-district")."""
        return f"{self.state or self.region_id or 'Unknown'}-{self.district or 'Unknown'}"

    def effective_capacity_kg(self, default: float = DEFAULT_WAREHOUSE_CAPACITY_KG) -> float:
        """Capacity in kg, falling back to ``default`` when missing or invalid."""
        if self.capacity_kg is None or not self.capacity_kg > 0:
            return default
        return self.capacity_kg

    def __str__(self) -> str:
        return f"{self.name or self.id} ({self.id}) [{self.kind.value}]"
