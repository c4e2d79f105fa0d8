"""Pytest configuration and shared fixtures."""

import pytest
from datetime import datetime, timedelta, timezone

from perishable_alloc.models import (
    AllocationConfig,
    Batch,
    GeoPoint,
    Node,
    NodeKind,
    Request,
    RequestItem,
)

# Dispatch instant shared by the allocation scenarios
T0 = datetime(2025, 10, 16, 8, 0, tzinfo=timezone.utc)


def make_batch(batch_id, node_id, quantity_kg, food_type="rice",
               manufactured=None, shelf_life_hours=240.0, **kwargs):
    """Stored batch manufactured two hours before T0 unless told otherwise."""
    return Batch(
        id=batch_id,
        food_type=food_type,
        quantity_kg=quantity_kg,
        origin_node=node_id,
        manufacture_date=manufactured if manufactured is not None else T0 - timedelta(hours=2),
        shelf_life_hours=shelf_life_hours,
        **kwargs,
    )


def make_request(request_id, requester, *items, created_on=T0, **kwargs):
    """Request with (food_type, required_kg) line items."""
    return Request(
        id=request_id,
        requester_node=requester,
        items=[RequestItem(food_type=f, required_kg=kg) for f, kg in items],
        created_on=created_on,
        **kwargs,
    )


@pytest.fixture
def fixed_clock():
    """Clock that always returns T0."""
    return lambda: T0


@pytest.fixture
def demand_site():
    """Fixture for the requesting demand site."""
    return Node(
        id="NGO1",
        name="Food Bank North",
        kind=NodeKind.DEMAND_SITE,
        location=GeoPoint(lat=17.0, lon=78.0),
        state="Telangana",
        district="Hyderabad",
    )


@pytest.fixture
def near_warehouse():
    """Warehouse A, about 11 km from the demand site."""
    return Node(
        id="WH_A",
        name="Warehouse A",
        kind=NodeKind.WAREHOUSE,
        location=GeoPoint(lat=17.1, lon=78.0),
        capacity_kg=1000.0,
    )


@pytest.fixture
def far_warehouse():
    """Warehouse B, about 56 km from the demand site."""
    return Node(
        id="WH_B",
        name="Warehouse B",
        kind=NodeKind.WAREHOUSE,
        location=GeoPoint(lat=17.5, lon=78.0),
        capacity_kg=1000.0,
    )


@pytest.fixture
def nodes(demand_site, near_warehouse, far_warehouse):
    """Network of one demand site and two warehouses."""
    return [demand_site, near_warehouse, far_warehouse]


@pytest.fixture
def split_stock_batches():
    """60 kg of rice at A, 100 kg at B."""
    return [
        make_batch("A-rice-1", "WH_A", 60.0),
        make_batch("B-rice-1", "WH_B", 100.0),
    ]


@pytest.fixture
def rice_request():
    """Request for 100 kg of rice from the demand site."""
    return make_request("REQ1", "NGO1", ("rice", 100.0))


@pytest.fixture
def default_config():
    """Fixture for a default configuration."""
    return AllocationConfig()
