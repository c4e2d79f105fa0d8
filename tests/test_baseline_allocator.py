"""Tests for the rule-based baseline allocator."""

import pytest
from datetime import timedelta

from perishable_alloc.allocation import BaselineAllocator, SkipReason
from perishable_alloc.models import (
    AllocationConfig,
    GeoPoint,
    InventorySnapshot,
    Node,
    NodeKind,
    Strategy,
)

from tests.conftest import T0, make_batch, make_request


class TestNearestWarehouse:
    """Test nearest-warehouse selection."""

    def test_scenario_partial_fill_from_nearest(self, nodes, split_stock_batches, rice_request,
                                                default_config, fixed_clock):
        """Baseline never overflows to a second warehouse.

        Given: 60 kg at the near warehouse A, 100 kg at the far warehouse B
        When: 100 kg of rice are requested
        Then: 60 kg come from A and 40 kg stay unfulfilled
        """
        # Arrange
        snapshot = InventorySnapshot.from_batches(split_stock_batches)
        allocator = BaselineAllocator(nodes, default_config, fixed_clock)

        # Act
        output = allocator.allocate([rice_request], snapshot)

        # Assert
        assert len(output.allocations) == 1
        allocation = output.allocations[0]
        assert allocation.warehouse_id == "WH_A"
        assert allocation.allocated_kg == 60.0
        assert allocation.shortfall_kg == 40.0
        assert allocation.strategy == Strategy.BASELINE
        assert allocation.distance_km == pytest.approx(11.12, abs=0.05)
        assert snapshot.get("A-rice-1").quantity_kg == 0.0
        assert snapshot.get("B-rice-1").quantity_kg == 100.0

    def test_skips_warehouse_without_eligible_stock(self, nodes, default_config, fixed_clock):
        """An expired lot at the near warehouse does not make it eligible."""
        # Arrange
        snapshot = InventorySnapshot.from_batches([
            make_batch("A-old", "WH_A", 80.0, manufactured=T0 - timedelta(hours=300)),
            make_batch("B-new", "WH_B", 80.0),
        ])
        allocator = BaselineAllocator(nodes, default_config, fixed_clock)

        # Act
        output = allocator.allocate([make_request("R1", "NGO1", ("rice", 50.0))], snapshot)

        # Assert
        assert output.allocations[0].warehouse_id == "WH_B"
        assert output.allocations[0].allocated_kg == 50.0

    def test_stock_manufactured_after_dispatch_is_not_available(self, nodes, default_config,
                                                                fixed_clock):
        snapshot = InventorySnapshot.from_batches([
            make_batch("A-future", "WH_A", 80.0, manufactured=T0 + timedelta(hours=1)),
        ])
        allocator = BaselineAllocator(nodes, default_config, fixed_clock)

        output = allocator.allocate([make_request("R1", "NGO1", ("rice", 50.0))], snapshot)

        assert output.allocations == []
        assert output.skipped[0].reason == SkipReason.NO_ELIGIBLE_STOCK

    def test_warehouse_without_coordinates_is_not_ranked(self, demand_site, default_config,
                                                         fixed_clock):
        lost = Node(id="WH_X", kind=NodeKind.WAREHOUSE)
        snapshot = InventorySnapshot.from_batches([make_batch("X1", "WH_X", 80.0)])
        allocator = BaselineAllocator([demand_site, lost], default_config, fixed_clock)

        output = allocator.allocate([make_request("R1", "NGO1", ("rice", 50.0))], snapshot)

        assert output.allocations == []
        assert output.skipped[0].reason == SkipReason.NO_WAREHOUSES


class TestBatchOrdering:
    """Within a warehouse the soonest-to-expire lot ships first."""

    def test_shortest_remaining_life_first(self, nodes, default_config, fixed_clock):
        """Ship-what-expires-first rather than oldest-first.

        Given: An older lot with a long shelf life and a newer lot close to expiry
        When: 30 kg are requested
        Then: The newer, time-critical lot is consumed
        """
        # Arrange
        snapshot = InventorySnapshot.from_batches([
            make_batch("old-long", "WH_A", 50.0, manufactured=T0 - timedelta(hours=48),
                       shelf_life_hours=720.0),
            make_batch("new-short", "WH_A", 50.0, manufactured=T0 - timedelta(hours=4),
                       shelf_life_hours=48.0),
        ])
        allocator = BaselineAllocator(nodes, default_config, fixed_clock)

        # Act
        output = allocator.allocate([make_request("R1", "NGO1", ("rice", 30.0))], snapshot)

        # Assert
        assert [b.batch_id for b in output.allocations[0].batches] == ["new-short"]

    def test_manufacture_time_breaks_ties(self, nodes, default_config, fixed_clock):
        snapshot = InventorySnapshot.from_batches([
            make_batch("later", "WH_A", 20.0, shelf_life_hours=None,
                       manufactured=T0 - timedelta(hours=1)),
            make_batch("earlier", "WH_A", 20.0, shelf_life_hours=None,
                       manufactured=T0 - timedelta(hours=10)),
        ])
        allocator = BaselineAllocator(nodes, default_config, fixed_clock)

        output = allocator.allocate([make_request("R1", "NGO1", ("rice", 30.0))], snapshot)

        lines = output.allocations[0].batches
        assert [(b.batch_id, b.quantity_kg) for b in lines] == [("earlier", 20.0), ("later", 10.0)]

    def test_records_freshness_at_dispatch_and_delivery(self, nodes, default_config, fixed_clock):
        snapshot = InventorySnapshot.from_batches([make_batch("A1", "WH_A", 50.0)])
        allocator = BaselineAllocator(nodes, default_config, fixed_clock)

        output = allocator.allocate([make_request("R1", "NGO1", ("rice", 10.0))], snapshot)

        line = output.allocations[0].batches[0]
        assert 0 < line.freshness_at_delivery_pct <= line.freshness_pct <= 100


class TestSequentialRequests:
    """Later requests observe earlier consumption."""

    def test_second_request_sees_reduced_stock(self, nodes, default_config, fixed_clock):
        snapshot = InventorySnapshot.from_batches([make_batch("A1", "WH_A", 50.0)])
        allocator = BaselineAllocator(nodes, default_config, fixed_clock)
        requests = [
            make_request("R1", "NGO1", ("rice", 40.0)),
            make_request("R2", "NGO1", ("rice", 40.0)),
        ]

        output = allocator.allocate(requests, snapshot)

        assert [a.allocated_kg for a in output.allocations] == [40.0, 10.0]
        assert snapshot.get("A1").quantity_kg == 0.0


class TestDispatchTime:
    """Test dispatch time resolution."""

    def test_clamped_to_floor(self, nodes, fixed_clock):
        floor = T0 + timedelta(hours=6)
        config = AllocationConfig(dispatch_time_floor=floor)
        snapshot = InventorySnapshot.from_batches([make_batch("A1", "WH_A", 50.0)])

        output = BaselineAllocator(nodes, config, fixed_clock).allocate(
            [make_request("R1", "NGO1", ("rice", 10.0))], snapshot
        )

        assert output.allocations[0].dispatch_time == floor

    def test_clock_used_without_request_timestamp(self, nodes, default_config):
        now = T0 + timedelta(hours=3)
        snapshot = InventorySnapshot.from_batches([make_batch("A1", "WH_A", 50.0)])
        request = make_request("R1", "NGO1", ("rice", 10.0), created_on=None)

        output = BaselineAllocator(nodes, default_config, lambda: now).allocate([request], snapshot)

        assert output.allocations[0].dispatch_time == now

    def test_reference_date_does_not_apply(self, nodes, fixed_clock):
        config = AllocationConfig(reference_date=T0 + timedelta(days=2))
        snapshot = InventorySnapshot.from_batches([make_batch("A1", "WH_A", 50.0)])

        output = BaselineAllocator(nodes, config, fixed_clock).allocate(
            [make_request("R1", "NGO1", ("rice", 10.0))], snapshot
        )

        assert output.allocations[0].dispatch_time == T0


class TestSkips:
    """Lookup misses produce skip records, never exceptions."""

    def test_unknown_requester(self, nodes, split_stock_batches, default_config, fixed_clock):
        snapshot = InventorySnapshot.from_batches(split_stock_batches)
        output = BaselineAllocator(nodes, default_config, fixed_clock).allocate(
            [make_request("R1", "NGO-missing", ("rice", 10.0))], snapshot
        )
        assert output.skipped[0].reason == SkipReason.UNKNOWN_REQUESTER

    def test_requester_is_a_warehouse(self, nodes, split_stock_batches, default_config, fixed_clock):
        snapshot = InventorySnapshot.from_batches(split_stock_batches)
        output = BaselineAllocator(nodes, default_config, fixed_clock).allocate(
            [make_request("R1", "WH_B", ("rice", 10.0))], snapshot
        )
        assert output.skipped[0].reason == SkipReason.REQUESTER_NOT_DEMAND_SITE

    def test_requester_without_coordinates(self, near_warehouse, default_config, fixed_clock):
        ngo = Node(id="NGO2", kind=NodeKind.DEMAND_SITE)
        snapshot = InventorySnapshot.from_batches([make_batch("A1", "WH_A", 50.0)])
        output = BaselineAllocator([ngo, near_warehouse], default_config, fixed_clock).allocate(
            [make_request("R1", "NGO2", ("rice", 10.0))], snapshot
        )
        assert output.skipped[0].reason == SkipReason.REQUESTER_MISSING_COORDINATES

    def test_unknown_food_type(self, nodes, split_stock_batches, default_config, fixed_clock):
        snapshot = InventorySnapshot.from_batches(split_stock_batches)
        output = BaselineAllocator(nodes, default_config, fixed_clock).allocate(
            [make_request("R1", "NGO1", ("dal", 10.0), ("rice", 5.0))], snapshot
        )
        assert [a.food_type for a in output.allocations] == ["rice"]
        assert output.skipped[0].food_type == "dal"


class TestSpoiledOnDelivery:
    """Stock that would arrive spoiled is never shipped unless overridden."""

    @pytest.fixture
    def remote_network(self, demand_site):
        remote = Node(id="WH_R", kind=NodeKind.WAREHOUSE, location=GeoPoint(lat=19.0, lon=78.0))
        return [demand_site, remote]

    @pytest.fixture
    def almost_expired(self):
        # Fresh at dispatch (about 6%), spoiled after the ~6h drive
        return make_batch("R1", "WH_R", 40.0, manufactured=T0 - timedelta(hours=75),
                          shelf_life_hours=100.0)

    def test_excluded_by_default(self, remote_network, almost_expired, default_config, fixed_clock):
        snapshot = InventorySnapshot.from_batches([almost_expired])
        output = BaselineAllocator(remote_network, default_config, fixed_clock).allocate(
            [make_request("REQ", "NGO1", ("rice", 10.0))], snapshot
        )
        assert output.allocations == []

    def test_allowed_with_override(self, remote_network, almost_expired, fixed_clock):
        config = AllocationConfig(allow_spoiled_delivery=True)
        snapshot = InventorySnapshot.from_batches([almost_expired])
        output = BaselineAllocator(remote_network, config, fixed_clock).allocate(
            [make_request("REQ", "NGO1", ("rice", 10.0))], snapshot
        )
        assert output.allocations[0].batches[0].freshness_at_delivery_pct == 0.0
