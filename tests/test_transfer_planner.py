"""Tests for transfer planning, suggestion application and the transfer schedule."""

import pytest
from datetime import timedelta
from unittest.mock import MagicMock

from perishable_alloc.allocation import ScoredAllocator
from perishable_alloc.distribution import TransferPlanner, TransferSchedule
from perishable_alloc.errors import ExternalServiceError
from perishable_alloc.models import (
    AllocationConfig,
    InventorySnapshot,
    Node,
    NodeKind,
    TransferSuggestion,
)

from tests.conftest import T0, make_batch, make_request


def _suggest(source, target, qty, distance_km=None):
    return TransferSuggestion(source_node_id=source, target_node_id=target,
                              suggested_quantity_kg=qty, distance_km=distance_km)


@pytest.fixture
def suggestion_source():
    """Transfer-suggestion source that suggests nothing unless told otherwise."""
    source = MagicMock()
    source.plan_transfers.return_value = []
    return source


@pytest.fixture
def planner(suggestion_source, near_warehouse, far_warehouse, default_config):
    return TransferPlanner(suggestion_source, [near_warehouse, far_warehouse], default_config)


class TestImbalanceDetection:
    """Test utilization measurement and the run trigger."""

    def test_scenario_over_and_under_stocked_pair_triggers_run(self, planner, suggestion_source):
        """Planner runs when one warehouse is overstocked and another understocked.

        Given: WH_A at 900/1000 kg and WH_B at 200/1000 kg
        When: The planner runs
        Then: The suggestion source is called once and the run is recorded
        """
        # Arrange
        snapshot = InventorySnapshot.from_batches([
            make_batch("A1", "WH_A", 900.0),
            make_batch("B1", "WH_B", 200.0),
        ])

        # Act
        assert planner.should_run(snapshot)
        planner.run(snapshot, "one-shot", T0)

        # Assert
        suggestion_source.plan_transfers.assert_called_once()
        trace = planner.trace
        assert trace.attempted_runs == 1
        assert trace.runs == 1
        assert trace.imbalance.over_count == 1
        assert trace.imbalance.under_count == 1

    def test_balanced_network_is_skipped(self, planner, suggestion_source):
        snapshot = InventorySnapshot.from_batches([
            make_batch("A1", "WH_A", 500.0),
            make_batch("B1", "WH_B", 500.0),
        ])

        applied = planner.run(snapshot, "one-shot", T0)

        assert applied == []
        suggestion_source.plan_transfers.assert_not_called()
        record = planner.trace.timeline[-1]
        assert record.skipped
        assert not record.attempted
        assert record.imbalance.max_util == 0.5
        assert planner.trace.skipped_runs == 1

    def test_lower_rank_percentiles(self, suggestion_source, default_config):
        """Percentiles pick the element at floor(p * (n - 1)) of the sorted utilizations."""
        # Arrange
        warehouses = [
            Node(id=f"W{i}", kind=NodeKind.WAREHOUSE, capacity_kg=1000.0) for i in range(5)
        ]
        snapshot = InventorySnapshot.from_batches([
            make_batch(f"b{i}", f"W{i}", qty) for i, qty in enumerate([900.0, 100.0, 300.0, 200.0, 400.0])
        ])
        planner = TransferPlanner(suggestion_source, warehouses, default_config)

        # Act
        stats = planner.measure_imbalance(snapshot)

        # Assert
        assert (stats.util_p50, stats.util_p90, stats.util_p95) == (0.3, 0.4, 0.4)
        assert (stats.min_util, stats.max_util) == (0.1, 0.9)
        assert stats.over_count == 1
        assert stats.under_count == 4

    def test_missing_capacity_uses_default(self, suggestion_source, default_config):
        warehouse = Node(id="W1", kind=NodeKind.WAREHOUSE)
        snapshot = InventorySnapshot.from_batches([make_batch("b1", "W1", 5000.0)])

        stats = TransferPlanner(suggestion_source, [warehouse], default_config).measure_imbalance(snapshot)

        assert stats.max_util == 0.5

    def test_empty_network_has_no_percentiles(self, suggestion_source, default_config):
        stats = TransferPlanner(suggestion_source, [], default_config).measure_imbalance(
            InventorySnapshot()
        )
        assert stats.util_p50 is None
        assert not stats.is_imbalanced


class TestApplySuggestions:
    """Test moving and splitting batches between warehouses."""

    def test_scenario_partial_move_splits_batch(self, planner):
        """A 30 kg suggestion against a 100 kg lot splits it.

        Given: B1 with 100 kg at WH_A
        When: A suggestion moves 30 kg from WH_A to WH_B
        Then: B1 keeps 70 kg at WH_A; B1-xfer-1 holds 30 kg at WH_B
        """
        # Arrange
        snapshot = InventorySnapshot.from_batches([make_batch("B1", "WH_A", 100.0)])

        # Act
        applied = planner.apply_suggestions(snapshot, [_suggest("WH_A", "WH_B", 30.0, 44.5)], T0)

        # Assert
        parent = snapshot.get("B1")
        child = snapshot.get("B1-xfer-1")
        assert parent.quantity_kg == 70.0
        assert parent.current_node == "WH_A"
        assert child.quantity_kg == 30.0
        assert child.current_node == "WH_B"
        assert child.parent_batch_id == "B1"
        assert applied[0].applied_quantity_kg == 30.0
        assert applied[0].batch_ids == ["B1-xfer-1"]
        assert applied[0].distance_km == 44.5

    def test_whole_batch_moves_without_split(self, planner):
        snapshot = InventorySnapshot.from_batches([make_batch("B1", "WH_A", 100.0)])

        applied = planner.apply_suggestions(snapshot, [_suggest("WH_A", "WH_B", 100.0)], T0)

        assert len(snapshot) == 1
        assert snapshot.get("B1").current_node == "WH_B"
        assert applied[0].batch_ids == ["B1"]

    def test_soonest_expiring_lot_moves_first(self, planner):
        snapshot = InventorySnapshot.from_batches([
            make_batch("long", "WH_A", 50.0, shelf_life_hours=720.0),
            make_batch("short", "WH_A", 50.0, shelf_life_hours=48.0),
        ])

        applied = planner.apply_suggestions(snapshot, [_suggest("WH_A", "WH_B", 70.0)], T0)

        assert applied[0].batch_ids == ["short", "long-xfer-1"]
        assert snapshot.get("short").current_node == "WH_B"
        assert snapshot.get("long").quantity_kg == 30.0
        assert snapshot.get("long-xfer-1").quantity_kg == 20.0

    def test_larger_lot_breaks_expiry_ties(self, planner):
        snapshot = InventorySnapshot.from_batches([
            make_batch("small", "WH_A", 20.0),
            make_batch("big", "WH_A", 80.0),
        ])

        applied = planner.apply_suggestions(snapshot, [_suggest("WH_A", "WH_B", 80.0)], T0)

        assert applied[0].batch_ids == ["big"]
        assert snapshot.get("small").current_node == "WH_A"

    def test_suggestion_larger_than_stock_moves_what_exists(self, planner):
        snapshot = InventorySnapshot.from_batches([make_batch("B1", "WH_A", 40.0)])

        applied = planner.apply_suggestions(snapshot, [_suggest("WH_A", "WH_B", 100.0)], T0)

        assert applied[0].suggested_quantity_kg == 100.0
        assert applied[0].applied_quantity_kg == 40.0

    @pytest.mark.parametrize("suggestion", [
        _suggest("WH_A", "WH_UNKNOWN", 10.0),
        _suggest("WH_A", "WH_A", 10.0),
        _suggest("WH_A", "WH_B", 0.0),
        _suggest(None, "WH_B", 10.0),
        _suggest("WH_B", "WH_A", 10.0),
    ])
    def test_unusable_suggestions_are_skipped(self, planner, suggestion):
        snapshot = InventorySnapshot.from_batches([make_batch("B1", "WH_A", 100.0)])

        applied = planner.apply_suggestions(snapshot, [suggestion], T0)

        assert applied == []
        assert snapshot.get("B1").current_node == "WH_A"
        assert snapshot.get("B1").quantity_kg == 100.0

    def test_mass_is_conserved(self, planner):
        batches = [make_batch("B1", "WH_A", 73.3), make_batch("B2", "WH_A", 26.9)]
        snapshot = InventorySnapshot.from_batches(batches)

        planner.apply_suggestions(snapshot, [_suggest("WH_A", "WH_B", 41.7)], T0)

        assert snapshot.total_kg() == pytest.approx(100.2)


class TestSourceFailure:
    """Suggestion-source failures never abort allocation."""

    def test_error_is_recorded_in_trace(self, planner, suggestion_source):
        # Arrange
        suggestion_source.plan_transfers.side_effect = ExternalServiceError("bad gateway", status=502)
        snapshot = InventorySnapshot.from_batches([
            make_batch("A1", "WH_A", 900.0),
            make_batch("B1", "WH_B", 100.0),
        ])

        # Act
        applied = planner.run(snapshot, "one-shot", T0)

        # Assert
        assert applied == []
        trace = planner.trace
        assert trace.error_runs == 1
        assert trace.runs == 0
        assert trace.last_error.status == 502
        assert trace.timeline[-1].error.message == "bad gateway"
        assert snapshot.get("A1").quantity_kg == 900.0


class TestTransferSchedule:
    """Test periodic re-runs as dispatch time advances."""

    def test_init_then_one_tick_per_elapsed_interval(self):
        planner = MagicMock()
        schedule = TransferSchedule(planner, 24.0, 250)
        snapshot = InventorySnapshot()

        schedule.advance(snapshot, T0 + timedelta(hours=72), anchor=T0)

        reasons = [c.args[1] for c in planner.run.call_args_list]
        times = [c.args[2] for c in planner.run.call_args_list]
        assert reasons == ["cron init (24h)"] + ["cron tick (24h)"] * 3
        assert times == [T0 + timedelta(hours=h) for h in (0, 24, 48, 72)]

    def test_no_tick_before_interval_elapses(self):
        planner = MagicMock()
        schedule = TransferSchedule(planner, 24.0, 250)
        snapshot = InventorySnapshot()

        schedule.advance(snapshot, T0, anchor=T0)
        schedule.advance(snapshot, T0 + timedelta(hours=23), anchor=T0)

        assert planner.run.call_count == 1

    def test_max_runs_caps_total(self):
        planner = MagicMock()
        schedule = TransferSchedule(planner, 6.0, 2)

        schedule.advance(InventorySnapshot(), T0 + timedelta(days=10), anchor=T0)

        assert planner.run.call_count == 2


class TestScoredIntegration:
    """The scored allocator sees stock moved by the planner."""

    def test_one_shot_rebalance_before_allocation(self, nodes, suggestion_source, fixed_clock):
        """
        Given: WH_B overstocked with 900 kg, WH_A empty
        When: The planner suggests moving 300 kg to WH_A before allocation
        Then: The request is served from the moved lot at the nearer warehouse
        """
        # Arrange
        config = AllocationConfig(enable_transfer_planner=True)
        suggestion_source.plan_transfers.return_value = [_suggest("WH_B", "WH_A", 300.0)]
        warehouses = [n for n in nodes if n.is_warehouse]
        planner = TransferPlanner(suggestion_source, warehouses, config)
        snapshot = InventorySnapshot.from_batches([make_batch("B1", "WH_B", 900.0)])
        allocator = ScoredAllocator(nodes, config, fixed_clock, transfer_planner=planner)

        # Act
        output = allocator.allocate([make_request("R1", "NGO1", ("rice", 100.0))], snapshot)

        # Assert
        allocation = output.allocations[0]
        assert allocation.warehouse_id == "WH_A"
        assert [b.batch_id for b in allocation.batches] == ["B1-xfer-1"]
        assert snapshot.get("B1-xfer-1").quantity_kg == 200.0
        assert planner.trace.applied_transfers == 1
        assert planner.trace.timeline[0].reason == "one-shot"
