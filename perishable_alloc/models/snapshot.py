"""In-memory inventory snapshot owned by one allocation run.

Each strategy run receives its own snapshot built from a deep copy of the
caller's batches, so quantity reductions, moves and splits never leak
between runs or back to the caller.
"""

from collections import defaultdict
from typing import Dict, Iterable, Iterator, List, Optional

from perishable_alloc.models.batch import Batch, BatchStatus


class InventorySnapshot:
    """Arena of batches keyed by batch id."""

    def __init__(self, batches: Optional[Iterable[Batch]] = None):
        self._batches: Dict[str, Batch] = {}
        self._child_seq: Dict[str, int] = defaultdict(int)
        for batch in batches or []:
            self.add(batch)

    @classmethod
    def from_batches(cls, batches: Iterable[Batch]) -> "InventorySnapshot":
        """Build a snapshot from deep copies of ``batches``."""
        return cls(batch.model_copy(deep=True) for batch in batches)

    def clone(self) -> "InventorySnapshot":
        return InventorySnapshot.from_batches(self._batches.values())

    def add(self, batch: Batch) -> None:
        """Register a batch.

        Raises:
            ValueError: If a batch with the same id is already present
        """
        if batch.id in self._batches:
            raise ValueError(f"Duplicate batch id in snapshot: {batch.id}")
        self._batches[batch.id] = batch

    def get(self, batch_id: str) -> Optional[Batch]:
        return self._batches.get(batch_id)

    def __contains__(self, batch_id: str) -> bool:
        return batch_id in self._batches

    def __iter__(self) -> Iterator[Batch]:
        return iter(self._batches.values())

    def __len__(self) -> int:
        return len(self._batches)

    @property
    def batches(self) -> List[Batch]:
        return list(self._batches.values())

    def stored_at(self, node_id: str, food_type: Optional[str] = None) -> List[Batch]:
        """Stored batches with quantity left at ``node_id``, optionally of one food type."""
        return [
            b for b in self._batches.values()
            if b.is_stored_at(node_id) and (food_type is None or b.food_type == food_type)
        ]

    def stored_kg_by_node(self, node_ids: Iterable[str]) -> Dict[str, float]:
        """Total stored kg per node, restricted to ``node_ids`` (missing nodes report 0)."""
        totals = {node_id: 0.0 for node_id in node_ids}
        for batch in self._batches.values():
            if batch.status != BatchStatus.STORED or batch.quantity_kg <= 0:
                continue
            if batch.current_node in totals:
                totals[batch.current_node] += batch.quantity_kg
        return totals

    def next_child_id(self, parent_id: str, tag: str) -> str:
        """Derive an unused identifier for a lot split off ``parent_id``."""
        while True:
            self._child_seq[tag] += 1
            candidate = f"{parent_id}-{tag}-{self._child_seq[tag]}"
            if candidate not in self._batches:
                return candidate

    def total_kg(self) -> float:
        return sum(b.quantity_kg for b in self._batches.values())

    def __str__(self) -> str:
        return f"InventorySnapshot(batches={len(self)}, total={self.total_kg():.0f} kg)"
