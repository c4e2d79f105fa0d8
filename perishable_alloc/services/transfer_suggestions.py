"""Optional warehouse-to-warehouse rebalancing suggestions."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

from pydantic import ValidationError

from perishable_alloc.constants import DEFAULT_SERVICE_TIMEOUT_S
from perishable_alloc.errors import ExternalServiceError
from perishable_alloc.models import Batch, Node, TransferSuggestion, TransferTuning
from perishable_alloc.services.http import JsonServiceClient
from perishable_alloc.services.payloads import batch_document, node_document

logger = logging.getLogger(__name__)


class TransferSuggestionSource(Protocol):
    """Anything that can suggest source/target transfers for a stock picture.

    Implementations report failure by raising ``ExternalServiceError``.
    """

    def plan_transfers(self, warehouses: Sequence[Node], batches: Sequence[Batch],
                       tuning: TransferTuning, at: Optional[datetime] = None) -> List[TransferSuggestion]:
        ...


class NullTransferSuggestionSource:
    """Source used when no transfer-planning service is configured."""

    def plan_transfers(self, warehouses: Sequence[Node], batches: Sequence[Batch],
                       tuning: TransferTuning, at: Optional[datetime] = None) -> List[TransferSuggestion]:
        return []


def _ref_id(ref: Any) -> Optional[str]:
    if isinstance(ref, dict):
        value = ref.get("mongoId") or ref.get("nodeId") or ref.get("id") or ref.get("_id")
        return str(value) if value else None
    return str(ref) if ref else None


def _number(value: Any) -> Optional[float]:
    return float(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else None


def parse_transfer_plan(body: Dict[str, Any]) -> List[TransferSuggestion]:
    """
    Read ``warehouse_to_warehouse[]`` of a plan response.

    Raises:
        ExternalServiceError: If the list is not a list or a row carries badly
            typed fields
    """
    rows = body.get("warehouse_to_warehouse")
    if rows is None:
        return []
    if not isinstance(rows, list):
        raise ExternalServiceError("Transfer plan warehouse_to_warehouse is not a list")

    suggestions = []
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            continue
        try:
            suggestions.append(TransferSuggestion(
                source_node_id=_ref_id(row.get("source")),
                target_node_id=_ref_id(row.get("target")),
                suggested_quantity_kg=_number(row.get("suggested_quantity_kg")),
                distance_km=_number(row.get("distance_km")),
                kind=row.get("type") or "warehouse_to_warehouse",
            ))
        except ValidationError as e:
            raise ExternalServiceError(
                f"Transfer plan row #{index} is malformed ({e.error_count()} validation errors)"
            ) from e
    return suggestions


class HttpTransferSuggestionClient:
    """Calls ``POST /transfers/plan`` on the planning service."""

    def __init__(self, base_url: str, timeout_s: float = DEFAULT_SERVICE_TIMEOUT_S,
                 client: Optional[JsonServiceClient] = None):
        self.client = client or JsonServiceClient(base_url, timeout_s)

    def build_payload(self, warehouses: Sequence[Node], batches: Sequence[Batch],
                      tuning: TransferTuning, at: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            "mode": tuning.mode,
            "includeRoutes": False,
            "maxPairs": tuning.max_pairs,
            "minTransferKg": tuning.min_transfer_kg,
            "overstockRatio": tuning.overstock_ratio,
            "understockRatio": tuning.understock_ratio,
            "targetRatio": tuning.target_ratio,
            "nodes": [node_document(w, include_capacity=True) for w in warehouses],
            "batches": [batch_document(b, at) for b in batches],
        }

    def plan_transfers(self, warehouses: Sequence[Node], batches: Sequence[Batch],
                       tuning: TransferTuning, at: Optional[datetime] = None) -> List[TransferSuggestion]:
        body = self.client.post_json(
            "/transfers/plan", self.build_payload(warehouses, batches, tuning, at)
        )
        suggestions = parse_transfer_plan(body)
        logger.info(f"Transfer planner suggested {len(suggestions)} transfers")
        return suggestions
