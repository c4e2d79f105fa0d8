"""Optional regional demand-anomaly signals.

The scored allocator boosts warehouses serving a region flagged as anomalous.
Signals are advisory: when the source is missing or fails, allocation runs
unboosted.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

from pydantic import BaseModel, Field, ValidationError

from perishable_alloc.constants import DEFAULT_SERVICE_TIMEOUT_S
from perishable_alloc.errors import ExternalServiceError
from perishable_alloc.models import Batch, Node, Request
from perishable_alloc.services.http import JsonServiceClient
from perishable_alloc.services.payloads import batch_document, node_document, request_document

logger = logging.getLogger(__name__)


class RegionalSignal(BaseModel):
    """Anomaly signal for one state/district pair."""
    state: str = "Unknown"
    district: str = "Unknown"
    anomaly_score: float = 0.0
    is_anomaly: bool = False

    @property
    def region_key(self) -> str:
        return f"{self.state}-{self.district}"


class DemandSignalSource(Protocol):
    """Anything that can produce regional signals for a planning input.

    Implementations report failure by raising ``ExternalServiceError``; any
    other exception propagates out of the allocation run.
    """

    def predict(self, nodes: Sequence[Node], requests: Sequence[Request],
                batches: Sequence[Batch]) -> List[RegionalSignal]:
        ...


class NullDemandSignalSource:
    """Source used when no demand-signal service is configured."""

    def predict(self, nodes: Sequence[Node], requests: Sequence[Request],
                batches: Sequence[Batch]) -> List[RegionalSignal]:
        return []


def parse_signal_results(body: Dict[str, Any]) -> List[RegionalSignal]:
    """
    Read ``results[]`` of a prediction response, ignoring unlabeled rows.

    Raises:
        ExternalServiceError: If the results list is missing or a row carries
            badly typed fields
    """
    results = body.get("results")
    if not isinstance(results, list):
        raise ExternalServiceError("Prediction response has no results list")

    signals = []
    for index, row in enumerate(results):
        if not isinstance(row, dict) or not (row.get("state") or row.get("district")):
            continue
        score = row.get("anomaly_score")
        try:
            signals.append(RegionalSignal(
                state=row.get("state") or "Unknown",
                district=row.get("district") or "Unknown",
                anomaly_score=float(score) if isinstance(score, (int, float)) else 0.0,
                is_anomaly=row.get("is_anomaly") == 1,
            ))
        except ValidationError as e:
            raise ExternalServiceError(
                f"Prediction row #{index} is malformed ({e.error_count()} validation errors)"
            ) from e
    return signals


class HttpDemandSignalClient:
    """Calls ``POST /predict`` on the forecasting service."""

    def __init__(self, base_url: str, timeout_s: float = DEFAULT_SERVICE_TIMEOUT_S,
                 client: Optional[JsonServiceClient] = None):
        self.client = client or JsonServiceClient(base_url, timeout_s)

    def build_payload(self, nodes: Sequence[Node], requests: Sequence[Request],
                      batches: Sequence[Batch]) -> Dict[str, Any]:
        return {
            "freq": "M",
            "nodes": [node_document(n) for n in nodes],
            "requests": [request_document(r) for r in requests],
            "shipments": [],
            "batches": [batch_document(b) for b in batches],
        }

    def predict(self, nodes: Sequence[Node], requests: Sequence[Request],
                batches: Sequence[Batch]) -> List[RegionalSignal]:
        body = self.client.post_json("/predict", self.build_payload(nodes, requests, batches))
        signals = parse_signal_results(body)
        logger.info(f"Received {len(signals)} regional demand signals")
        return signals


def signals_by_region(signals: Sequence[RegionalSignal]) -> Dict[str, RegionalSignal]:
    """Index signals by "state-district"; later rows win on duplicate keys."""
    return {s.region_key: s for s in signals}
