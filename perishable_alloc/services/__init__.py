"""Adapters for the optional external collaborators."""

from .settings import ServiceSettings, resolve_base_url
from .http import JsonServiceClient
from .demand_signal import (
    DemandSignalSource,
    HttpDemandSignalClient,
    NullDemandSignalSource,
    RegionalSignal,
    parse_signal_results,
    signals_by_region,
)
from .transfer_suggestions import (
    HttpTransferSuggestionClient,
    NullTransferSuggestionSource,
    TransferSuggestionSource,
    parse_transfer_plan,
)

__all__ = [
    "ServiceSettings",
    "resolve_base_url",
    "JsonServiceClient",
    "DemandSignalSource",
    "HttpDemandSignalClient",
    "NullDemandSignalSource",
    "RegionalSignal",
    "parse_signal_results",
    "signals_by_region",
    "HttpTransferSuggestionClient",
    "NullTransferSuggestionSource",
    "TransferSuggestionSource",
    "parse_transfer_plan",
]
