"""Adapters for ledger, trace, explorer and offline lookup sources."""

from .base import (
    ExplorerService,
    LabelStore,
    LedgerQuery,
    MandatoryFetchError,
    SourceUnavailable,
    TraceService,
    Unavailable,
    fetch_optional,
    first_available,
    is_available,
)
from .explorer import EtherscanExplorer
from .labels import SqliteLabelStore
from .rpc import JsonRpcLedger, read_token_info
from .selectors import SelectorDatabase
from .trace import JsonRpcTraceService

__all__ = [
    "LedgerQuery",
    "TraceService",
    "ExplorerService",
    "LabelStore",
    "SourceUnavailable",
    "MandatoryFetchError",
    "Unavailable",
    "fetch_optional",
    "first_available",
    "is_available",
    "JsonRpcLedger",
    "JsonRpcTraceService",
    "EtherscanExplorer",
    "SqliteLabelStore",
    "SelectorDatabase",
    "read_token_info",
]
