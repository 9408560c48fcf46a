"""Pydantic data models for the pipeline."""

from .enums import ErrorKind, InternalTxSource, PatternType, ProgressEventType
from .transaction import (
    DecodedCall,
    GasContext,
    GasReference,
    InternalTransaction,
    LedgerTransaction,
    LogEntry,
    Receipt,
    TokenFlow,
    TokenInfo,
    Transaction,
)
from .calltrace import AddressInfo, CallTraceNode, FlattenedCall
from .report import FinalReport, PatternMatch, PipelineError, VerificationResult

__all__ = [
    # Enums
    "ErrorKind",
    "InternalTxSource",
    "PatternType",
    "ProgressEventType",
    # Transaction facts
    "Transaction",
    "LedgerTransaction",
    "Receipt",
    "LogEntry",
    "TokenInfo",
    "TokenFlow",
    "DecodedCall",
    "InternalTransaction",
    "GasReference",
    "GasContext",
    # Call trace
    "CallTraceNode",
    "FlattenedCall",
    "AddressInfo",
    # Report
    "PatternMatch",
    "VerificationResult",
    "PipelineError",
    "FinalReport",
]
