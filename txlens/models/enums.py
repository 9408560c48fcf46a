"""Enumeration types for the pipeline models."""

from enum import Enum


class PatternType(str, Enum):
    """Economic behaviour labels produced by the pattern classifier."""

    SANDWICH = "sandwich"
    ARBITRAGE = "arbitrage"
    LIQUIDATION = "liquidation"
    JIT_LIQUIDITY = "jit_liquidity"
    FRONTRUN = "frontrun"
    UNKNOWN = "unknown"


class InternalTxSource(str, Enum):
    """Which data source won the internal-transaction fusion."""

    TRACE = "trace"
    EXPLORER = "explorer"
    NONE = "none"


class ErrorKind(str, Enum):
    """Fatal error categories recorded on the run context."""

    INPUT = "input"
    MANDATORY_FETCH = "mandatory_fetch"
    NARRATIVE = "narrative"
    INTERNAL = "internal"


class ProgressEventType(str, Enum):
    """Progress events emitted during a run, in canonical order."""

    RPC_DONE = "rpc_done"
    ETHERSCAN_START = "etherscan_start"
    ETHERSCAN_DONE = "etherscan_done"
    TENDERLY_START = "tenderly_start"
    TENDERLY_DONE = "tenderly_done"
    CALLTRACE_ENRICH_START = "calltrace_enrich_start"
    CALLTRACE_ENRICH_DONE = "calltrace_enrich_done"
    CALLTRACE_EXPLAIN_START = "calltrace_explain_start"
    CALLTRACE_EXPLAIN_DONE = "calltrace_explain_done"
    DRAFT_START = "draft_start"
    DRAFT_CHUNK = "draft_chunk"
    DRAFT_DONE = "draft_done"
    VERIFY_START = "verify_start"
    VERIFY_DONE = "verify_done"
    ERROR = "error"
    DONE = "done"
