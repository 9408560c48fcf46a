"""Pipeline state definition for LangGraph."""

from typing import Annotated, Any, TypedDict

import operator

from txlens.models import (
    AddressInfo,
    CallTraceNode,
    DecodedCall,
    FinalReport,
    FlattenedCall,
    GasContext,
    InternalTransaction,
    InternalTxSource,
    PatternMatch,
    PipelineError,
    Receipt,
    TokenFlow,
    Transaction,
    VerificationResult,
)


class PipelineState(TypedDict, total=False):
    """Run context that flows through the LangGraph pipeline.

    Nodes return partial updates; only ``warnings`` accumulates across nodes.
    """

    # Input
    tx_hash: str
    chain_id: int

    # Extract: ledger facts
    transaction: Transaction | None  # Set once, frozen
    receipt: Receipt | None
    token_flows: list[TokenFlow]
    decoded_call: DecodedCall | None
    contract_abi: list[dict] | None
    contract_source: str | None
    address_labels: dict[str, str]
    gas_context: GasContext | None

    # Extract: internal-transaction views
    trace_internal_txs: list[InternalTransaction]
    explorer_internal_txs: list[InternalTransaction]
    internal_txs: list[InternalTransaction]  # Fused view
    internal_tx_source: InternalTxSource
    call_trace: CallTraceNode | None

    # Call-trace enrichment
    flattened_calls: list[FlattenedCall]
    call_trace_enrichment: dict[str, AddressInfo]
    call_trace_explanation: str | None

    # Narrative
    pattern: PatternMatch | None
    draft_explanation: str | None
    verification: VerificationResult | None

    # Output
    final_report: FinalReport | None

    # Error tracking
    error: PipelineError | None
    warnings: Annotated[list[dict[str, Any]], operator.add]  # Absorbed source failures


def create_initial_state(tx_hash: str, chain_id: int) -> PipelineState:
    """Create initial pipeline state.

    Args:
        tx_hash: Transaction hash to analyze.
        chain_id: Chain the transaction lives on.

    Returns:
        Initial PipelineState dict.
    """
    return PipelineState(
        tx_hash=tx_hash,
        chain_id=chain_id,
        transaction=None,
        receipt=None,
        token_flows=[],
        decoded_call=None,
        contract_abi=None,
        contract_source=None,
        address_labels={},
        gas_context=None,
        trace_internal_txs=[],
        explorer_internal_txs=[],
        internal_txs=[],
        internal_tx_source=InternalTxSource.NONE,
        call_trace=None,
        flattened_calls=[],
        call_trace_enrichment={},
        call_trace_explanation=None,
        pattern=None,
        draft_explanation=None,
        verification=None,
        final_report=None,
        error=None,
        warnings=[],
    )
