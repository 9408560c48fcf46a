"""Output pipeline node: final report assembly and the terminal event."""

from typing import Any

import structlog
from langchain_core.runnables import RunnableConfig

from txlens.models import FinalReport, PatternType, PipelineError, ProgressEventType
from txlens.pipeline.progress import ProgressHandle
from txlens.pipeline.runtime import get_progress
from txlens.pipeline.state import PipelineState
from txlens.processing.prompt_context import extract_steps
from txlens.processing.units import format_units, wei_to_eth

logger = structlog.get_logger(__name__)

NO_EXPLANATION_TEXT = "No explanation generated"


def build_error_report(
    error: PipelineError,
    tx_hash: str | None = None,
    chain_id: int | None = None,
    state: PipelineState | None = None,
) -> FinalReport:
    """Report for a run that stopped on a fatal error.

    Whatever facts were already gathered are kept.
    """
    state = state or {}
    details: dict[str, Any] = {
        "tx_hash": tx_hash,
        "chain_id": chain_id,
        "error_kind": error.kind.value,
        "error_stage": error.stage,
    }
    transaction = state.get("transaction")
    if transaction is not None:
        details["block_number"] = transaction.block_number

    return FinalReport(
        summary=f"Error: {error.message}",
        pattern_type=PatternType.UNKNOWN,
        token_flows=state.get("token_flows", []),
        technical_details=details,
        internal_transactions=state.get("internal_txs", []),
        explorer_internal_transactions=state.get("explorer_internal_txs", []),
    )


def build_report(state: PipelineState) -> FinalReport:
    transaction = state["transaction"]
    pattern = state.get("pattern")
    draft = state.get("draft_explanation") or NO_EXPLANATION_TEXT
    decoded_call = state.get("decoded_call")
    gas_context = state.get("gas_context")
    source = state.get("internal_tx_source")

    technical_details: dict[str, Any] = {
        "tx_hash": state["tx_hash"],
        "chain_id": state["chain_id"],
        "block_number": transaction.block_number,
        "status": transaction.status,
        "gas_used": transaction.gas_used,
        "gas_price_gwei": format_units(transaction.gas_price, 9),
        "from": transaction.from_address,
        "to": transaction.to_address,
        "contract_address": transaction.contract_address,
        "value_eth": wei_to_eth(transaction.value),
        "pattern_confidence": pattern.confidence if pattern else None,
        "gas_context": gas_context.model_dump() if gas_context else None,
        "decoded_call": decoded_call.model_dump() if decoded_call else None,
        "address_labels": state.get("address_labels", {}),
        "internal_tx_source": source.value if source is not None else "none",
        "unavailable_sources": sorted({w["source"] for w in state.get("warnings", [])}),
    }

    return FinalReport(
        summary=draft,
        pattern_type=pattern.pattern_type if pattern else PatternType.UNKNOWN,
        steps=extract_steps(draft),
        token_flows=state.get("token_flows", []),
        technical_details=technical_details,
        verification=state.get("verification"),
        call_trace_explanation=state.get("call_trace_explanation"),
        internal_transactions=state.get("internal_txs", []),
        explorer_internal_transactions=state.get("explorer_internal_txs", []),
    )


async def emit_terminal(progress: ProgressHandle, report: FinalReport, error: PipelineError | None = None) -> None:
    """Emit ``error`` (when failed) followed by the single ``done`` event."""
    if error is not None:
        await progress.emit(ProgressEventType.ERROR, {"message": error.message, "step": error.stage})
    await progress.emit(ProgressEventType.DONE, {"report": report.model_dump(mode="json")})


async def output_node(state: PipelineState, config: RunnableConfig) -> PipelineState:
    """Assemble the final report and emit the terminal event.

    Args:
        state: Final pipeline state.
        config: Runnable config carrying the progress handle.

    Returns:
        Updated state with final_report.
    """
    progress = get_progress(config)
    error = state.get("error")

    logger.info("output_node_start", has_error=error is not None)

    if error is not None:
        report = build_error_report(error, state.get("tx_hash"), state.get("chain_id"), state)
    else:
        report = build_report(state)

    await emit_terminal(progress, report, error)

    logger.info(
        "output_node_complete",
        pattern_type=report.pattern_type.value,
        steps=len(report.steps),
        is_error=report.is_error,
    )
    return {"final_report": report}
