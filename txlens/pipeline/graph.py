"""LangGraph workflow definition for the transaction analysis pipeline."""

import asyncio
import re

import structlog
from langgraph.graph import END, START, StateGraph

from txlens.config.settings import Settings, get_settings
from txlens.models import ErrorKind, FinalReport, PipelineError
from txlens.pipeline.nodes import (
    calltrace_enrich_node,
    calltrace_explain_node,
    draft_node,
    extract_node,
    output_node,
    verify_node,
)
from txlens.pipeline.nodes.output import build_error_report, emit_terminal
from txlens.pipeline.progress import ProgressHandle, ProgressSink
from txlens.pipeline.runtime import PipelineServices, build_default_services
from txlens.pipeline.state import PipelineState, create_initial_state

logger = structlog.get_logger(__name__)

TX_HASH_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")


class InputError(ValueError):
    """Malformed transaction hash or unsupported chain."""

    pass


def validate_input(tx_hash: str, chain_id: int, settings: Settings) -> None:
    """Reject malformed input before any adapter is built.

    Raises:
        InputError: If the hash or chain id is invalid.
    """
    if not isinstance(tx_hash, str) or not TX_HASH_PATTERN.match(tx_hash):
        raise InputError(f"Invalid transaction hash: {tx_hash!r}")
    if isinstance(chain_id, bool) or not isinstance(chain_id, int) or chain_id <= 0:
        raise InputError(f"Invalid chain id: {chain_id!r}")
    if chain_id not in settings.supported_chain_ids:
        raise InputError(f"Unsupported chain id: {chain_id}")


def should_continue(state: PipelineState) -> str:
    """Route to the output step as soon as a stage recorded an error.

    Args:
        state: Current pipeline state.

    Returns:
        'continue' if no error is set, 'error' otherwise.
    """
    error = state.get("error")
    if error is not None:
        logger.warning("pipeline_short_circuit", stage=error.stage, kind=error.kind.value)
        return "error"
    return "continue"


def build_pipeline() -> StateGraph:
    """Build the LangGraph workflow for transaction analysis.

    Returns:
        StateGraph ready to compile.
    """
    workflow = StateGraph(PipelineState)

    workflow.add_node("extract", extract_node)
    workflow.add_node("calltrace_enrich", calltrace_enrich_node)
    workflow.add_node("calltrace_explain", calltrace_explain_node)
    workflow.add_node("draft", draft_node)
    workflow.add_node("verify", verify_node)
    workflow.add_node("output", output_node)

    workflow.add_edge(START, "extract")

    sequence = ["extract", "calltrace_enrich", "calltrace_explain", "draft", "verify"]
    for current, following in zip(sequence, sequence[1:] + ["output"]):
        workflow.add_conditional_edges(
            current,
            should_continue,
            {
                "continue": following,
                "error": "output",
            },
        )

    workflow.add_edge("output", END)

    return workflow


def create_pipeline_app():
    """Create compiled pipeline application.

    Returns:
        Compiled LangGraph application.
    """
    return build_pipeline().compile()


async def run_pipeline(
    tx_hash: str,
    chain_id: int,
    progress: ProgressHandle | None = None,
    *,
    services: PipelineServices | None = None,
    settings: Settings | None = None,
) -> PipelineState:
    """Execute the pipeline and return the final state.

    Services passed in are left open for their owner; services built here
    from settings are closed before returning.

    Raises:
        InputError: If the input is malformed. No I/O happens in that case.
    """
    settings = settings or (services.settings if services else get_settings())
    validate_input(tx_hash, chain_id, settings)

    owned = services is None
    if owned:
        services = build_default_services(settings, chain_id)

    logger.info("pipeline_starting", tx_hash=tx_hash, chain_id=chain_id)

    try:
        app = create_pipeline_app()
        result = await app.ainvoke(
            create_initial_state(tx_hash, chain_id),
            config={
                "configurable": {
                    "services": services,
                    "progress": progress or ProgressHandle(),
                }
            },
        )
    finally:
        if owned:
            await services.aclose()

    logger.info(
        "pipeline_complete",
        tx_hash=tx_hash,
        error=result.get("error").kind.value if result.get("error") else None,
        warnings=len(result.get("warnings", [])),
    )
    return result


async def run_analysis(
    tx_hash: str,
    chain_id: int,
    sink: ProgressSink | None = None,
    *,
    services: PipelineServices | None = None,
    settings: Settings | None = None,
) -> FinalReport:
    """Explain one transaction. Never raises.

    Args:
        tx_hash: 0x-prefixed 32-byte transaction hash.
        chain_id: Chain the transaction lives on.
        sink: Optional callable receiving ``ProgressEvent``s for this run.
        services: Pre-built adapters; defaults are built from settings.
        settings: Settings override.

    Returns:
        The final report, or an error report whose summary starts with
        ``Error:``.
    """
    progress = ProgressHandle(sink)
    try:
        try:
            state = await run_pipeline(tx_hash, chain_id, progress, services=services, settings=settings)
            report = state.get("final_report")
            if report is None:
                raise RuntimeError("pipeline finished without a report")
            return report
        except InputError as e:
            logger.warning("invalid_input", tx_hash=tx_hash, chain_id=chain_id, error=str(e))
            error = PipelineError(kind=ErrorKind.INPUT, stage="input", message=str(e))
        except Exception as e:
            logger.exception("pipeline_unexpected_error", tx_hash=tx_hash)
            error = PipelineError(
                kind=ErrorKind.INTERNAL,
                stage="pipeline",
                message=f"Unexpected error: {type(e).__name__}: {e}",
            )

        report = build_error_report(error, tx_hash, chain_id)
        if not progress.terminal_emitted:
            await emit_terminal(progress, report, error)
        return report
    finally:
        progress.close()


def analyze_transaction(
    tx_hash: str,
    chain_id: int,
    sink: ProgressSink | None = None,
    *,
    services: PipelineServices | None = None,
    settings: Settings | None = None,
) -> FinalReport:
    """Synchronous wrapper around ``run_analysis``."""
    return asyncio.run(run_analysis(tx_hash, chain_id, sink, services=services, settings=settings))
