"""Call-trace enrichment and explanation pipeline nodes."""

import structlog
from langchain_core.runnables import RunnableConfig

from txlens.config.prompts import CALLTRACE_EXPLAIN_SYSTEM_PROMPT, CALLTRACE_EXPLAIN_USER_PROMPT
from txlens.llm.generator import NarrativeError
from txlens.models import ProgressEventType
from txlens.pipeline.runtime import get_progress, get_services
from txlens.pipeline.state import PipelineState
from txlens.processing.calltrace import (
    enrich_addresses,
    flatten_call_tree,
    unique_addresses,
    wrap_internal_transactions,
)
from txlens.processing.prompt_context import build_calltrace_explain_variables

logger = structlog.get_logger(__name__)

NO_TRACE_TEXT = "No call trace available."


async def calltrace_enrich_node(state: PipelineState, config: RunnableConfig) -> PipelineState:
    """Flatten the best available call view and enrich its addresses.

    The execution trace is used when present, otherwise the fused
    internal-transaction list is wrapped as depth-0 calls. Emits
    start/done only when there is at least one call.
    """
    services = get_services(config)
    progress = get_progress(config)
    settings = services.settings

    call_trace = state.get("call_trace")
    if call_trace is not None:
        flattened = flatten_call_tree(call_trace)
    else:
        flattened = wrap_internal_transactions(state.get("internal_txs", []))

    if not flattened:
        logger.info("calltrace_enrich_skipped", reason="no calls")
        return {"flattened_calls": [], "call_trace_enrichment": {}}

    logger.info("calltrace_enrich_node_start", calls=len(flattened), from_trace=call_trace is not None)
    await progress.emit(ProgressEventType.CALLTRACE_ENRICH_START)

    addresses = unique_addresses(flattened)
    enrichment = await enrich_addresses(
        addresses,
        chain_id=state["chain_id"],
        ledger=services.ledger,
        explorer=services.explorer,
        labels=services.labels,
        max_addresses=settings.calltrace_max_addresses,
        concurrency=settings.enrichment_concurrency,
        timeout=settings.source_timeout_seconds,
        source_char_limit=settings.calltrace_source_char_limit,
    )

    await progress.emit(
        ProgressEventType.CALLTRACE_ENRICH_DONE,
        {"addresses_enriched": len(enrichment), "calls": len(flattened)},
    )
    logger.info(
        "calltrace_enrich_node_complete",
        addresses_total=len(addresses),
        addresses_enriched=len(enrichment),
        calls=len(flattened),
    )

    return {"flattened_calls": flattened, "call_trace_enrichment": enrichment}


async def calltrace_explain_node(state: PipelineState, config: RunnableConfig) -> PipelineState:
    """Ask the text generator for a step-by-step reading of the calls.

    A generator failure is not fatal: the explanation becomes a short
    failure note and the run continues.
    """
    services = get_services(config)
    progress = get_progress(config)
    settings = services.settings

    flattened = state.get("flattened_calls", [])
    if not flattened:
        return {"call_trace_explanation": NO_TRACE_TEXT}

    logger.info("calltrace_explain_node_start", calls=len(flattened))
    await progress.emit(ProgressEventType.CALLTRACE_EXPLAIN_START)

    variables = build_calltrace_explain_variables(
        flattened,
        state.get("call_trace_enrichment", {}),
        state.get("address_labels", {}),
        max_calls=settings.calltrace_explain_max_calls,
    )

    try:
        explanation = await services.generator.generate(
            CALLTRACE_EXPLAIN_SYSTEM_PROMPT,
            CALLTRACE_EXPLAIN_USER_PROMPT,
            variables,
            temperature=0.0,
            context_name="calltrace_explain",
        )
        failed = False
    except NarrativeError as e:
        logger.warning("calltrace_explain_failed", error=str(e))
        explanation = f"Failed to explain call trace: {e}"
        failed = True
    except Exception as e:
        logger.exception("calltrace_explain_unexpected_error")
        explanation = f"Failed to explain call trace: {e}"
        failed = True

    await progress.emit(
        ProgressEventType.CALLTRACE_EXPLAIN_DONE,
        {"explanation_length": len(explanation), "failed": failed},
    )
    logger.info("calltrace_explain_node_complete", length=len(explanation), failed=failed)

    return {"call_trace_explanation": explanation}
