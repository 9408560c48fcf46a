"""Draft pipeline node: pattern classification and narrative generation."""

import structlog
from langchain_core.runnables import RunnableConfig

from txlens.config.prompts import DRAFT_SYSTEM_PROMPT, DRAFT_USER_PROMPT
from txlens.llm.client import get_llm_settings
from txlens.llm.generator import NarrativeError
from txlens.models import ErrorKind, PipelineError, ProgressEventType
from txlens.pipeline.runtime import get_progress, get_services
from txlens.pipeline.state import PipelineState
from txlens.processing.prompt_context import build_draft_variables

logger = structlog.get_logger(__name__)


async def draft_node(state: PipelineState, config: RunnableConfig) -> PipelineState:
    """Generate the narrative explanation.

    Streams the generator's output as ``draft_chunk`` events between
    ``draft_start`` and ``draft_done``. A generator failure is fatal for the
    run and is recorded as a ``narrative`` error.

    Args:
        state: Pipeline state after extraction and call-trace stages.
        config: Runnable config carrying services and the progress handle.

    Returns:
        Updated state with pattern and draft_explanation, or error.
    """
    services = get_services(config)
    progress = get_progress(config)
    transaction = state["transaction"]
    token_flows = state.get("token_flows", [])

    logger.info("draft_node_start", tx_hash=state["tx_hash"])

    pattern = services.classifier.classify(transaction, token_flows)
    logger.info(
        "pattern_classified",
        pattern_type=pattern.pattern_type.value,
        confidence=pattern.confidence,
    )

    source = state.get("internal_tx_source")
    variables = build_draft_variables(
        state["tx_hash"],
        state["chain_id"],
        transaction,
        token_flows,
        pattern,
        decoded_call=state.get("decoded_call"),
        address_labels=state.get("address_labels"),
        gas_context=state.get("gas_context"),
        internal_txs=state.get("internal_txs"),
        internal_tx_source=source.value if source is not None else "none",
        explorer_internal_txs=state.get("explorer_internal_txs"),
        call_trace=state.get("call_trace"),
        flattened_calls=state.get("flattened_calls"),
        call_trace_explanation=state.get("call_trace_explanation"),
        contract_source=state.get("contract_source"),
    )

    await progress.emit(ProgressEventType.DRAFT_START)

    async def forward_chunk(chunk: str) -> None:
        await progress.emit(ProgressEventType.DRAFT_CHUNK, {"text": chunk})

    try:
        draft = await services.generator.generate(
            DRAFT_SYSTEM_PROMPT,
            DRAFT_USER_PROMPT,
            variables,
            temperature=get_llm_settings().draft_temperature,
            on_chunk=forward_chunk if progress.active else None,
            context_name="draft",
        )
    except NarrativeError as e:
        logger.error("draft_generation_failed", error=str(e))
        return {
            "pattern": pattern,
            "error": PipelineError(
                kind=ErrorKind.NARRATIVE,
                stage="draft",
                message=f"Failed to generate explanation: {e}",
            ),
        }

    await progress.emit(ProgressEventType.DRAFT_DONE, {"length": len(draft)})
    logger.info("draft_node_complete", length=len(draft))

    return {"pattern": pattern, "draft_explanation": draft}
