"""Verify pipeline node: advisory fact check of the draft."""

import structlog
from langchain_core.runnables import RunnableConfig

from txlens.config.prompts import VERIFY_SYSTEM_PROMPT, VERIFY_USER_PROMPT
from txlens.llm.generator import NarrativeError
from txlens.models import ProgressEventType, VerificationResult
from txlens.pipeline.runtime import get_progress, get_services
from txlens.pipeline.state import PipelineState
from txlens.processing.prompt_context import build_ground_truth, parse_verification_reply

logger = structlog.get_logger(__name__)


async def verify_node(state: PipelineState, config: RunnableConfig) -> PipelineState:
    """Check the draft against ledger facts.

    Issues found here never block the report. If the check cannot run the
    result is a pass carrying ``skipped_reason``.
    """
    services = get_services(config)
    progress = get_progress(config)

    logger.info("verify_node_start", enabled=services.settings.verification_enabled)
    await progress.emit(ProgressEventType.VERIFY_START)

    if not services.settings.verification_enabled:
        verification = VerificationResult(passed=True, issues=[])
    else:
        ground_truth = build_ground_truth(state["transaction"], state.get("token_flows", []))
        try:
            reply = await services.generator.generate(
                VERIFY_SYSTEM_PROMPT,
                VERIFY_USER_PROMPT,
                {
                    "ground_truth": ground_truth,
                    "call_trace_explanation": state.get("call_trace_explanation") or "Not available",
                    "draft": state.get("draft_explanation") or "",
                },
                temperature=0.0,
                context_name="verify",
            )
            issues = parse_verification_reply(reply)
            verification = VerificationResult(passed=not issues, issues=issues)
        except NarrativeError as e:
            logger.warning("verification_skipped", error=str(e))
            verification = VerificationResult(passed=True, skipped_reason=str(e))
        except Exception as e:
            logger.exception("verification_unexpected_error")
            verification = VerificationResult(passed=True, skipped_reason=f"{type(e).__name__}: {e}")

    await progress.emit(
        ProgressEventType.VERIFY_DONE,
        {"passed": verification.passed, "issues_count": len(verification.issues)},
    )
    logger.info(
        "verify_node_complete",
        passed=verification.passed,
        issues=len(verification.issues),
        skipped=verification.skipped_reason is not None,
    )

    return {"verification": verification}
