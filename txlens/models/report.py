"""Models for the final structured report."""

from typing import Any

from pydantic import BaseModel, Field

from .enums import ErrorKind, PatternType
from .transaction import InternalTransaction, TokenFlow


class PatternMatch(BaseModel):
    """Result of the pattern classifier."""

    pattern_type: PatternType = PatternType.UNKNOWN
    confidence: float = Field(default=1.0, ge=0, le=1)
    details: dict[str, Any] = Field(default_factory=dict)


class VerificationResult(BaseModel):
    """Advisory fact-check outcome for the draft narrative."""

    passed: bool = True
    issues: list[str] = Field(default_factory=list)
    skipped_reason: str | None = Field(None, description="Why the check did not run")


class PipelineError(BaseModel):
    """Record of the fatal error that stopped a run."""

    kind: ErrorKind
    stage: str
    message: str


class FinalReport(BaseModel):
    """The explanation returned to the caller."""

    summary: str = Field(..., description="Narrative explanation or error message")
    pattern_type: PatternType = PatternType.UNKNOWN
    steps: list[str] = Field(default_factory=list)
    token_flows: list[TokenFlow] = Field(default_factory=list)
    technical_details: dict[str, Any] = Field(default_factory=dict)
    verification: VerificationResult | None = None
    call_trace_explanation: str | None = None

    internal_transactions: list[InternalTransaction] = Field(
        default_factory=list, description="Fused internal-transaction view"
    )
    explorer_internal_transactions: list[InternalTransaction] = Field(
        default_factory=list, description="Explorer view kept for cross-checking"
    )

    @property
    def is_error(self) -> bool:
        return "error_kind" in self.technical_details
