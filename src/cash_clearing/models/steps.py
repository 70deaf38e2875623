"""Step result models returned by step executors.

Each step has its own result type tagged by ``step`` so that a result can
only ever be applied to the step that produced it.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class StepError(BaseModel):
    """A transaction-level error reported by an executor."""

    message: str
    transaction_id: Optional[str] = None


class StepResultBase(BaseModel):
    """Fields shared by every step result."""

    processed_count: int = Field(default=0, ge=0)
    failed_count: int = Field(default=0, ge=0)
    errors: list[StepError] = Field(default_factory=list)
    processing_time_ms: Optional[int] = Field(default=None, ge=0)
    fatal_error: Optional[str] = Field(
        default=None, description="When set the step is failed regardless of counts"
    )


class IngestionResult(StepResultBase):
    """Result of step 1: loading unmatched cash transactions."""

    step: Literal[1] = 1
    total_transactions: Optional[int] = Field(
        default=None, ge=0, description="Transaction count discovered by the query"
    )


class MatchResult(StepResultBase):
    """Result of step 2: pattern matching."""

    step: Literal[2] = 2
    average_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class ReviewResult(StepResultBase):
    """Result of step 3: human approval review."""

    step: Literal[3] = 3


class SuggestionResult(StepResultBase):
    """Result of step 4: suggestion generation."""

    step: Literal[4] = 4
    suggestions_created: int = Field(default=0, ge=0)


StepResult = Annotated[
    Union[IngestionResult, MatchResult, ReviewResult, SuggestionResult],
    Field(discriminator="step"),
]

RESULT_TYPES: dict[int, type[StepResultBase]] = {
    1: IngestionResult,
    2: MatchResult,
    3: ReviewResult,
    4: SuggestionResult,
}

_step_result_adapter = TypeAdapter(StepResult)


def parse_step_result(data: dict) -> StepResultBase:
    """Validate a raw mapping into the matching step result type."""
    return _step_result_adapter.validate_python(data)


def failed_result(step: int, message: str, processing_time_ms: Optional[int] = None) -> StepResultBase:
    """Build a failed result for ``step`` carrying ``message`` as the fatal error."""
    return RESULT_TYPES[step](fatal_error=message, processing_time_ms=processing_time_ms)
