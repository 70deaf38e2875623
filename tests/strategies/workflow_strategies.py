"""
Hypothesis strategies for workflow models.

Contains test data generators for step results, approval decisions and
alert operations.
"""

from hypothesis import strategies as st
from hypothesis.strategies import composite

from cash_clearing.models.steps import (
    IngestionResult,
    MatchResult,
    ReviewResult,
    StepError,
    SuggestionResult,
)

# Basic strategies
count_strategy = st.integers(min_value=0, max_value=200)

confidence_strategy = st.floats(min_value=0.0, max_value=1.0, allow_nan=False)

actor_strategy = st.sampled_from(["reviewer-a", "reviewer-b", "ops", "scheduler"])

manual_decision_strategy = st.sampled_from(["approved", "rejected"])

alert_operation_strategy = st.sampled_from(["acknowledge", "resolve"])

step_error_strategy = st.builds(
    StepError,
    message=st.sampled_from(["no pattern", "bad amount", "timeout"]),
    transaction_id=st.one_of(st.none(), st.from_regex(r"txn-[0-9]{1,4}", fullmatch=True)),
)


@composite
def step_result_strategy(draw, step: int):
    """Generate a result for ``step`` with arbitrary counts and errors."""
    fields = dict(
        processed_count=draw(count_strategy),
        failed_count=draw(count_strategy),
        errors=draw(st.lists(step_error_strategy, max_size=3)),
    )
    if draw(st.integers(min_value=0, max_value=9)) == 0:
        fields["fatal_error"] = "executor crashed"

    if step == 1:
        return IngestionResult(
            total_transactions=draw(st.one_of(st.none(), count_strategy)), **fields
        )
    if step == 2:
        return MatchResult(average_confidence=draw(st.one_of(st.none(), confidence_strategy)), **fields)
    if step == 3:
        return ReviewResult(**fields)
    return SuggestionResult(**fields)


# Milliseconds up to roughly 30 days
duration_ms_strategy = st.integers(min_value=0, max_value=30 * 24 * 3600 * 1000)


@composite
def formatted_duration_strategy(draw):
    """Generate a string in the shape format_duration produces."""
    shape = draw(st.sampled_from(["h", "m", "s"]))
    if shape == "h":
        return f"{draw(st.integers(min_value=1, max_value=720))}h {draw(st.integers(min_value=0, max_value=59))}m"
    if shape == "m":
        return f"{draw(st.integers(min_value=1, max_value=59))}m {draw(st.integers(min_value=0, max_value=59))}s"
    return f"{draw(st.integers(min_value=0, max_value=59))}s"
