"""
Hypothesis strategies for property-based testing.
"""

from tests.strategies.workflow_strategies import (
    count_strategy,
    confidence_strategy,
    actor_strategy,
    manual_decision_strategy,
    alert_operation_strategy,
    step_error_strategy,
    step_result_strategy,
    duration_ms_strategy,
    formatted_duration_strategy,
)

__all__ = [
    "count_strategy",
    "confidence_strategy",
    "actor_strategy",
    "manual_decision_strategy",
    "alert_operation_strategy",
    "step_error_strategy",
    "step_result_strategy",
    "duration_ms_strategy",
    "formatted_duration_strategy",
]
