"""Batch record models for the cash clearing workflow.

A batch record is the single durable source of truth for one workflow
attempt over a set of cash transactions. Derived values (percent complete,
ETA) are never stored here; see ``cash_clearing.services.metrics``.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class BatchStatus(str, Enum):
    """Batch-level workflow status."""

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    PAUSED = "PAUSED"


class StepStatus(str, Enum):
    """Status of an individual workflow step."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


INGESTION_STEP = 1
MATCHING_STEP = 2
REVIEW_STEP = 3
SUGGESTION_STEP = 4

STEP_NAMES: dict[int, str] = {
    INGESTION_STEP: "Ingestion",
    MATCHING_STEP: "Pattern Matching",
    REVIEW_STEP: "Human Approval Review",
    SUGGESTION_STEP: "Suggestion Generation",
}

TERMINAL_STATUSES = frozenset({BatchStatus.COMPLETED, BatchStatus.FAILED})
FINISHED_STEP_STATUSES = frozenset({StepStatus.COMPLETED, StepStatus.FAILED})


class ErrorEntry(BaseModel):
    """An entry in a batch's append-only error log."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    step: int = Field(..., ge=1, le=4)
    message: str
    transaction_id: Optional[str] = None
    occurred_at: datetime


class StepState(BaseModel):
    """Progress and outcome of one workflow step."""

    number: int = Field(..., ge=1, le=4)
    name: str
    status: StepStatus = StepStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    processed_count: int = Field(default=0, ge=0)
    failed_count: int = Field(default=0, ge=0)
    processing_time_ms: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _completed_at_matches_status(self) -> "StepState":
        finished = self.status in FINISHED_STEP_STATUSES
        if finished != (self.completed_at is not None):
            raise ValueError(
                f"completed_at must be set iff step {self.number} is completed or failed"
            )
        return self

    @property
    def is_finished(self) -> bool:
        return self.status in FINISHED_STEP_STATUSES


def initial_steps() -> dict[int, StepState]:
    """Build the four step states of a freshly started batch."""
    return {
        number: StepState(number=number, name=name)
        for number, name in STEP_NAMES.items()
    }


class BatchRecord(BaseModel):
    """Durable state of one reconciliation run."""

    batch_id: str
    workflow_id: str
    status: BatchStatus = BatchStatus.RUNNING
    current_step: int = Field(default=INGESTION_STEP, ge=1, le=4)
    total_transactions: int = Field(default=0, ge=0)
    processed_transactions: int = Field(default=0, ge=0)
    failed_transactions: int = Field(default=0, ge=0)
    steps: dict[int, StepState] = Field(default_factory=initial_steps)
    pending_approvals: int = Field(default=0, ge=0)
    approved_suggestions: int = Field(default=0, ge=0)
    rejected_suggestions: int = Field(default=0, ge=0)
    auto_approved_suggestions: int = Field(default=0, ge=0)
    average_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    error_log: list[ErrorEntry] = Field(default_factory=list)
    human_review_bypass: bool = False
    previous_workflow_id: Optional[str] = None
    started_by: str = "system"
    paused_at: Optional[datetime] = None
    paused_by: Optional[str] = None
    pause_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _counters_within_total(self) -> "BatchRecord":
        if self.processed_transactions + self.failed_transactions > self.total_transactions:
            raise ValueError(
                "processed_transactions + failed_transactions cannot exceed total_transactions"
            )
        if sorted(self.steps) != sorted(STEP_NAMES):
            raise ValueError("steps must contain exactly steps 1-4")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def current_step_state(self) -> StepState:
        return self.steps[self.current_step]

    def errors_for_step(self, step: int) -> list[ErrorEntry]:
        """Return the error log entries recorded against ``step``."""
        return [entry for entry in self.error_log if entry.step == step]
