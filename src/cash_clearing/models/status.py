"""Read model returned by ``WorkflowEngine.get_status``.

This is the shape every reporting surface renders. It is rebuilt on every
read and never persisted.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from cash_clearing.models.approval import ApprovalCounts
from cash_clearing.models.batch import BatchStatus, ErrorEntry, StepStatus


class _ReadModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProgressInfo(_ReadModel):
    """Transaction progress of a batch."""

    total_transactions: int
    processed_transactions: int
    failed_transactions: int
    percent_complete: float = Field(..., description="Rounded to 2 decimal places")
    estimated_time_remaining: Optional[str] = None


class StepDetail(_ReadModel):
    """Per-step detail in the status projection."""

    name: str
    status: StepStatus
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    transaction_count: Optional[int] = None
    failed_count: Optional[int] = None
    processing_time_ms: Optional[int] = None
    pending_approvals: Optional[int] = None
    requires_human_review: Optional[bool] = None


class WorkflowMetrics(_ReadModel):
    """Derived metrics for a batch."""

    percent_complete: float
    processing_rate: float
    estimated_time_remaining: Optional[str] = None
    estimated_completion: Optional[datetime] = None
    average_confidence: Optional[float] = None


class WorkflowStatus(_ReadModel):
    """Full status projection of a batch."""

    workflow_id: str
    batch_id: str
    status: BatchStatus
    current_step: int
    progress: ProgressInfo
    step_details: dict[str, StepDetail]
    approvals: ApprovalCounts
    metrics: WorkflowMetrics
    errors: list[ErrorEntry] = Field(default_factory=list)
    previous_workflow_id: Optional[str] = None
    created_at: datetime
    last_updated: datetime
    estimated_completion: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """Render with camelCase keys for reporting surfaces."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
