"""Approval queue models.

An approval item is one ambiguous transaction match awaiting, or having
received, a decision.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class ApprovalDecision(str, Enum):
    """Decision state of an approval item."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_APPROVED = "auto_approved"


MANUAL_DECISIONS = frozenset({ApprovalDecision.APPROVED, ApprovalDecision.REJECTED})


class ApprovalItem(BaseModel):
    """A matched transaction in the approval queue."""

    item_id: str
    batch_id: str
    transaction_id: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    decision: ApprovalDecision = ApprovalDecision.PENDING
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    reason: Optional[str] = None
    sequence: int = Field(default=0, ge=0, description="Insertion order within the queue")
    created_at: datetime

    @model_validator(mode="after")
    def _decided_fields_match_decision(self) -> "ApprovalItem":
        decided = self.decision != ApprovalDecision.PENDING
        if decided != (self.decided_at is not None):
            raise ValueError("decided_at must be set iff the item has been decided")
        return self

    @property
    def is_pending(self) -> bool:
        return self.decision == ApprovalDecision.PENDING


class ApprovalCounts(BaseModel):
    """Aggregate decision counts for one batch."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    pending: int = 0
    approved: int = 0
    rejected: int = 0
    auto_approved: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.approved + self.rejected + self.auto_approved


class BulkDecisionOutcome(BaseModel):
    """Outcome for one item of a bulk decision."""

    item_id: str
    success: bool
    error_code: Optional[str] = None
    message: Optional[str] = None


class BulkDecisionResult(BaseModel):
    """Result of deciding several approval items in one call."""

    decision: ApprovalDecision
    outcomes: list[BulkDecisionOutcome] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len([o for o in self.outcomes if o.success])

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded
