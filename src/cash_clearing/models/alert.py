"""Alert models for operational anomalies."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class AlertSeverity(str, Enum):
    """Alert severity levels."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


SEVERITY_RANK = {
    AlertSeverity.CRITICAL: 0,
    AlertSeverity.HIGH: 1,
    AlertSeverity.MEDIUM: 2,
    AlertSeverity.LOW: 3,
}


class AlertStatus(str, Enum):
    """Alert lifecycle states. Transitions only move forward."""

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class AlertType(str, Enum):
    """Types of anomalies raised by the workflow engine."""

    WORKFLOW_FAILURE = "workflow_failure"
    EXECUTOR_TIMEOUT = "executor_timeout"
    ERROR_RATE_THRESHOLD = "error_rate_threshold"
    SLA_BREACH = "sla_breach"
    APPROVAL_QUEUE_BACKLOG = "approval_queue_backlog"
    DATA_QUALITY_ISSUE = "data_quality_issue"


class Alert(BaseModel):
    """A record of an operational anomaly."""

    alert_id: str
    severity: AlertSeverity
    status: AlertStatus = AlertStatus.ACTIVE
    title: str
    message: str
    component: Optional[str] = None
    error_type: Optional[str] = None
    affected_count: Optional[int] = Field(default=None, ge=0)
    batch_id: Optional[str] = None
    transaction_id: Optional[str] = None
    occurred_at: datetime
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    acknowledgment_reason: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.status == AlertStatus.RESOLVED

    @property
    def dedupe_key(self) -> tuple[Optional[str], Optional[str], Optional[str]]:
        """Key under which repeated alerts are folded during the cooldown window."""
        return (self.error_type, self.component, self.batch_id)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return self.model_dump(mode="json")
