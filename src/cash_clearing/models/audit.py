"""Audit trail models.

Every state change made through the engine, the approval queue or the alert
manager is recorded with its actor and timestamp.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class AuditAction(str, Enum):
    """Audited actions."""

    WORKFLOW_STARTED = "WORKFLOW_STARTED"
    STEP_COMPLETED = "STEP_COMPLETED"
    STEP_FAILED = "STEP_FAILED"
    WORKFLOW_COMPLETED = "WORKFLOW_COMPLETED"
    WORKFLOW_PAUSED = "WORKFLOW_PAUSED"
    WORKFLOW_RESUMED = "WORKFLOW_RESUMED"
    WORKFLOW_CANCELLED = "WORKFLOW_CANCELLED"
    APPROVAL_ENQUEUED = "APPROVAL_ENQUEUED"
    APPROVAL_DECIDED = "APPROVAL_DECIDED"
    ALERT_RAISED = "ALERT_RAISED"
    ALERT_ACKNOWLEDGED = "ALERT_ACKNOWLEDGED"
    ALERT_RESOLVED = "ALERT_RESOLVED"


EntityType = Literal['batch', 'approval_item', 'alert']


class AuditEntry(BaseModel):
    """A single audit trail entry."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime
    actor: str
    action: AuditAction
    entity_type: EntityType
    entity_id: str
    batch_id: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)
