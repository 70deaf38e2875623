"""Services of the cash clearing workflow engine.

- Workflow state machine driving batches through the four clearing steps
- Approval queue with queue-time auto-approval
- Alert lifecycle management with cooldown de-duplication
- Derived progress metrics and ETA
- Audit trail of every state change
"""

from cash_clearing.services.audit import AuditTrail
from cash_clearing.services.alerts import AlertManager
from cash_clearing.services.approvals import ApprovalQueue
from cash_clearing.services.executors import StepExecutor, run_with_timeout
from cash_clearing.services.metrics import (
    compute_metrics,
    estimated_completion,
    estimated_time_remaining,
    percent_complete,
    processing_rate,
)
from cash_clearing.services.workflow import WorkflowEngine, default_failure_policy

__all__ = [
    "AuditTrail",
    "AlertManager",
    "ApprovalQueue",
    "StepExecutor",
    "run_with_timeout",
    "compute_metrics",
    "estimated_completion",
    "estimated_time_remaining",
    "percent_complete",
    "processing_rate",
    "WorkflowEngine",
    "default_failure_policy",
]
