"""Data models for the cash clearing workflow engine."""

from cash_clearing.models.batch import (
    BatchRecord,
    BatchStatus,
    ErrorEntry,
    StepState,
    StepStatus,
    STEP_NAMES,
    INGESTION_STEP,
    MATCHING_STEP,
    REVIEW_STEP,
    SUGGESTION_STEP,
)
from cash_clearing.models.steps import (
    StepError,
    StepResult,
    StepResultBase,
    IngestionResult,
    MatchResult,
    ReviewResult,
    SuggestionResult,
    parse_step_result,
)
from cash_clearing.models.approval import (
    ApprovalCounts,
    ApprovalDecision,
    ApprovalItem,
    BulkDecisionOutcome,
    BulkDecisionResult,
)
from cash_clearing.models.alert import Alert, AlertSeverity, AlertStatus, AlertType
from cash_clearing.models.audit import AuditAction, AuditEntry
from cash_clearing.models.status import (
    ProgressInfo,
    StepDetail,
    WorkflowMetrics,
    WorkflowStatus,
)

__all__ = [
    "BatchRecord",
    "BatchStatus",
    "ErrorEntry",
    "StepState",
    "StepStatus",
    "STEP_NAMES",
    "INGESTION_STEP",
    "MATCHING_STEP",
    "REVIEW_STEP",
    "SUGGESTION_STEP",
    "StepError",
    "StepResult",
    "StepResultBase",
    "IngestionResult",
    "MatchResult",
    "ReviewResult",
    "SuggestionResult",
    "parse_step_result",
    "ApprovalCounts",
    "ApprovalDecision",
    "ApprovalItem",
    "BulkDecisionOutcome",
    "BulkDecisionResult",
    "Alert",
    "AlertSeverity",
    "AlertStatus",
    "AlertType",
    "AuditAction",
    "AuditEntry",
    "ProgressInfo",
    "StepDetail",
    "WorkflowMetrics",
    "WorkflowStatus",
]
