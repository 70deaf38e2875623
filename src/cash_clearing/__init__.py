"""Cash clearing workflow engine."""

from cash_clearing.core import EngineConfig, configure_logging
from cash_clearing.services import AlertManager, ApprovalQueue, WorkflowEngine

__version__ = "0.1.0"

__all__ = [
    "EngineConfig",
    "configure_logging",
    "AlertManager",
    "ApprovalQueue",
    "WorkflowEngine",
]
