"""Engine configuration.

Defaults mirror the production deployment; every value can be overridden
through ``CASH_CLEARING_*`` environment variables via :meth:`EngineConfig.from_env`.
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from cash_clearing.core.logging import configure_logging

ENV_PREFIX = "CASH_CLEARING_"


class EngineConfig(BaseModel):
    """Configuration for the workflow engine and its collaborators."""

    confidence_threshold: float = Field(
        default=0.85, ge=0.0, le=1.0,
        description="Confidence at or above which approval items are auto-approved",
    )
    require_human_review: bool = Field(
        default=True, description="When False, step 3 is bypassed for new batches"
    )
    auto_advance_review: bool = Field(
        default=True,
        description="Complete step 3 on its own once no approvals are pending",
    )
    step_timeout_seconds: float = Field(
        default=300.0, gt=0, description="Default timeout for a step executor"
    )
    stall_threshold_seconds: int = Field(
        default=3600, gt=0, description="Seconds without progress before a running batch is stalled"
    )
    error_rate_threshold: float = Field(
        default=0.05, ge=0.0, le=1.0,
        description="Per-step failure rate above which an alert is raised",
    )
    approval_backlog_threshold: int = Field(
        default=500, ge=0, description="Pending approvals per batch before a backlog alert"
    )
    alert_cooldown_seconds: int = Field(
        default=300, ge=0, description="Window in which duplicate alerts are folded together"
    )
    lock_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Maximum wait for a concurrent mutation of the same entity"
    )
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(default=False, description="Emit JSON log lines")
    log_file: Optional[str] = Field(default=None, description="Optional file receiving log output")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Build a configuration from environment variables.

        Args:
            environ: Mapping to read from; defaults to ``os.environ``.

        Returns:
            EngineConfig with overrides applied.
        """
        environ = os.environ if environ is None else environ
        overrides = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                overrides[name] = raw
        return cls.model_validate(overrides)

    def apply_logging(self) -> None:
        """Configure structured logging from the ``log_*`` settings."""
        configure_logging(level=self.log_level, json_format=self.log_json, log_file=self.log_file)
