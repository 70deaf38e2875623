"""Core utilities for the cash clearing workflow engine."""

from cash_clearing.core.logging import get_logger, configure_logging
from cash_clearing.core.errors import (
    CashClearingError,
    NotFoundError,
    InvalidTransitionError,
    AlreadyDecidedError,
    InvalidInputError,
    ExecutorFailureError,
    ExecutorTimeoutError,
)
from cash_clearing.core.config import EngineConfig
from cash_clearing.core.duration import format_duration, parse_duration
from cash_clearing.core.locks import KeyedLock
from cash_clearing.core.clock import Clock, utc_now

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    # Errors
    "CashClearingError",
    "NotFoundError",
    "InvalidTransitionError",
    "AlreadyDecidedError",
    "InvalidInputError",
    "ExecutorFailureError",
    "ExecutorTimeoutError",
    # Configuration
    "EngineConfig",
    # Utilities
    "format_duration",
    "parse_duration",
    "KeyedLock",
    "Clock",
    "utc_now",
]
