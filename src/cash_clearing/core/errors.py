"""Custom exception classes for the cash clearing workflow engine."""

from typing import Optional


class CashClearingError(Exception):
    """Base exception for all cash clearing workflow errors."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message

    @property
    def is_retryable(self) -> bool:
        """Whether the caller may safely retry the same request."""
        return self.retryable


class NotFoundError(CashClearingError):
    """Referenced batch, approval item or alert does not exist."""

    retryable = True

    def __init__(
        self,
        message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, error_code="NOT_FOUND", **kwargs)
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.details.update({
            "entity_type": entity_type,
            "entity_id": entity_id,
        })


class InvalidTransitionError(CashClearingError):
    """A state machine rule was violated."""

    def __init__(
        self,
        message: str,
        entity_id: Optional[str] = None,
        current_state: Optional[str] = None,
        attempted: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, error_code="INVALID_TRANSITION", **kwargs)
        self.entity_id = entity_id
        self.current_state = current_state
        self.attempted = attempted
        self.details.update({
            "entity_id": entity_id,
            "current_state": current_state,
            "attempted": attempted,
        })


class AlreadyDecidedError(CashClearingError):
    """An approval item was decided more than once."""

    def __init__(
        self,
        message: str,
        item_id: Optional[str] = None,
        decision: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, error_code="ALREADY_DECIDED", **kwargs)
        self.item_id = item_id
        self.decision = decision
        self.details.update({
            "item_id": item_id,
            "decision": decision,
        })


class InvalidInputError(CashClearingError):
    """Malformed counters, negative totals or out-of-range values."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[object] = None,
        **kwargs,
    ):
        super().__init__(message, error_code="INVALID_INPUT", **kwargs)
        self.field = field
        self.value = value
        self.details.update({
            "field": field,
            "value": value,
        })


class ExecutorFailureError(CashClearingError):
    """A step executor raised while running a workflow step."""

    def __init__(
        self,
        message: str,
        batch_id: Optional[str] = None,
        step: Optional[int] = None,
        error_code: str = "EXECUTOR_FAILURE",
        **kwargs,
    ):
        super().__init__(message, error_code=error_code, **kwargs)
        self.batch_id = batch_id
        self.step = step
        self.details.update({
            "batch_id": batch_id,
            "step": step,
        })


class ExecutorTimeoutError(ExecutorFailureError):
    """A step executor did not finish within its timeout."""

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(message, error_code="EXECUTOR_TIMEOUT", **kwargs)
        self.timeout_seconds = timeout_seconds
        self.details["timeout_seconds"] = timeout_seconds
