"""Step executor contract and supervised invocation.

Ingestion, pattern matching and suggestion generation are supplied by the
caller as objects implementing :class:`StepExecutor`. The engine runs them
in a worker thread so that a hung executor cannot hold a batch forever.
"""

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Optional, Protocol, runtime_checkable

from pydantic import ValidationError

from cash_clearing.core import ExecutorFailureError, ExecutorTimeoutError, get_logger
from cash_clearing.models.steps import StepResultBase, parse_step_result

logger = get_logger(__name__)


@runtime_checkable
class StepExecutor(Protocol):
    """
    Protocol for step executors.

    Implementations perform the work of one workflow step for a batch and
    report what they did.
    """

    def execute(self, batch_id: str, step_input: Any) -> StepResultBase:
        """
        Run the step.

        Args:
            batch_id: Batch being processed.
            step_input: Caller-supplied input for the step.

        Returns:
            The result tagged with the step it belongs to. A plain mapping
            with a ``step`` key is also accepted.
        """
        ...


def run_with_timeout(
    executor: StepExecutor,
    batch_id: str,
    step: int,
    step_input: Any = None,
    timeout_seconds: Optional[float] = None,
) -> StepResultBase:
    """Invoke an executor in a worker thread and wait at most ``timeout_seconds``.

    A timed out executor thread is abandoned, not killed; its eventual
    result is discarded.

    Raises:
        ExecutorTimeoutError: If the executor did not return in time.
        ExecutorFailureError: If the executor raised or returned something
            that is not a step result.
    """
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"step-{step}-{batch_id}")
    try:
        future = pool.submit(executor.execute, batch_id, step_input)
        try:
            result = future.result(timeout=timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            logger.error(
                "step_executor_timeout",
                batch_id=batch_id,
                step=step,
                timeout_seconds=timeout_seconds,
            )
            raise ExecutorTimeoutError(
                f"Step {step} executor did not finish within {timeout_seconds}s",
                timeout_seconds=timeout_seconds,
                batch_id=batch_id,
                step=step,
            )
        except Exception as e:
            logger.error(
                "step_executor_failed",
                batch_id=batch_id,
                step=step,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ExecutorFailureError(
                f"Step {step} executor raised {type(e).__name__}: {e}",
                batch_id=batch_id,
                step=step,
            ) from e
    finally:
        pool.shutdown(wait=False)

    if isinstance(result, dict):
        try:
            result = parse_step_result(result)
        except ValidationError as e:
            raise ExecutorFailureError(
                f"Step {step} executor returned an invalid result: {e}",
                batch_id=batch_id,
                step=step,
            ) from e

    if not isinstance(result, StepResultBase):
        raise ExecutorFailureError(
            f"Step {step} executor returned {type(result).__name__}, expected a step result",
            batch_id=batch_id,
            step=step,
        )
    return result
