"""Workflow state machine for cash clearing batches.

A batch moves through four fixed steps: Ingestion, Pattern Matching, Human
Approval Review and Suggestion Generation. The engine exclusively owns batch
records; it consumes approval counts from the ApprovalQueue and raises
alerts through the AlertManager.

Step 3 never executes work of its own. It waits on the approval queue and is
re-evaluated whenever a decision is made or the status is polled, so no
thread is ever parked waiting for a human.
"""

import threading
import time
from datetime import datetime
from typing import Any, Callable, Optional, Union
from uuid import uuid4

from pydantic import ValidationError

from cash_clearing.core import (
    Clock,
    EngineConfig,
    ExecutorFailureError,
    ExecutorTimeoutError,
    InvalidInputError,
    InvalidTransitionError,
    KeyedLock,
    NotFoundError,
    get_logger,
    utc_now,
)
from cash_clearing.core.logging import bind_batch_context, clear_batch_context
from cash_clearing.models.alert import Alert, AlertType
from cash_clearing.models.approval import ApprovalCounts, ApprovalItem
from cash_clearing.models.audit import AuditAction
from cash_clearing.models.batch import (
    INGESTION_STEP,
    MATCHING_STEP,
    REVIEW_STEP,
    STEP_NAMES,
    SUGGESTION_STEP,
    BatchRecord,
    BatchStatus,
    ErrorEntry,
    StepStatus,
    initial_steps,
)
from cash_clearing.models.status import ProgressInfo, StepDetail, WorkflowStatus
from cash_clearing.models.steps import (
    ReviewResult,
    StepResultBase,
    failed_result,
    parse_step_result,
)
from cash_clearing.repository.base import CashClearingRepository
from cash_clearing.services.alerts import AlertManager
from cash_clearing.services.approvals import ApprovalQueue
from cash_clearing.services.audit import AuditTrail
from cash_clearing.services.executors import StepExecutor, run_with_timeout
from cash_clearing.services.metrics import compute_metrics

logger = get_logger(__name__)

FailurePolicy = Callable[[StepResultBase, list[ErrorEntry]], bool]

COUNTED_STEPS = frozenset({MATCHING_STEP, SUGGESTION_STEP})


def default_failure_policy(result: StepResultBase, step_errors: list[ErrorEntry]) -> bool:
    """Fail a step on a fatal error, or when nothing was processed and anything went wrong.

    Args:
        result: The step result being applied.
        step_errors: Every error log entry for the step, including the
            result's own errors.
    """
    if result.fatal_error:
        return True
    return result.processed_count == 0 and len(step_errors) >= 1


class WorkflowEngine:
    """Drives batch records through the four clearing steps.

    Every mutation of a batch is serialized on the ``batch:<id>`` lock and
    re-reads the record after acquiring it. Mutations of different batches
    run in parallel.
    """

    def __init__(
        self,
        repository: CashClearingRepository,
        config: Optional[EngineConfig] = None,
        approvals: Optional[ApprovalQueue] = None,
        alerts: Optional[AlertManager] = None,
        audit: Optional[AuditTrail] = None,
        clock: Clock = utc_now,
        failure_policy: FailurePolicy = default_failure_policy,
        locks: Optional[KeyedLock] = None,
    ):
        """Initialize the workflow engine.

        Args:
            repository: Store for batch records and, by default, every
                collaborator's state.
            config: Engine configuration.
            approvals: Approval queue; built over ``repository`` if omitted.
            alerts: Alert manager; built over ``repository`` if omitted.
            audit: Audit trail shared with the collaborators.
            clock: Time source.
            failure_policy: Decides whether a step result fails its step.
            locks: Shared per-key lock registry.
        """
        self.config = config or EngineConfig()
        self._repository = repository
        self._clock = clock
        self._failure_policy = failure_policy
        self._locks = locks or KeyedLock(self.config.lock_timeout_seconds)
        self._audit = audit or AuditTrail(repository, clock)
        self.approvals = approvals or ApprovalQueue(
            repository, self.config, self._audit, clock, self._locks
        )
        self.alerts = alerts or AlertManager(
            repository, self.config, self._audit, clock, locks=self._locks
        )
        self.approvals.add_listener(self._on_approval_change)

        self._in_flight: set[str] = set()
        self._in_flight_lock = threading.Lock()

    @classmethod
    def from_env(cls, repository: CashClearingRepository, **kwargs: Any) -> "WorkflowEngine":
        """Build an engine configured from ``CASH_CLEARING_*`` variables.

        Also configures structured logging from the same settings.
        """
        config = EngineConfig.from_env()
        config.apply_logging()
        logger.info("workflow_engine_configured", log_level=config.log_level, log_json=config.log_json)
        return cls(repository, config, **kwargs)

    # ==================== Record access ====================

    def get_batch(self, batch_id: str) -> BatchRecord:
        """Get the current batch record.

        Raises:
            NotFoundError: If the batch does not exist.
        """
        record = self._repository.get_batch(batch_id)
        if record is None:
            raise NotFoundError(
                f"Batch not found: {batch_id}", entity_type="batch", entity_id=batch_id
            )
        return record

    def list_batches(self, status: Optional[BatchStatus] = None) -> list[BatchRecord]:
        """List current batch records, oldest first."""
        return self._repository.list_batches(status=status)

    def get_history(self, batch_id: str) -> list[BatchRecord]:
        """Previous attempts of a batch, oldest first."""
        return self._repository.get_batch_history(batch_id)

    def _save(self, record: BatchRecord, now: datetime) -> BatchRecord:
        record.updated_at = now
        try:
            record = BatchRecord.model_validate(record.model_dump())
        except ValidationError as e:
            raise InvalidInputError(
                f"Batch {record.batch_id} would violate its invariants: {e}",
                field="batch_record",
                value=record.batch_id,
            ) from e
        self._repository.put_batch(record)
        return record

    def _require_status(self, record: BatchRecord, attempted: str, *allowed: BatchStatus) -> None:
        if record.status not in allowed:
            raise InvalidTransitionError(
                f"Cannot {attempted} batch {record.batch_id} in status {record.status.value}",
                entity_id=record.batch_id,
                current_state=record.status.value,
                attempted=attempted,
            )

    # ==================== Lifecycle ====================

    def start_batch(
        self,
        total_transactions: int,
        batch_id: Optional[str] = None,
        human_review_bypass: Optional[bool] = None,
        started_by: str = "system",
    ) -> BatchRecord:
        """Start a new workflow attempt.

        Reusing the id of a finished batch archives the finished record and
        starts a fresh attempt with a new workflow id that links back to it.

        Args:
            total_transactions: Expected number of transactions.
            batch_id: Batch identifier; generated if omitted.
            human_review_bypass: Skip waiting on approvals in step 3.
                Defaults to the inverse of ``require_human_review``.
            started_by: User or process starting the batch.

        Returns:
            The new BatchRecord with step 1 running.

        Raises:
            InvalidInputError: If total_transactions is negative.
            InvalidTransitionError: If the batch id has a running or paused attempt.
        """
        if total_transactions < 0:
            raise InvalidInputError(
                "total_transactions cannot be negative",
                field="total_transactions",
                value=total_transactions,
            )

        batch_id = batch_id or f"batch_{uuid4().hex[:12]}"
        if human_review_bypass is None:
            human_review_bypass = not self.config.require_human_review

        with self._locks.hold(f"batch:{batch_id}"):
            existing = self._repository.get_batch(batch_id)
            if existing and not existing.is_terminal:
                raise InvalidTransitionError(
                    f"Batch {batch_id} already has a {existing.status.value} attempt",
                    entity_id=batch_id,
                    current_state=existing.status.value,
                    attempted="start",
                )
            if existing:
                self._repository.archive_batch(existing)

            now = self._clock()
            steps = initial_steps()
            steps[INGESTION_STEP].status = StepStatus.RUNNING
            steps[INGESTION_STEP].started_at = now

            record = BatchRecord(
                batch_id=batch_id,
                workflow_id=f"wf_{uuid4().hex}",
                total_transactions=total_transactions,
                steps=steps,
                human_review_bypass=human_review_bypass,
                previous_workflow_id=existing.workflow_id if existing else None,
                started_by=started_by,
                created_at=now,
                updated_at=now,
            )
            self._repository.put_batch(record)

        self._audit.record(
            actor=started_by,
            action=AuditAction.WORKFLOW_STARTED,
            entity_type="batch",
            entity_id=batch_id,
            batch_id=batch_id,
            details={
                "workflow_id": record.workflow_id,
                "total_transactions": total_transactions,
                "previous_workflow_id": record.previous_workflow_id,
            },
        )
        logger.info(
            "batch_started",
            batch_id=batch_id,
            workflow_id=record.workflow_id,
            total_transactions=total_transactions,
            human_review_bypass=human_review_bypass,
            previous_workflow_id=record.previous_workflow_id,
        )
        return record

    def pause(self, batch_id: str, by: str, reason: Optional[str] = None) -> BatchRecord:
        """Pause a running batch on its current step.

        Raises:
            NotFoundError: If the batch does not exist.
            InvalidTransitionError: If the batch is not running.
        """
        with self._locks.hold(f"batch:{batch_id}"):
            record = self.get_batch(batch_id)
            self._require_status(record, "pause", BatchStatus.RUNNING)

            now = self._clock()
            record.status = BatchStatus.PAUSED
            record.paused_at = now
            record.paused_by = by
            record.pause_reason = reason
            record = self._save(record, now)

        self._audit.record(
            actor=by,
            action=AuditAction.WORKFLOW_PAUSED,
            entity_type="batch",
            entity_id=batch_id,
            batch_id=batch_id,
            details={"step": record.current_step, "reason": reason},
        )
        logger.info("batch_paused", batch_id=batch_id, step=record.current_step, by=by)
        return record

    def resume(self, batch_id: str, by: str, reason: Optional[str] = None) -> BatchRecord:
        """Resume a paused batch on the step it was paused at.

        Raises:
            NotFoundError: If the batch does not exist.
            InvalidTransitionError: If the batch is not paused.
        """
        with self._locks.hold(f"batch:{batch_id}"):
            record = self.get_batch(batch_id)
            self._require_status(record, "resume", BatchStatus.PAUSED)

            paused_at = record.paused_at
            now = self._clock()
            record.status = BatchStatus.RUNNING
            record.paused_at = None
            record.paused_by = None
            record.pause_reason = None
            record = self._save(record, now)

        self._audit.record(
            actor=by,
            action=AuditAction.WORKFLOW_RESUMED,
            entity_type="batch",
            entity_id=batch_id,
            batch_id=batch_id,
            details={
                "step": record.current_step,
                "reason": reason,
                "paused_at": paused_at.isoformat() if paused_at else None,
            },
        )
        logger.info("batch_resumed", batch_id=batch_id, step=record.current_step, by=by)
        return record

    def cancel(self, batch_id: str, by: str, reason: str) -> BatchRecord:
        """Cancel a running or paused batch.

        The batch ends ``FAILED`` with its current step failed and the
        cancellation recorded in the error log.

        Raises:
            NotFoundError: If the batch does not exist.
            InvalidTransitionError: If the batch already finished.
        """
        with self._locks.hold(f"batch:{batch_id}"):
            record = self.get_batch(batch_id)
            self._require_status(record, "cancel", BatchStatus.RUNNING, BatchStatus.PAUSED)

            now = self._clock()
            step = record.current_step
            state = record.steps[step]
            state.status = StepStatus.FAILED
            state.completed_at = now
            record.error_log.append(ErrorEntry(
                step=step,
                message=f"Cancelled by {by}: {reason}",
                occurred_at=now,
            ))
            record.status = BatchStatus.FAILED
            record.paused_at = None
            record.paused_by = None
            record.pause_reason = None
            record = self._save(record, now)

        self._audit.record(
            actor=by,
            action=AuditAction.WORKFLOW_CANCELLED,
            entity_type="batch",
            entity_id=batch_id,
            batch_id=batch_id,
            details={"step": step, "reason": reason},
        )
        logger.warning("batch_cancelled", batch_id=batch_id, step=step, by=by, reason=reason)
        return record

    # ==================== Step transitions ====================

    def record_error(
        self,
        batch_id: str,
        step: int,
        message: str,
        transaction_id: Optional[str] = None,
    ) -> BatchRecord:
        """Append an error to the batch's error log without changing its status.

        Raises:
            NotFoundError: If the batch does not exist.
            InvalidInputError: If the step is not 1-4.
        """
        if step not in STEP_NAMES:
            raise InvalidInputError(f"Unknown step: {step}", field="step", value=step)

        with self._locks.hold(f"batch:{batch_id}"):
            record = self.get_batch(batch_id)
            now = self._clock()
            record.error_log.append(ErrorEntry(
                step=step,
                message=message,
                transaction_id=transaction_id,
                occurred_at=now,
            ))
            record = self._save(record, now)

        logger.warning(
            "step_error_recorded",
            batch_id=batch_id,
            step=step,
            transaction_id=transaction_id,
            message=message,
        )
        return record

    def advance_step(
        self,
        batch_id: str,
        step_result: Union[StepResultBase, dict[str, Any]],
        expected_step: Optional[int] = None,
    ) -> BatchRecord:
        """Apply a step result to the batch's current step.

        A failed step halts the batch at ``FAILED``. A completed step starts
        the next one, and completing step 4 completes the batch.

        With ``auto_advance_review`` on (the default), step 3 completes by
        itself whenever no approvals are pending, including in the same call
        that completes step 2 when the queue is still empty. Callers that
        enqueue approvals after step 2 and complete step 3 explicitly must
        turn it off.

        Args:
            batch_id: Batch to advance.
            step_result: Result for the current step, or a mapping with a
                ``step`` key.
            expected_step: Step the caller believes is current; a mismatch
                means the caller is stale.

        Returns:
            The updated BatchRecord.

        Raises:
            NotFoundError: If the batch does not exist.
            InvalidTransitionError: If the batch is not running, the caller
                is stale, the result belongs to another step, or step 3 still
                has pending approvals.
            InvalidInputError: If the result is malformed or over-counts.
        """
        return self._advance(batch_id, step_result, expected_step)

    def _advance(
        self,
        batch_id: str,
        step_result: Union[StepResultBase, dict[str, Any]],
        expected_step: Optional[int] = None,
        timed_out: bool = False,
    ) -> BatchRecord:
        if isinstance(step_result, dict):
            try:
                step_result = parse_step_result(step_result)
            except ValidationError as e:
                raise InvalidInputError(
                    f"Malformed step result: {e}", field="step_result", value=None
                ) from e

        with self._locks.hold(f"batch:{batch_id}"):
            record = self.get_batch(batch_id)
            self._require_status(record, "advance", BatchStatus.RUNNING)
            step = record.current_step

            if expected_step is not None and expected_step != step:
                raise InvalidTransitionError(
                    f"Batch {batch_id} is at step {step}, not step {expected_step}",
                    entity_id=batch_id,
                    current_state=f"step_{step}",
                    attempted=f"advance_step_{expected_step}",
                )
            if getattr(step_result, "step", None) != step:
                raise InvalidTransitionError(
                    f"{type(step_result).__name__} cannot complete step {step} ({STEP_NAMES[step]})",
                    entity_id=batch_id,
                    current_state=f"step_{step}",
                    attempted=f"advance_step_{getattr(step_result, 'step', None)}",
                )
            if step == REVIEW_STEP and not step_result.fatal_error:
                counts = self.approvals.counts_for(batch_id)
                if counts.pending > 0 and not record.human_review_bypass:
                    raise InvalidTransitionError(
                        f"Batch {batch_id} has {counts.pending} approvals pending",
                        entity_id=batch_id,
                        current_state=f"step_{step}",
                        attempted="complete_review",
                    )

            now = self._clock()
            completed = self._apply_result(record, step_result, now)
            record = self._save(record, now)

        for applied_step, result, failed in completed:
            self._after_step(record, applied_step, result, failed, timed_out)
        return record

    def _apply_result(
        self,
        record: BatchRecord,
        result: StepResultBase,
        now: datetime,
    ) -> list[tuple[int, StepResultBase, bool]]:
        """Mutate ``record`` with ``result``; return every step finished along the way."""
        step = record.current_step

        if step == INGESTION_STEP and result.total_transactions is not None:
            record.total_transactions = result.total_transactions

        if step in COUNTED_STEPS:
            if result.processed_count + result.failed_count > record.total_transactions:
                raise InvalidInputError(
                    f"Step {step} reported {result.processed_count + result.failed_count} "
                    f"transactions for a batch of {record.total_transactions}",
                    field="processed_count",
                    value=result.processed_count,
                )
            record.processed_transactions = result.processed_count
            record.failed_transactions = result.failed_count

        if step == MATCHING_STEP and result.average_confidence is not None:
            record.average_confidence = result.average_confidence

        for error in result.errors:
            record.error_log.append(ErrorEntry(
                step=step,
                message=error.message,
                transaction_id=error.transaction_id,
                occurred_at=now,
            ))
        if result.fatal_error:
            record.error_log.append(ErrorEntry(step=step, message=result.fatal_error, occurred_at=now))

        failed = self._failure_policy(result, record.errors_for_step(step))

        state = record.steps[step]
        state.status = StepStatus.FAILED if failed else StepStatus.COMPLETED
        state.completed_at = now
        state.processed_count = result.processed_count
        state.failed_count = result.failed_count
        state.processing_time_ms = result.processing_time_ms
        if state.processing_time_ms is None and state.started_at:
            state.processing_time_ms = int((now - state.started_at).total_seconds() * 1000)

        finished = [(step, result, failed)]
        if failed:
            record.status = BatchStatus.FAILED
        elif step == SUGGESTION_STEP:
            record.status = BatchStatus.COMPLETED
        else:
            record.current_step = step + 1
            next_state = record.steps[step + 1]
            next_state.status = StepStatus.RUNNING
            next_state.started_at = now
            if record.current_step == REVIEW_STEP:
                finished.extend(self._complete_review_if_ready(record, now))
        return finished

    def _complete_review_if_ready(
        self,
        record: BatchRecord,
        now: datetime,
    ) -> list[tuple[int, StepResultBase, bool]]:
        if record.current_step != REVIEW_STEP or record.status != BatchStatus.RUNNING:
            return []

        counts = self.approvals.counts_for(record.batch_id)
        self._sync_approval_counts(record, counts)
        if not record.human_review_bypass:
            if not self.config.auto_advance_review or counts.pending > 0:
                return []

        result = ReviewResult(processed_count=counts.total - counts.pending)
        return self._apply_result(record, result, now)

    def _after_step(
        self,
        record: BatchRecord,
        step: int,
        result: StepResultBase,
        failed: bool,
        timed_out: bool = False,
    ) -> None:
        action = AuditAction.STEP_FAILED if failed else AuditAction.STEP_COMPLETED
        self._audit.record(
            actor="workflow_engine",
            action=action,
            entity_type="batch",
            entity_id=record.batch_id,
            batch_id=record.batch_id,
            details={
                "step": step,
                "processed_count": result.processed_count,
                "failed_count": result.failed_count,
                "fatal_error": result.fatal_error,
            },
        )

        if failed:
            logger.error(
                "step_failed",
                batch_id=record.batch_id,
                step=step,
                step_name=STEP_NAMES[step],
                error=result.fatal_error,
            )
            errors = record.errors_for_step(step)
            message = result.fatal_error or (errors[-1].message if errors else "step failed")
            self.alerts.alert_executor_failure(record.batch_id, step, message, timed_out=timed_out)
            return

        logger.info(
            "step_completed",
            batch_id=record.batch_id,
            step=step,
            step_name=STEP_NAMES[step],
            processed_count=result.processed_count,
            failed_count=result.failed_count,
        )

        attempted = result.processed_count + result.failed_count
        if attempted > 0:
            error_rate = result.failed_count / attempted
            if error_rate > self.config.error_rate_threshold:
                self.alerts.alert_error_rate(record.batch_id, step, error_rate, result.failed_count)

        if step == SUGGESTION_STEP:
            self._audit.record(
                actor="workflow_engine",
                action=AuditAction.WORKFLOW_COMPLETED,
                entity_type="batch",
                entity_id=record.batch_id,
                batch_id=record.batch_id,
                details={
                    "processed_transactions": record.processed_transactions,
                    "failed_transactions": record.failed_transactions,
                },
            )
            logger.info(
                "batch_completed",
                batch_id=record.batch_id,
                workflow_id=record.workflow_id,
                processed_transactions=record.processed_transactions,
                failed_transactions=record.failed_transactions,
            )

    # ==================== Human review ====================

    @staticmethod
    def _sync_approval_counts(record: BatchRecord, counts: ApprovalCounts) -> None:
        record.pending_approvals = counts.pending
        record.approved_suggestions = counts.approved
        record.rejected_suggestions = counts.rejected
        record.auto_approved_suggestions = counts.auto_approved

    def refresh_review_step(self, batch_id: str) -> BatchRecord:
        """Mirror approval counts onto the batch and complete step 3 once it is ready.

        Raises:
            NotFoundError: If the batch does not exist.
        """
        with self._locks.hold(f"batch:{batch_id}"):
            record = self.get_batch(batch_id)
            if record.is_terminal:
                return record

            now = self._clock()
            counts = self.approvals.counts_for(batch_id)
            before = (
                record.pending_approvals,
                record.approved_suggestions,
                record.rejected_suggestions,
                record.auto_approved_suggestions,
            )
            self._sync_approval_counts(record, counts)
            after = (counts.pending, counts.approved, counts.rejected, counts.auto_approved)

            completed: list[tuple[int, StepResultBase, bool]] = []
            if record.status == BatchStatus.RUNNING:
                completed = self._complete_review_if_ready(record, now)

            if not completed and before == after:
                return record
            record = self._save(record, now)

        for applied_step, result, failed in completed:
            self._after_step(record, applied_step, result, failed)
        return record

    def _on_approval_change(self, item: ApprovalItem) -> None:
        if self._repository.get_batch(item.batch_id) is None:
            return
        try:
            record = self.refresh_review_step(item.batch_id)
        except InvalidTransitionError as e:
            # The next status poll re-evaluates the step.
            logger.warning("review_refresh_deferred", batch_id=item.batch_id, error=str(e))
            return

        if record.pending_approvals > self.config.approval_backlog_threshold:
            self.alerts.alert_approval_backlog(item.batch_id, record.pending_approvals)

    # ==================== Execution ====================

    def run_step(
        self,
        batch_id: str,
        executor: StepExecutor,
        step_input: Any = None,
        timeout_seconds: Optional[float] = None,
    ) -> BatchRecord:
        """Execute the batch's current step and apply its result.

        Executor exceptions, timeouts and results the batch cannot accept
        (such as counts beyond the batch total) fail the step, record the
        error and raise an alert; they are not re-raised.

        Args:
            batch_id: Batch to run.
            executor: Executor for the current step.
            step_input: Input passed through to the executor.
            timeout_seconds: Overrides ``step_timeout_seconds``.

        Returns:
            The updated BatchRecord.

        Raises:
            NotFoundError: If the batch does not exist.
            InvalidTransitionError: If the batch is not running or a step is
                already executing for it.
        """
        with self._locks.hold(f"batch:{batch_id}"):
            record = self.get_batch(batch_id)
            self._require_status(record, "run_step", BatchStatus.RUNNING)
            with self._in_flight_lock:
                if batch_id in self._in_flight:
                    raise InvalidTransitionError(
                        f"Step {record.current_step} of batch {batch_id} is already executing",
                        entity_id=batch_id,
                        current_state=f"step_{record.current_step}",
                        attempted="run_step",
                    )
                self._in_flight.add(batch_id)
            step = record.current_step

        timeout = self.config.step_timeout_seconds if timeout_seconds is None else timeout_seconds
        bind_batch_context(batch_id, record.workflow_id)
        try:
            logger.info("step_started", step=step, step_name=STEP_NAMES[step], timeout_seconds=timeout)
            started = time.monotonic()
            try:
                result = run_with_timeout(executor, batch_id, step, step_input, timeout)
            except ExecutorFailureError as e:
                elapsed_ms = int((time.monotonic() - started) * 1000)
                return self._advance(
                    batch_id,
                    failed_result(step, str(e), elapsed_ms),
                    expected_step=step,
                    timed_out=isinstance(e, ExecutorTimeoutError),
                )

            elapsed_ms = int((time.monotonic() - started) * 1000)
            if result.processing_time_ms is None:
                result = result.model_copy(update={"processing_time_ms": elapsed_ms})
            try:
                return self._advance(batch_id, result, expected_step=step)
            except InvalidInputError as e:
                logger.error("step_result_rejected", step=step, error=str(e))
                return self._advance(
                    batch_id,
                    failed_result(step, f"Step {step} executor returned an invalid result: {e}", elapsed_ms),
                    expected_step=step,
                )
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(batch_id)
            clear_batch_context()

    # ==================== Monitoring ====================

    def check_stalled_batches(self, now: Optional[datetime] = None) -> list[Alert]:
        """Raise an SLA alert for running batches that stopped making progress.

        A batch gets at most one unresolved stall alert per attempt.

        Returns:
            Alerts raised by this check.
        """
        now = now or self._clock()
        raised = []
        for record in self._repository.list_batches(status=BatchStatus.RUNNING):
            idle_seconds = int((now - record.updated_at).total_seconds())
            if idle_seconds < self.config.stall_threshold_seconds:
                continue

            open_alerts = [
                alert
                for alert in self.alerts.list_alerts(
                    batch_id=record.batch_id, error_type=AlertType.SLA_BREACH
                )
                if not alert.is_resolved and alert.occurred_at >= record.created_at
            ]
            if open_alerts:
                continue

            logger.warning(
                "batch_stalled",
                batch_id=record.batch_id,
                step=record.current_step,
                idle_seconds=idle_seconds,
            )
            raised.append(
                self.alerts.alert_stalled_batch(record.batch_id, record.current_step, idle_seconds)
            )
        return raised

    # ==================== Status ====================

    def get_status(self, batch_id: str, now: Optional[datetime] = None) -> WorkflowStatus:
        """Build the status projection of a batch.

        Step 3 readiness is re-evaluated first. If another mutation holds the
        batch, the last stored state is reported instead.

        Raises:
            NotFoundError: If the batch does not exist.
        """
        try:
            self.refresh_review_step(batch_id)
        except InvalidTransitionError as e:
            logger.warning("status_refresh_skipped", batch_id=batch_id, error=str(e))

        record = self.get_batch(batch_id)
        counts = self.approvals.counts_for(batch_id)
        now = now or self._clock()

        average_confidence = record.average_confidence
        if average_confidence is None:
            items = self.approvals.list_items(batch_id)
            if items:
                average_confidence = sum(i.confidence for i in items) / len(items)

        metrics = compute_metrics(record, now, average_confidence)
        progress = ProgressInfo(
            total_transactions=record.total_transactions,
            processed_transactions=record.processed_transactions,
            failed_transactions=record.failed_transactions,
            percent_complete=metrics.percent_complete,
            estimated_time_remaining=metrics.estimated_time_remaining,
        )

        return WorkflowStatus(
            workflow_id=record.workflow_id,
            batch_id=record.batch_id,
            status=record.status,
            current_step=record.current_step,
            progress=progress,
            step_details=self._step_details(record, counts),
            approvals=counts,
            metrics=metrics,
            errors=record.error_log,
            previous_workflow_id=record.previous_workflow_id,
            created_at=record.created_at,
            last_updated=record.updated_at,
            estimated_completion=metrics.estimated_completion,
        )

    @staticmethod
    def _step_details(record: BatchRecord, counts: ApprovalCounts) -> dict[str, StepDetail]:
        details = {}
        for number, state in sorted(record.steps.items()):
            detail = StepDetail(
                name=state.name,
                status=state.status,
                started_at=state.started_at,
                completed_at=state.completed_at,
                processing_time_ms=state.processing_time_ms,
            )
            if number == REVIEW_STEP:
                detail.pending_approvals = counts.pending
                detail.requires_human_review = not record.human_review_bypass
            elif number == INGESTION_STEP:
                detail.transaction_count = record.total_transactions
            else:
                detail.transaction_count = state.processed_count
                detail.failed_count = state.failed_count
            details[f"step{number}"] = detail
        return details
