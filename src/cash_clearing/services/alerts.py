"""Alert store and lifecycle manager.

Alerts move strictly forward: active -> acknowledged -> resolved, or
active -> resolved directly. Alerts are never deleted; resolved alerts stay
in the store for audit.
"""

from collections import defaultdict
from datetime import timedelta
from typing import Callable, Optional, Union
from uuid import uuid4

from cash_clearing.core import (
    Clock,
    EngineConfig,
    InvalidTransitionError,
    KeyedLock,
    NotFoundError,
    get_logger,
    utc_now,
)
from cash_clearing.models.alert import (
    SEVERITY_RANK,
    Alert,
    AlertSeverity,
    AlertStatus,
    AlertType,
)
from cash_clearing.models.audit import AuditAction
from cash_clearing.models.batch import INGESTION_STEP, STEP_NAMES
from cash_clearing.repository.base import CashClearingRepository
from cash_clearing.services.audit import AuditTrail

logger = get_logger(__name__)

WORKFLOW_COMPONENT = "workflow_engine"
APPROVAL_COMPONENT = "approval_queue"


class AlertManager:
    """Raises alerts and enforces their acknowledge/resolve lifecycle.

    Mutations of one alert are linearized on a per-alert lock; mutations of
    different alerts proceed in parallel.
    """

    def __init__(
        self,
        repository: CashClearingRepository,
        config: Optional[EngineConfig] = None,
        audit: Optional[AuditTrail] = None,
        clock: Clock = utc_now,
        on_alert: Optional[Callable[[Alert], None]] = None,
        locks: Optional[KeyedLock] = None,
    ):
        """Initialize the alert manager.

        Args:
            repository: Store holding alert records.
            config: Engine configuration (cooldown window).
            audit: Audit trail; one is created over ``repository`` if omitted.
            clock: Time source.
            on_alert: Callback for newly raised alerts.
            locks: Shared per-key lock registry.
        """
        self.config = config or EngineConfig()
        self._repository = repository
        self._audit = audit or AuditTrail(repository, clock)
        self._clock = clock
        self._on_alert = on_alert
        self._locks = locks or KeyedLock(self.config.lock_timeout_seconds)

    # ==================== Raising ====================

    def raise_alert(
        self,
        severity: Union[AlertSeverity, str],
        title: str,
        message: str,
        component: Optional[str] = None,
        error_type: Optional[Union[AlertType, str]] = None,
        affected_count: Optional[int] = None,
        batch_id: Optional[str] = None,
        transaction_id: Optional[str] = None,
        fold_duplicates: bool = True,
    ) -> Alert:
        """Raise a new alert in ``active`` status.

        A repeat of a still active alert with the same error type, component
        and batch inside the cooldown window returns the existing alert.
        Once an alert has been acknowledged, a repeat raises a fresh one.

        Args:
            severity: Severity level.
            title: Alert title.
            message: Alert message.
            component: Component that detected the anomaly.
            error_type: Anomaly type, usually an ``AlertType``.
            affected_count: Number of transactions affected.
            batch_id: Correlated batch, if any.
            transaction_id: Correlated transaction, if any.
            fold_duplicates: When False, always store a new alert.

        Returns:
            The raised (or folded) Alert.
        """
        severity = AlertSeverity(severity)
        if isinstance(error_type, AlertType):
            error_type = error_type.value

        dedupe_key = (error_type, component, batch_id)
        with self._locks.hold(f"alert-key:{dedupe_key}"):
            now = self._clock()
            existing = self._find_in_cooldown(dedupe_key, now) if fold_duplicates else None
            if existing:
                logger.info(
                    "alert_suppressed_in_cooldown",
                    alert_id=existing.alert_id,
                    error_type=error_type,
                    component=component,
                )
                return existing

            alert = Alert(
                alert_id=f"alert_{uuid4().hex}",
                severity=severity,
                title=title,
                message=message,
                component=component,
                error_type=error_type,
                affected_count=affected_count,
                batch_id=batch_id,
                transaction_id=transaction_id,
                occurred_at=now,
            )
            self._repository.put_alert(alert)

        self._audit.record(
            actor=component or "system",
            action=AuditAction.ALERT_RAISED,
            entity_type="alert",
            entity_id=alert.alert_id,
            batch_id=batch_id,
            details={"severity": severity.value, "error_type": error_type, "title": title},
        )

        if self._on_alert:
            self._on_alert(alert)

        log = logger.warning if severity in (AlertSeverity.CRITICAL, AlertSeverity.HIGH) else logger.info
        log(
            "alert_raised",
            alert_id=alert.alert_id,
            severity=severity.value,
            error_type=error_type,
            component=component,
            batch_id=batch_id,
            title=title,
        )
        return alert

    def _find_in_cooldown(self, dedupe_key, now) -> Optional[Alert]:
        cooldown = self.config.alert_cooldown_seconds
        if cooldown <= 0:
            return None
        window_start = now - timedelta(seconds=cooldown)
        for alert in self._repository.list_alerts():
            if (
                alert.dedupe_key == dedupe_key
                and alert.status == AlertStatus.ACTIVE
                and alert.occurred_at >= window_start
            ):
                return alert
        return None

    def alert_executor_failure(
        self,
        batch_id: str,
        step: int,
        error: str,
        timed_out: bool = False,
    ) -> Alert:
        """Raise the alert for a failed step executor.

        Ingestion failures are critical since nothing downstream can proceed.
        Every failure gets its own alert, including repeats for the same batch.
        """
        severity = AlertSeverity.CRITICAL if step == INGESTION_STEP else AlertSeverity.HIGH
        error_type = AlertType.EXECUTOR_TIMEOUT if timed_out else AlertType.WORKFLOW_FAILURE
        step_name = STEP_NAMES[step]
        return self.raise_alert(
            severity=severity,
            title=f"{step_name} Failed: {batch_id}",
            message=f"Step {step} ({step_name}) failed for batch {batch_id}: {error}",
            component=WORKFLOW_COMPONENT,
            error_type=error_type,
            batch_id=batch_id,
            fold_duplicates=False,
        )

    def alert_error_rate(
        self,
        batch_id: str,
        step: int,
        error_rate: float,
        failed_count: int,
    ) -> Alert:
        """Raise the alert for a step whose failure rate breached the threshold."""
        return self.raise_alert(
            severity=AlertSeverity.MEDIUM,
            title=f"High Error Rate: {error_rate:.1%}",
            message=(
                f"Step {step} ({STEP_NAMES[step]}) of batch {batch_id} failed "
                f"{failed_count} transactions ({error_rate:.1%})."
            ),
            component=WORKFLOW_COMPONENT,
            error_type=AlertType.ERROR_RATE_THRESHOLD,
            affected_count=failed_count,
            batch_id=batch_id,
        )

    def alert_stalled_batch(self, batch_id: str, step: int, idle_seconds: int) -> Alert:
        """Raise the alert for a running batch that stopped making progress."""
        return self.raise_alert(
            severity=AlertSeverity.MEDIUM,
            title=f"Batch Stalled: {batch_id}",
            message=(
                f"Batch {batch_id} has not progressed for {idle_seconds} seconds "
                f"at step {step} ({STEP_NAMES[step]})."
            ),
            component=WORKFLOW_COMPONENT,
            error_type=AlertType.SLA_BREACH,
            batch_id=batch_id,
        )

    def alert_approval_backlog(self, batch_id: str, pending: int) -> Alert:
        """Raise the alert for an approval queue backlog."""
        return self.raise_alert(
            severity=AlertSeverity.LOW,
            title=f"Approval Backlog: {batch_id}",
            message=f"Batch {batch_id} has {pending} items awaiting human review.",
            component=APPROVAL_COMPONENT,
            error_type=AlertType.APPROVAL_QUEUE_BACKLOG,
            affected_count=pending,
            batch_id=batch_id,
        )

    # ==================== Lifecycle ====================

    def get(self, alert_id: str) -> Alert:
        """Get alert by ID.

        Raises:
            NotFoundError: If the alert does not exist.
        """
        alert = self._repository.get_alert(alert_id)
        if alert is None:
            raise NotFoundError(
                f"Alert not found: {alert_id}", entity_type="alert", entity_id=alert_id
            )
        return alert

    def acknowledge(self, alert_id: str, by: str, reason: str) -> Alert:
        """Acknowledge an active alert.

        Args:
            alert_id: Alert identifier.
            by: User acknowledging the alert.
            reason: Acknowledgment reason.

        Returns:
            The updated Alert.

        Raises:
            NotFoundError: If the alert does not exist.
            InvalidTransitionError: If the alert is not active.
        """
        with self._locks.hold(f"alert:{alert_id}"):
            alert = self.get(alert_id)
            if alert.status != AlertStatus.ACTIVE:
                raise InvalidTransitionError(
                    f"Cannot acknowledge alert {alert_id} in status {alert.status.value}",
                    entity_id=alert_id,
                    current_state=alert.status.value,
                    attempted=AlertStatus.ACKNOWLEDGED.value,
                )

            alert.status = AlertStatus.ACKNOWLEDGED
            alert.acknowledged_at = self._clock()
            alert.acknowledged_by = by
            alert.acknowledgment_reason = reason
            self._repository.put_alert(alert)

        self._audit.record(
            actor=by,
            action=AuditAction.ALERT_ACKNOWLEDGED,
            entity_type="alert",
            entity_id=alert_id,
            batch_id=alert.batch_id,
            details={"reason": reason},
        )
        logger.info("alert_acknowledged", alert_id=alert_id, by=by)
        return alert

    def resolve(self, alert_id: str, by: str, resolution: str) -> Alert:
        """Resolve an active or acknowledged alert.

        Resolving an already resolved alert is rejected rather than treated
        as a no-op.

        Args:
            alert_id: Alert identifier.
            by: User resolving the alert.
            resolution: Resolution description.

        Returns:
            The updated Alert.

        Raises:
            NotFoundError: If the alert does not exist.
            InvalidTransitionError: If the alert is already resolved.
        """
        with self._locks.hold(f"alert:{alert_id}"):
            alert = self.get(alert_id)
            if alert.is_resolved:
                raise InvalidTransitionError(
                    f"Alert {alert_id} is already resolved",
                    entity_id=alert_id,
                    current_state=alert.status.value,
                    attempted=AlertStatus.RESOLVED.value,
                )

            previous = alert.status
            alert.status = AlertStatus.RESOLVED
            alert.resolved_at = self._clock()
            alert.resolved_by = by
            alert.resolution = resolution
            self._repository.put_alert(alert)

        self._audit.record(
            actor=by,
            action=AuditAction.ALERT_RESOLVED,
            entity_type="alert",
            entity_id=alert_id,
            batch_id=alert.batch_id,
            details={"resolution": resolution, "previous_status": previous.value},
        )
        logger.info("alert_resolved", alert_id=alert_id, by=by, previous_status=previous.value)
        return alert

    # ==================== Queries ====================

    def list_alerts(
        self,
        severity: Optional[AlertSeverity] = None,
        status: Optional[AlertStatus] = None,
        component: Optional[str] = None,
        batch_id: Optional[str] = None,
        error_type: Optional[Union[AlertType, str]] = None,
        limit: int = 100,
    ) -> list[Alert]:
        """List alerts with optional filtering, most severe first, then newest."""
        alerts = self._repository.list_alerts()

        if severity:
            alerts = [a for a in alerts if a.severity == severity]

        if status:
            alerts = [a for a in alerts if a.status == status]

        if component:
            alerts = [a for a in alerts if a.component == component]

        if batch_id:
            alerts = [a for a in alerts if a.batch_id == batch_id]

        if error_type:
            if isinstance(error_type, AlertType):
                error_type = error_type.value
            alerts = [a for a in alerts if a.error_type == error_type]

        alerts.sort(key=lambda a: a.occurred_at, reverse=True)
        alerts.sort(key=lambda a: SEVERITY_RANK[a.severity])
        return alerts[:limit]

    def get_active_count(self) -> int:
        """Get count of active and acknowledged alerts."""
        return len([a for a in self._repository.list_alerts() if not a.is_resolved])

    def get_counts_by_severity(self, unresolved_only: bool = True) -> dict[str, int]:
        """Get alert counts by severity."""
        counts: dict[str, int] = defaultdict(int)
        for alert in self._repository.list_alerts():
            if unresolved_only and alert.is_resolved:
                continue
            counts[alert.severity.value] += 1
        return dict(counts)
