"""
Unit tests for the alert lifecycle manager.
"""

import pytest

from cash_clearing.core import InvalidTransitionError, NotFoundError
from cash_clearing.models import AlertSeverity, AlertStatus, AlertType, AuditAction


@pytest.fixture
def alert(alerts):
    return alerts.raise_alert(
        severity=AlertSeverity.HIGH,
        title="Pattern Matching Failed",
        message="Matcher unavailable",
        component="workflow_engine",
        error_type=AlertType.WORKFLOW_FAILURE,
        batch_id="batch-1",
    )


class TestRaiseAlert:
    """Tests for raising alerts."""

    def test_new_alert_is_active(self, alert, clock):
        assert alert.status == AlertStatus.ACTIVE
        assert alert.occurred_at == clock.now
        assert alert.error_type == "workflow_failure"

    def test_accepts_string_severity(self, alerts):
        raised = alerts.raise_alert("low", "t", "m")
        assert raised.severity == AlertSeverity.LOW

    def test_on_alert_callback(self, repository, config, clock):
        from cash_clearing.services import AlertManager

        received = []
        manager = AlertManager(repository, config, clock=clock, on_alert=received.append)
        raised = manager.raise_alert(AlertSeverity.CRITICAL, "t", "m")
        assert received == [raised]

    def test_duplicate_within_cooldown_is_folded(self, alerts, alert, clock):
        clock.advance(seconds=60)
        again = alerts.raise_alert(
            AlertSeverity.HIGH, "t", "m",
            component="workflow_engine",
            error_type=AlertType.WORKFLOW_FAILURE,
            batch_id="batch-1",
        )
        assert again.alert_id == alert.alert_id
        assert len(alerts.list_alerts()) == 1

    def test_duplicate_after_cooldown_is_new(self, alerts, alert, clock):
        clock.advance(seconds=301)
        again = alerts.raise_alert(
            AlertSeverity.HIGH, "t", "m",
            component="workflow_engine",
            error_type=AlertType.WORKFLOW_FAILURE,
            batch_id="batch-1",
        )
        assert again.alert_id != alert.alert_id

    def test_resolved_alert_does_not_fold(self, alerts, alert):
        alerts.resolve(alert.alert_id, "ops", "fixed")
        again = alerts.raise_alert(
            AlertSeverity.HIGH, "t", "m",
            component="workflow_engine",
            error_type=AlertType.WORKFLOW_FAILURE,
            batch_id="batch-1",
        )
        assert again.alert_id != alert.alert_id

    def test_acknowledged_alert_does_not_fold(self, alerts, alert, clock):
        alerts.acknowledge(alert.alert_id, "ops", "looking")
        clock.advance(seconds=30)
        again = alerts.raise_alert(
            AlertSeverity.HIGH, "t", "m",
            component="workflow_engine",
            error_type=AlertType.WORKFLOW_FAILURE,
            batch_id="batch-1",
        )
        assert again.alert_id != alert.alert_id
        assert again.status == AlertStatus.ACTIVE
        assert alerts.get(alert.alert_id).status == AlertStatus.ACKNOWLEDGED

    def test_repeated_executor_failures_each_raise(self, alerts, clock):
        first = alerts.alert_executor_failure("batch-1", 2, "matcher failed")
        clock.advance(seconds=10)
        second = alerts.alert_executor_failure("batch-1", 2, "matcher failed")

        assert second.alert_id != first.alert_id
        assert len(alerts.list_alerts(batch_id="batch-1")) == 2

    def test_different_batch_is_not_folded(self, alerts, alert):
        other = alerts.raise_alert(
            AlertSeverity.HIGH, "t", "m",
            component="workflow_engine",
            error_type=AlertType.WORKFLOW_FAILURE,
            batch_id="batch-2",
        )
        assert other.alert_id != alert.alert_id

    def test_executor_failure_severity(self, alerts):
        ingestion = alerts.alert_executor_failure("b1", 1, "query failed")
        matching = alerts.alert_executor_failure("b2", 2, "matcher failed", timed_out=True)
        assert ingestion.severity == AlertSeverity.CRITICAL
        assert matching.severity == AlertSeverity.HIGH
        assert matching.error_type == AlertType.EXECUTOR_TIMEOUT.value

    def test_raise_is_audited(self, alert, audit):
        entries = audit.entries_for(entity_type="alert", entity_id=alert.alert_id)
        assert [e.action for e in entries] == [AuditAction.ALERT_RAISED]
        assert entries[0].actor == "workflow_engine"


class TestAlertLifecycle:
    """Tests for acknowledge and resolve transitions."""

    def test_acknowledge(self, alerts, alert, clock):
        updated = alerts.acknowledge(alert.alert_id, "ops", "looking")
        assert updated.status == AlertStatus.ACKNOWLEDGED
        assert updated.acknowledged_by == "ops"
        assert updated.acknowledged_at == clock.now
        assert updated.acknowledgment_reason == "looking"

    def test_resolve_from_active(self, alerts, alert):
        resolved = alerts.resolve(alert.alert_id, "ops", "restarted matcher")
        assert resolved.status == AlertStatus.RESOLVED
        assert resolved.resolution == "restarted matcher"

    def test_resolve_from_acknowledged(self, alerts, alert):
        alerts.acknowledge(alert.alert_id, "ops", "looking")
        resolved = alerts.resolve(alert.alert_id, "ops", "done")
        assert resolved.status == AlertStatus.RESOLVED
        assert resolved.acknowledged_by == "ops"

    def test_resolve_twice_rejected(self, alerts, alert):
        alerts.resolve(alert.alert_id, "ops", "done")
        with pytest.raises(InvalidTransitionError):
            alerts.resolve(alert.alert_id, "ops", "again")
        assert alerts.get(alert.alert_id).resolution == "done"

    def test_acknowledge_after_resolve_rejected(self, alerts, alert):
        alerts.resolve(alert.alert_id, "ops", "done")
        with pytest.raises(InvalidTransitionError):
            alerts.acknowledge(alert.alert_id, "ops", "late")

    def test_acknowledge_twice_rejected(self, alerts, alert):
        alerts.acknowledge(alert.alert_id, "ops", "looking")
        with pytest.raises(InvalidTransitionError):
            alerts.acknowledge(alert.alert_id, "other", "also looking")
        assert alerts.get(alert.alert_id).acknowledged_by == "ops"

    @pytest.mark.parametrize("operation", ["acknowledge", "resolve"])
    def test_unknown_alert(self, alerts, operation):
        with pytest.raises(NotFoundError) as exc_info:
            getattr(alerts, operation)("missing", "ops", "text")
        assert exc_info.value.is_retryable

    def test_transitions_are_audited(self, alerts, alert, audit):
        alerts.acknowledge(alert.alert_id, "ops", "looking")
        alerts.resolve(alert.alert_id, "lead", "done")
        entries = audit.entries_for(entity_id=alert.alert_id)
        assert [(e.action, e.actor) for e in entries] == [
            (AuditAction.ALERT_RAISED, "workflow_engine"),
            (AuditAction.ALERT_ACKNOWLEDGED, "ops"),
            (AuditAction.ALERT_RESOLVED, "lead"),
        ]


class TestAlertQueries:
    """Tests for listing and counting alerts."""

    def test_list_newest_first_with_filters(self, alerts, clock):
        first = alerts.raise_alert(AlertSeverity.LOW, "first", "m", component="a")
        clock.advance(seconds=1)
        second = alerts.raise_alert(AlertSeverity.HIGH, "second", "m", component="b")

        assert [a.alert_id for a in alerts.list_alerts()] == [second.alert_id, first.alert_id]
        assert [a.alert_id for a in alerts.list_alerts(severity=AlertSeverity.LOW)] == [first.alert_id]
        assert [a.alert_id for a in alerts.list_alerts(component="b")] == [second.alert_id]
        assert len(alerts.list_alerts(limit=1)) == 1

    def test_list_orders_by_severity_then_newest(self, alerts, clock):
        old_critical = alerts.raise_alert(AlertSeverity.CRITICAL, "old", "m", component="a")
        clock.advance(seconds=1)
        low = alerts.raise_alert(AlertSeverity.LOW, "low", "m", component="b")
        clock.advance(seconds=1)
        medium = alerts.raise_alert(AlertSeverity.MEDIUM, "medium", "m", component="c")
        clock.advance(seconds=1)
        new_critical = alerts.raise_alert(AlertSeverity.CRITICAL, "new", "m", component="d")

        assert [a.alert_id for a in alerts.list_alerts()] == [
            new_critical.alert_id,
            old_critical.alert_id,
            medium.alert_id,
            low.alert_id,
        ]

    def test_counts_ignore_resolved(self, alerts):
        kept = alerts.raise_alert(AlertSeverity.HIGH, "kept", "m", component="a")
        gone = alerts.raise_alert(AlertSeverity.HIGH, "gone", "m", component="b")
        alerts.raise_alert(AlertSeverity.LOW, "low", "m", component="c")
        alerts.resolve(gone.alert_id, "ops", "done")

        assert alerts.get_active_count() == 2
        assert alerts.get_counts_by_severity() == {"high": 1, "low": 1}
        assert alerts.get_counts_by_severity(unresolved_only=False) == {"high": 2, "low": 1}
        assert kept.alert_id in {a.alert_id for a in alerts.list_alerts(status=AlertStatus.ACTIVE)}
