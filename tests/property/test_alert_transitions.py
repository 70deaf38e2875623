"""
Property tests for the alert lifecycle.

Alert status only moves forward: active -> acknowledged -> resolved, or
active -> resolved.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from cash_clearing.core import InvalidTransitionError
from cash_clearing.models import AlertSeverity, AlertStatus
from cash_clearing.repository import InMemoryCashClearingRepository
from cash_clearing.services import AlertManager
from tests.fakes import FixedClock
from tests.strategies import actor_strategy, alert_operation_strategy

RANK = {AlertStatus.ACTIVE: 0, AlertStatus.ACKNOWLEDGED: 1, AlertStatus.RESOLVED: 2}


class TestAlertTransitions:
    """
    Any sequence of acknowledge/resolve calls keeps the status monotonic.
    """

    @settings(max_examples=100)
    @given(
        operations=st.lists(alert_operation_strategy, min_size=1, max_size=6),
        actor=actor_strategy,
    )
    def test_status_never_moves_backwards(self, operations, actor):
        manager = AlertManager(InMemoryCashClearingRepository(), clock=FixedClock())
        alert = manager.raise_alert(AlertSeverity.MEDIUM, "title", "message")
        status = alert.status

        for operation in operations:
            allowed = (
                status == AlertStatus.ACTIVE
                or (operation == "resolve" and status == AlertStatus.ACKNOWLEDGED)
            )
            if allowed:
                updated = getattr(manager, operation)(alert.alert_id, actor, "text")
                assert RANK[updated.status] > RANK[status]
                status = updated.status
            else:
                with pytest.raises(InvalidTransitionError):
                    getattr(manager, operation)(alert.alert_id, actor, "text")
                assert manager.get(alert.alert_id).status == status
