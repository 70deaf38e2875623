"""
Property tests for approval decisions.

Auto-approval is decided at enqueue time from the confidence threshold, and
an item is decided exactly once.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from cash_clearing.core import AlreadyDecidedError, EngineConfig
from cash_clearing.models import ApprovalDecision
from cash_clearing.repository import InMemoryCashClearingRepository
from cash_clearing.services import ApprovalQueue
from tests.fakes import FixedClock
from tests.strategies import actor_strategy, confidence_strategy, manual_decision_strategy


def new_queue(threshold: float = 0.85) -> ApprovalQueue:
    return ApprovalQueue(
        InMemoryCashClearingRepository(),
        EngineConfig(confidence_threshold=threshold),
        clock=FixedClock(),
    )


class TestAutoApproval:
    """
    Items at or above the threshold are auto-approved, never pending.
    """

    @settings(max_examples=100)
    @given(confidence=confidence_strategy, threshold=confidence_strategy)
    def test_decision_follows_threshold(self, confidence: float, threshold: float):
        queue = new_queue(threshold)
        item = queue.enqueue("batch-p", "item-p", confidence)

        if confidence >= threshold:
            assert item.decision == ApprovalDecision.AUTO_APPROVED
        else:
            assert item.decision == ApprovalDecision.PENDING


class TestSingleDecision:
    """
    A second decision always fails and leaves the first untouched.
    """

    @settings(max_examples=100)
    @given(
        confidence=st.floats(min_value=0.0, max_value=0.84, allow_nan=False),
        first=manual_decision_strategy,
        second=manual_decision_strategy,
        first_actor=actor_strategy,
        second_actor=actor_strategy,
    )
    def test_redecide_fails(self, confidence, first, second, first_actor, second_actor):
        queue = new_queue()
        queue.enqueue("batch-p", "item-p", confidence)
        queue.decide("item-p", first, first_actor)
        counts_before = queue.counts_for("batch-p")

        with pytest.raises(AlreadyDecidedError):
            queue.decide("item-p", second, second_actor)

        item = queue.get("item-p")
        assert item.decision == ApprovalDecision(first)
        assert item.decided_by == first_actor
        assert queue.counts_for("batch-p") == counts_before
        assert counts_before.total == 1
