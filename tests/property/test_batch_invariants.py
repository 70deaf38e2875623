"""
Property tests for the batch state machine.

For any sequence of step results, a batch's counters stay within its total,
its current step never moves backwards while running, and step n+1 never
starts before step n has finished.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from cash_clearing.core import InvalidInputError, InvalidTransitionError
from cash_clearing.models import BatchStatus, StepStatus
from cash_clearing.repository import InMemoryCashClearingRepository
from cash_clearing.services import WorkflowEngine
from tests.fakes import FixedClock
from tests.strategies import count_strategy, step_result_strategy

FINISHED = (StepStatus.COMPLETED, StepStatus.FAILED)


def new_engine() -> WorkflowEngine:
    return WorkflowEngine(InMemoryCashClearingRepository(), clock=FixedClock())


class TestBatchInvariants:
    """
    Batch record invariants hold after every advance_step.
    """

    @settings(max_examples=100)
    @given(total=count_strategy, data=st.data())
    def test_invariants_hold_for_any_result_sequence(self, total: int, data):
        engine = new_engine()
        engine.start_batch(total, batch_id="batch-p")
        previous_step = 1

        for _ in range(8):
            record = engine.get_batch("batch-p")
            if record.is_terminal:
                break

            result = data.draw(step_result_strategy(record.current_step))
            try:
                record = engine.advance_step("batch-p", result)
            except (InvalidInputError, InvalidTransitionError):
                record = engine.get_batch("batch-p")

            assert (
                record.processed_transactions + record.failed_transactions
                <= record.total_transactions
            )
            assert record.current_step >= previous_step
            previous_step = record.current_step

            for number in (2, 3, 4):
                if record.steps[number].status != StepStatus.PENDING:
                    assert record.steps[number - 1].status in FINISHED

            if any(s.status == StepStatus.FAILED for s in record.steps.values()):
                assert record.status == BatchStatus.FAILED
            if record.steps[4].status == StepStatus.COMPLETED:
                assert record.status == BatchStatus.COMPLETED

    @settings(max_examples=50)
    @given(total=count_strategy, data=st.data())
    def test_terminal_batches_never_transition(self, total: int, data):
        engine = new_engine()
        engine.start_batch(total, batch_id="batch-p")
        engine.cancel("batch-p", "ops", "stop")
        before = engine.get_batch("batch-p")

        result = data.draw(step_result_strategy(before.current_step))
        try:
            engine.advance_step("batch-p", result)
        except InvalidTransitionError:
            pass

        after = engine.get_batch("batch-p")
        assert after.status == BatchStatus.FAILED
        assert after.current_step == before.current_step
        assert after.steps == before.steps
