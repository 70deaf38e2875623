"""
Unit tests for derived batch metrics.
"""

from datetime import datetime, timedelta, timezone

import pytest

from cash_clearing.models import BatchRecord, BatchStatus
from cash_clearing.services.metrics import (
    ALMOST_COMPLETE,
    compute_metrics,
    estimated_completion,
    estimated_time_remaining,
    percent_complete,
    processing_rate,
    round_percent,
)

START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_record(total=100, processed=0, failed=0, status=BatchStatus.RUNNING) -> BatchRecord:
    return BatchRecord(
        batch_id="batch-1",
        workflow_id="wf-1",
        status=status,
        total_transactions=total,
        processed_transactions=processed,
        failed_transactions=failed,
        created_at=START,
        updated_at=START,
    )


class TestPercentComplete:
    """Tests for percent_complete and processing_rate."""

    def test_empty_batch_is_zero(self):
        assert percent_complete(make_record(total=0)) == 0.0

    def test_counts_processed_only(self):
        record = make_record(processed=80, failed=20)
        assert percent_complete(record) == 80.0
        assert processing_rate(record) == 0.8

    @pytest.mark.parametrize("value,expected", [
        (33.333333, 33.33),
        (66.666666, 66.67),
        (12.5, 12.5),
        (100.0, 100.0),
    ])
    def test_round_percent(self, value, expected):
        assert round_percent(value) == expected


class TestEstimatedTimeRemaining:
    """Tests for ETA estimation."""

    def test_undefined_without_progress(self):
        assert estimated_time_remaining(make_record(), START + timedelta(minutes=5)) is None

    @pytest.mark.parametrize("status", [BatchStatus.COMPLETED, BatchStatus.FAILED])
    def test_undefined_when_finished(self, status):
        record = make_record(processed=50, status=status)
        assert estimated_time_remaining(record, START + timedelta(minutes=10)) is None

    def test_half_done_after_ten_minutes(self):
        record = make_record(processed=50)
        assert estimated_time_remaining(record, START + timedelta(minutes=10)) == "10m 0s"

    def test_long_running_uses_hours(self):
        record = make_record(processed=25)
        assert estimated_time_remaining(record, START + timedelta(minutes=30)) == "1h 30m"

    def test_fully_processed_running_batch(self):
        record = make_record(processed=100)
        assert estimated_time_remaining(record, START + timedelta(minutes=1)) == ALMOST_COMPLETE

    def test_paused_batch_still_estimates(self):
        record = make_record(processed=50, status=BatchStatus.PAUSED)
        assert estimated_time_remaining(record, START + timedelta(seconds=20)) == "20s"


class TestEstimatedCompletion:
    """Tests for estimated_completion."""

    def test_now_plus_remaining(self):
        now = START + timedelta(minutes=10)
        assert estimated_completion(make_record(processed=50), now) == now + timedelta(minutes=10)

    def test_none_when_remaining_displays_as_zero(self):
        record = make_record(processed=99)
        now = START + timedelta(seconds=10)
        assert estimated_time_remaining(record, now) == "0s"
        assert estimated_completion(record, now) is None

    def test_none_when_almost_complete(self):
        assert estimated_completion(make_record(processed=100), START + timedelta(minutes=1)) is None

    def test_none_without_progress(self):
        assert estimated_completion(make_record(), START + timedelta(minutes=1)) is None


class TestComputeMetrics:
    """Tests for compute_metrics."""

    def test_combines_metrics(self):
        now = START + timedelta(minutes=10)
        metrics = compute_metrics(make_record(total=3, processed=1), now, average_confidence=0.72)
        assert metrics.percent_complete == 33.33
        assert metrics.processing_rate == pytest.approx(1 / 3)
        assert metrics.estimated_time_remaining == "20m 0s"
        assert metrics.estimated_completion == now + timedelta(minutes=20)
        assert metrics.average_confidence == 0.72
