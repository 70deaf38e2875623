"""Derived batch metrics.

Everything here is computed from a BatchRecord snapshot on every read and
never written back.
"""

import math
from datetime import datetime, timedelta
from typing import Optional

from cash_clearing.core import format_duration, parse_duration, utc_now
from cash_clearing.models.batch import BatchRecord
from cash_clearing.models.status import WorkflowMetrics

ALMOST_COMPLETE = "Almost complete"


def round_percent(value: float) -> float:
    """Round half up to 2 decimal places."""
    return math.floor(value * 100 + 0.5) / 100


def percent_complete(record: BatchRecord) -> float:
    """Processed transactions as a percentage of the total, 0 for an empty batch."""
    if record.total_transactions == 0:
        return 0.0
    return record.processed_transactions / record.total_transactions * 100


def processing_rate(record: BatchRecord) -> float:
    """Fraction of the batch processed, in [0, 1]."""
    return percent_complete(record) / 100


def _remaining_ms(record: BatchRecord, now: datetime) -> Optional[float]:
    if record.is_terminal:
        return None
    percent = percent_complete(record)
    if percent == 0:
        return None
    elapsed_ms = (now - record.created_at).total_seconds() * 1000
    return elapsed_ms * (100 / percent - 1)


def estimated_time_remaining(
    record: BatchRecord,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """Estimate the time left by extrapolating elapsed time over progress.

    Args:
        record: Batch snapshot.
        now: Reference time; defaults to the current UTC time.

    Returns:
        Formatted duration, ``"Almost complete"`` when nothing is left, or
        None for finished batches and batches without progress.
    """
    remaining = _remaining_ms(record, now or utc_now())
    if remaining is None:
        return None
    if remaining <= 0:
        return ALMOST_COMPLETE
    return format_duration(remaining)


def estimated_completion(
    record: BatchRecord,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """Projected completion time, None when the remaining time displays as zero."""
    now = now or utc_now()
    remaining = estimated_time_remaining(record, now)
    if remaining is None or remaining == ALMOST_COMPLETE:
        return None
    remaining_ms = parse_duration(remaining)
    if remaining_ms <= 0:
        return None
    return now + timedelta(milliseconds=remaining_ms)


def compute_metrics(
    record: BatchRecord,
    now: Optional[datetime] = None,
    average_confidence: Optional[float] = None,
) -> WorkflowMetrics:
    """Build the metrics block of the status projection."""
    now = now or utc_now()
    return WorkflowMetrics(
        percent_complete=round_percent(percent_complete(record)),
        processing_rate=processing_rate(record),
        estimated_time_remaining=estimated_time_remaining(record, now),
        estimated_completion=estimated_completion(record, now),
        average_confidence=average_confidence,
    )
