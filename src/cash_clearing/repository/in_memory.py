"""
In-memory implementation of CashClearingRepository.

This implementation is suitable for local development and testing.
All data is stored in memory and lost when the process terminates.
"""
import threading
from copy import deepcopy
from typing import Optional

from cash_clearing.models.alert import Alert
from cash_clearing.models.approval import ApprovalDecision, ApprovalItem
from cash_clearing.models.audit import AuditEntry
from cash_clearing.models.batch import BatchRecord, BatchStatus
from cash_clearing.repository.base import CashClearingRepository


class InMemoryCashClearingRepository(CashClearingRepository):
    """
    In-memory implementation of CashClearingRepository.

    Stores all data in dictionaries. Useful for testing and development.
    """

    def __init__(self):
        """Initialize empty storage containers."""
        self._batches: dict[str, BatchRecord] = {}  # batch_id -> current record
        self._batch_history: dict[str, list[BatchRecord]] = {}  # batch_id -> superseded records
        self._approval_items: dict[str, ApprovalItem] = {}  # item_id -> item
        self._alerts: dict[str, Alert] = {}  # alert_id -> alert
        self._audit_entries: list[AuditEntry] = []
        self._lock = threading.Lock()

    # ==================== Batch Records ====================

    def get_batch(self, batch_id: str) -> Optional[BatchRecord]:
        """Get the current record for a batch."""
        with self._lock:
            record = self._batches.get(batch_id)
            return deepcopy(record) if record else None

    def put_batch(self, record: BatchRecord) -> None:
        """Create or replace the current record for a batch."""
        with self._lock:
            self._batches[record.batch_id] = deepcopy(record)

    def list_batches(self, status: Optional[BatchStatus] = None) -> list[BatchRecord]:
        """List current batch records, optionally filtered by status."""
        with self._lock:
            records = list(self._batches.values())
        if status:
            records = [r for r in records if r.status == status]
        records.sort(key=lambda r: r.created_at)
        return [deepcopy(r) for r in records]

    def archive_batch(self, record: BatchRecord) -> None:
        """Retain a superseded attempt."""
        with self._lock:
            self._batch_history.setdefault(record.batch_id, []).append(deepcopy(record))

    def get_batch_history(self, batch_id: str) -> list[BatchRecord]:
        """Get archived attempts for a batch."""
        with self._lock:
            return [deepcopy(r) for r in self._batch_history.get(batch_id, [])]

    # ==================== Approval Items ====================

    def get_approval_item(self, item_id: str) -> Optional[ApprovalItem]:
        """Get an approval item by ID."""
        with self._lock:
            item = self._approval_items.get(item_id)
            return deepcopy(item) if item else None

    def put_approval_item(self, item: ApprovalItem) -> None:
        """Create or replace an approval item."""
        with self._lock:
            self._approval_items[item.item_id] = deepcopy(item)

    def list_approval_items(
        self,
        batch_id: Optional[str] = None,
        decision: Optional[ApprovalDecision] = None,
    ) -> list[ApprovalItem]:
        """List approval items in insertion order."""
        with self._lock:
            items = list(self._approval_items.values())

        if batch_id:
            items = [i for i in items if i.batch_id == batch_id]

        if decision:
            items = [i for i in items if i.decision == decision]

        items.sort(key=lambda i: (i.sequence, i.created_at))
        return [deepcopy(i) for i in items]

    # ==================== Alerts ====================

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        """Get an alert by ID."""
        with self._lock:
            alert = self._alerts.get(alert_id)
            return deepcopy(alert) if alert else None

    def put_alert(self, alert: Alert) -> None:
        """Create or replace an alert."""
        with self._lock:
            self._alerts[alert.alert_id] = deepcopy(alert)

    def list_alerts(self) -> list[Alert]:
        """List every alert."""
        with self._lock:
            return [deepcopy(a) for a in self._alerts.values()]

    # ==================== Audit Trail ====================

    def add_audit_entry(self, entry: AuditEntry) -> None:
        """Append an entry to the audit trail."""
        with self._lock:
            self._audit_entries.append(deepcopy(entry))

    def get_audit_entries(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        batch_id: Optional[str] = None,
    ) -> list[AuditEntry]:
        """Get audit entries with optional filters."""
        with self._lock:
            entries = list(self._audit_entries)

        if entity_type:
            entries = [e for e in entries if e.entity_type == entity_type]

        if entity_id:
            entries = [e for e in entries if e.entity_id == entity_id]

        if batch_id:
            entries = [e for e in entries if e.batch_id == batch_id]

        return [deepcopy(e) for e in entries]
