"""
Abstract base class for cash clearing persistence.

This module defines the CashClearingRepository interface that all
repository implementations must follow. Each entity is exposed through the
same get/put/list shape so the backend can be swapped without touching the
services that own the state transitions.
"""
from abc import ABC, abstractmethod
from typing import Optional

from cash_clearing.models.alert import Alert
from cash_clearing.models.approval import ApprovalDecision, ApprovalItem
from cash_clearing.models.audit import AuditEntry
from cash_clearing.models.batch import BatchRecord, BatchStatus


class CashClearingRepository(ABC):
    """
    Abstract base class for cash clearing persistence.

    Implementations store copies: mutating a returned object never changes
    stored state until it is written back with the matching ``put`` method.
    """

    # ==================== Batch Records ====================

    @abstractmethod
    def get_batch(self, batch_id: str) -> Optional[BatchRecord]:
        """
        Get the current record for a batch.

        Args:
            batch_id: The batch identifier.

        Returns:
            The current batch record, or None if the batch is unknown.
        """
        ...

    @abstractmethod
    def put_batch(self, record: BatchRecord) -> None:
        """
        Create or replace the current record for ``record.batch_id``.

        Args:
            record: The batch record to store.
        """
        ...

    @abstractmethod
    def list_batches(self, status: Optional[BatchStatus] = None) -> list[BatchRecord]:
        """
        List current batch records, optionally filtered by status.

        Args:
            status: Optional status filter.

        Returns:
            Batch records ordered by creation time.
        """
        ...

    @abstractmethod
    def archive_batch(self, record: BatchRecord) -> None:
        """
        Retain a superseded attempt for audit once a batch id is reused.

        Args:
            record: The record being replaced.
        """
        ...

    @abstractmethod
    def get_batch_history(self, batch_id: str) -> list[BatchRecord]:
        """
        Get archived attempts for a batch, oldest first.

        Args:
            batch_id: The batch identifier.
        """
        ...

    # ==================== Approval Items ====================

    @abstractmethod
    def get_approval_item(self, item_id: str) -> Optional[ApprovalItem]:
        """
        Get an approval item by ID.

        Args:
            item_id: The approval item identifier.

        Returns:
            The item if found, None otherwise.
        """
        ...

    @abstractmethod
    def put_approval_item(self, item: ApprovalItem) -> None:
        """
        Create or replace an approval item.

        Args:
            item: The approval item to store.
        """
        ...

    @abstractmethod
    def list_approval_items(
        self,
        batch_id: Optional[str] = None,
        decision: Optional[ApprovalDecision] = None,
    ) -> list[ApprovalItem]:
        """
        List approval items in insertion order.

        Args:
            batch_id: Optional batch filter.
            decision: Optional decision filter.
        """
        ...

    # ==================== Alerts ====================

    @abstractmethod
    def get_alert(self, alert_id: str) -> Optional[Alert]:
        """
        Get an alert by ID.

        Args:
            alert_id: The alert identifier.

        Returns:
            The alert if found, None otherwise.
        """
        ...

    @abstractmethod
    def put_alert(self, alert: Alert) -> None:
        """
        Create or replace an alert.

        Args:
            alert: The alert to store.
        """
        ...

    @abstractmethod
    def list_alerts(self) -> list[Alert]:
        """List every alert ever raised, resolved ones included."""
        ...

    # ==================== Audit Trail ====================

    @abstractmethod
    def add_audit_entry(self, entry: AuditEntry) -> None:
        """
        Append an entry to the audit trail.

        Args:
            entry: The audit entry to store.
        """
        ...

    @abstractmethod
    def get_audit_entries(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        batch_id: Optional[str] = None,
    ) -> list[AuditEntry]:
        """
        Get audit entries with optional filters, oldest first.

        Args:
            entity_type: Filter by entity type.
            entity_id: Filter by entity ID.
            batch_id: Filter by correlated batch.
        """
        ...
